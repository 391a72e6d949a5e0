# storylab/story_parser.py
"""
Turns whatever the model answered into UserStory records.

The generator is an uncontrolled external system, so the rule here is
"never crash the pipeline": anything that cannot be read as a list of
stories becomes a single fallback story.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

import commentjson
import yaml
from json_repair import repair_json

from storylab.entities import UserStory
from storylab.errors import StoryParseError

logger = logging.getLogger("storylab_backend")

DEFAULT_STORY_POINTS = 3
PRIORITIES = ("High", "Medium", "Low")

# field -> keys probed in order; first present, non-empty value wins
FIELD_CHAINS: Dict[str, Tuple[str, ...]] = {
    "title": ("title",),
    "description": ("description", "story"),
    "acceptance_criteria": ("acceptance_criteria", "acceptanceCriteria"),
    "criteria": ("criteria",),
    "priority": ("priority",),
    "story_points": ("story_points", "storyPoints", "points"),
    "persona": ("persona", "userType"),
    "category": ("category", "type"),
}

DESCRIPTION_PLACEHOLDER = "No description provided"
CRITERIA_PLACEHOLDER = ["Criteria not specified"]


def new_story_id() -> str:
    return f"story-{uuid4().hex}"


_LEADING_FENCE = re.compile(r'^```[A-Za-z0-9_-]*[ \t]*\n?')
_TRAILING_FENCE = re.compile(r'\n?[ \t]*```$')


def clean_triple_backticks(text: str) -> str:
    """Strip a Markdown fence wrapping the whole answer; backticks inside it are kept."""
    text = _LEADING_FENCE.sub('', text.strip(), count=1)
    return _TRAILING_FENCE.sub('', text, count=1).strip()


def coerce_field_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    try:
        return json.dumps(value)
    except TypeError:
        return str(value).strip()


def _sanitize_json_string(input_str: str) -> str:
    # drop // and /* */ comments, then escape raw newlines inside string literals
    input_str = re.sub(r'//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)

    def process_string_segment(match):
        return '"' + match.group(1).replace("\n", "\\n").replace("\t", "\\t") + '"'

    return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)


def _load_json(text: str) -> Tuple[Any, str]:
    err = ""
    try:
        return commentjson.loads(text), ""
    except Exception as e:
        err = str(e)
    try:
        data = yaml.safe_load(_sanitize_json_string(text))
        if isinstance(data, (list, dict)):
            return data, ""
        err += "\n--\nYAML parsing did not produce a collection"
    except yaml.YAMLError as e:
        err += "\n--\n" + str(e)
    return None, err


def load_fault_tolerant_json(raw: str) -> Any:
    """
    commentjson first, then YAML on the sanitized text, then json_repair.
    Raises StoryParseError when nothing yields a JSON collection.
    """
    text = clean_triple_backticks(raw or "")
    if not text:
        raise StoryParseError("Empty model response")

    data, err = _load_json(text)
    if data is not None:
        return data

    repaired = repair_json(text)
    if isinstance(repaired, str) and repaired.strip():
        r_data, r_err = _load_json(repaired)
        if r_data is not None:
            return r_data
        err += "\n--\n" + r_err
    raise StoryParseError(f"JSON parsing failed: {err}")


def _first_present(raw: Dict[str, Any], field: str) -> Any:
    for key in FIELD_CHAINS[field]:
        value = raw.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _parse_points(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_STORY_POINTS
    if isinstance(value, (int, float)):
        points = int(value)
    else:
        match = re.match(r"\s*(-?\d+)", coerce_field_to_str(value))
        if not match:
            return DEFAULT_STORY_POINTS
        points = int(match.group(1))
    return points if points >= 1 else DEFAULT_STORY_POINTS


def _parse_priority(value: Any) -> str:
    text = coerce_field_to_str(value).lower()
    for priority in PRIORITIES:
        if text == priority.lower():
            return priority
    return "Medium"


def _parse_criteria(raw: Dict[str, Any]) -> List[str]:
    listed = _first_present(raw, "acceptance_criteria")
    if isinstance(listed, list):
        criteria = [coerce_field_to_str(c) for c in listed if coerce_field_to_str(c)]
        if criteria:
            return criteria
    single = _first_present(raw, "criteria")
    if single is not None:
        return [coerce_field_to_str(single)]
    return list(CRITERIA_PLACEHOLDER)


def _text_or(raw: Dict[str, Any], field: str, default: str) -> str:
    value = _first_present(raw, field)
    return coerce_field_to_str(value) if value is not None else default


def decode_story(raw: Dict[str, Any], index: int) -> UserStory:
    """Decode one model-produced story dict; the model's own id is ignored."""
    return UserStory(
        id=new_story_id(),
        title=_text_or(raw, "title", f"User Story {index + 1}"),
        description=_text_or(raw, "description", DESCRIPTION_PLACEHOLDER),
        acceptance_criteria=_parse_criteria(raw),
        priority=_parse_priority(_first_present(raw, "priority")),
        story_points=_parse_points(_first_present(raw, "story_points")),
        persona=_text_or(raw, "persona", "End User"),
        category=_text_or(raw, "category", "UI Component"),
    )


def _story_items(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("user_stories"), list):
        return data["user_stories"]
    raise StoryParseError("Invalid response structure")


def fallback_stories() -> List[UserStory]:
    return [
        UserStory(
            id=f"story-fallback-{uuid4().hex}",
            title="Analyze UI Components",
            description="As a user, I want to interact with the UI elements shown in this design",
            acceptance_criteria=[
                "UI elements are properly implemented",
                "Interactions work as expected",
                "Design matches the mockup",
            ],
            priority="Medium",
            story_points=3,
            persona="End User",
            category="UI Implementation",
        )
    ]


def parse_user_stories(raw_text: str, *, on_failure: Optional[Callable[[str], None]] = None) -> List[UserStory]:
    """
    Parse raw model output. Never raises: structural failures return the
    single fallback story.
    """
    try:
        items = _story_items(load_fault_tolerant_json(raw_text))
        dict_items = [item for item in items if isinstance(item, dict)]
        if items and not dict_items:
            raise StoryParseError("No story objects in response")
        return [decode_story(item, i) for i, item in enumerate(dict_items)]
    except Exception as e:
        logger.error(f"Failed to parse model response as user stories: {e}\nResponse was: {(raw_text or '')[:2000]}")
        if on_failure:
            on_failure(str(e))
        return fallback_stories()
