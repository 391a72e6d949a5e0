"""Plain-text rendering of frames, story cards and session summaries for the terminal."""

from typing import Iterable, List, Optional

from storylab.entities import Frame, ImportResult, SessionSummary, UserStory

COLOR_CODES = {
    'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35', 'cyan': '36',
    'bright_black': '90',
}

PRIORITY_COLORS = {"High": "red", "Medium": "yellow", "Low": "green"}


def colorize(text: str, color: Optional[str] = None, enabled: bool = True) -> str:
    if not enabled or not color or color.lower() not in COLOR_CODES:
        return text
    return f"\033[{COLOR_CODES[color.lower()]}m{text}\033[0m"


def _format_size(size: Optional[int]) -> str:
    if not size:
        return ""
    return f" • {size / 1024 / 1024:.1f} MB"


def render_frame_line(frame: Frame, selected: bool = False) -> str:
    mark = "[x]" if selected else "[ ]"
    meta = frame.metadata
    line = f"{mark} {frame.name}  ({meta.width:g} × {meta.height:g}px • {meta.type}{_format_size(frame.file_size)})"
    if not frame.image_url:
        line += "  [no image]"
    return f"{line}\n      id: {frame.id}"


def render_frame_checklist(frames: List[Frame], selected_ids: Iterable[str] = ()) -> str:
    selected = set(selected_ids)
    if not frames:
        return "No frames found in this file."
    lines = [render_frame_line(f, f.id in selected) for f in frames]
    count = len([f for f in frames if f.id in selected])
    if count == 0:
        lines.append("Select frames above to generate user stories")
    else:
        lines.append(f"{count} frame{'s' if count > 1 else ''} selected")
    return "\n".join(lines)


def render_import_notice(result: ImportResult) -> str:
    parts = [f"Imported {len(result.frames)} of {result.total_found} frames (strategy: {result.strategy})"]
    if result.truncated:
        parts.append(f"the file has more frames than the {len(result.frames)} kept")
    if not result.images_included:
        parts.append("images were skipped because the file is too large")
    return "; ".join(parts)


def render_story_card(story: UserStory, color: bool = True) -> str:
    priority = colorize(story.priority, PRIORITY_COLORS.get(story.priority), color)
    lines = [
        f"■ {story.title}",
        f"  {priority} • {story.story_points} pts • {story.persona} • {story.category}",
        f"  {story.description}",
        "  Acceptance criteria:",
    ]
    lines.extend(f"    - {c}" for c in story.acceptance_criteria)
    return "\n".join(lines)


def render_stories(stories: List[UserStory], color: bool = True) -> str:
    if not stories:
        return "No user stories generated yet."
    return "\n\n".join(render_story_card(s, color) for s in stories)


def render_summary(summary: SessionSummary) -> str:
    by_priority = ", ".join(f"{k}: {v}" for k, v in summary.by_priority.items())
    return (
        f"Frames: {summary.total_frames} ({summary.selected_frames} selected) | "
        f"Stories: {summary.total_stories} | Story points: {summary.total_story_points}"
        + (f" | {by_priority}" if by_priority else "")
    )
