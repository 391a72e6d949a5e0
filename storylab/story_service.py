# storylab/story_service.py
import base64
import logging
from typing import Dict, List, Optional

from storylab.design_tree import screen_names
from storylab.entities import Frame, UserStory
from storylab.errors import (
    InvalidInputError,
    LlmUnavailableError,
    OversizedResponseError,
    StoryGenerationError,
    StoryLabError,
)
from storylab.figma_client import FigmaClient
from storylab.figma_urls import parse_figma_url
from storylab.llm_client import BaseLlmClient
from storylab.prompts import FRAME_ANALYSIS_PROMPT, FRAME_METADATA_PROMPT, SCREEN_LIST_PROMPT, format_prompt
from storylab.story_parser import parse_user_stories

logger = logging.getLogger("storylab_backend")


def frame_context(frame: Frame) -> str:
    meta = frame.metadata
    return f"Frame: {frame.name} ({meta.width:g}x{meta.height:g}) - {meta.type}"


class StoryGenerator:
    """
    Runs the per-frame generation loop: download the frame render, ask the
    model, normalize the answer. One bad frame is logged and skipped.
    """

    def __init__(self, llm: BaseLlmClient, figma: Optional[FigmaClient] = None):
        self.llm = llm
        self.figma = figma

    def _frame_prompt(self, frame: Frame, context: Optional[str], with_image: bool) -> str:
        template = FRAME_ANALYSIS_PROMPT if with_image else FRAME_METADATA_PROMPT
        return format_prompt(
            template,
            frame_context=frame_context(frame),
            user_context=f"Additional product context: {context.strip()}" if context and context.strip() else "",
        )

    def _frame_image(self, frame: Frame) -> Optional[str]:
        if not frame.image_url:
            return None
        if self.figma is None:
            raise StoryGenerationError("No Figma client available to download frame images")
        image = self.figma.download_image(frame.image_url)
        logger.info(f"Image for frame {frame.name} downloaded ({len(image)} bytes)")
        return base64.b64encode(image).decode("ascii")

    def generate_for_frame(self, frame: Frame, context: Optional[str] = None) -> List[UserStory]:
        image = self._frame_image(frame)
        if image is None:
            logger.info(f"Frame {frame.name} has no rendered image, generating from its metadata only")
        prompt = self._frame_prompt(frame, context, with_image=image is not None)
        raw = self.llm.generate(prompt, images=[image] if image else None)
        return parse_user_stories(raw)

    def generate_for_frames(self, frames: List[Frame], context: Optional[str] = None) -> List[UserStory]:
        if not frames:
            raise InvalidInputError("Frames are required")

        if not self.llm.is_healthy():
            raise LlmUnavailableError(
                f"{self.llm.provider or 'AI'} service is not available. Make sure it's running.",
                status_code=503,
            )

        all_stories: List[UserStory] = []
        for frame in frames:
            logger.info(f"Processing frame: {frame.name}, Image URL: {frame.image_url or '-'}")
            try:
                stories = self.generate_for_frame(frame, context)
            except StoryLabError as e:
                logger.error(f"Error processing frame {frame.name}: {e.message}")
                continue
            logger.info(f"Generated {len(stories)} stories for frame {frame.name}")
            all_stories.extend(stories)

        if not all_stories:
            raise StoryGenerationError("Failed to generate any user stories")
        return all_stories

    def generate_from_url(self, figma_url: Optional[str]) -> Dict[str, object]:
        """
        Screen-name driven generation: the model only sees the list of frame
        names and answers free text, returned as is.
        """
        if not figma_url or not isinstance(figma_url, str):
            raise InvalidInputError("Figma URL missing or invalid")
        location = parse_figma_url(figma_url)
        if location is None:
            raise InvalidInputError("Invalid Figma URL")
        if self.figma is None:
            raise StoryGenerationError("No Figma client available")

        try:
            data = self.figma.fetch_file(location.file_id)
        except OversizedResponseError:
            logger.warning("Figma file too large, listing screens from the metadata-only document")
            data = self.figma.fetch_file_metadata_only(location.file_id)
        screens = screen_names(data.get("document") or {})

        prompt = format_prompt(SCREEN_LIST_PROMPT, screens="\n".join(screens))
        stories = self.llm.generate(prompt) or "No stories generated."
        return {"stories": stories, "screens": screens}
