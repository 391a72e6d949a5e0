# storylab/session.py
"""
Single-user analysis session and its state machine.

    EMPTY -> IMPORTED <-> FRAMES_SELECTED -> GENERATING -> COMPLETED
                                 ^               |
                                 +--- failure ---+

A new import from any state discards the old session. Nothing here is
persisted.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional

from storylab.entities import AnalysisSession, Frame, SessionSummary, UserStory
from storylab.errors import InvalidTransitionError, StoryLabError


class SessionState(str, Enum):
    EMPTY = "empty"
    IMPORTED = "imported"
    FRAMES_SELECTED = "frames_selected"
    GENERATING = "generating"
    COMPLETED = "completed"


class SessionController:
    def __init__(self) -> None:
        self.session: Optional[AnalysisSession] = None
        self.state = SessionState.EMPTY
        self.last_error: Optional[str] = None
        self._selected: List[str] = []

    # -----------------------
    # Import
    # -----------------------

    def import_frames(self, file_id: str, frames: List[Frame], context: Optional[str] = None) -> AnalysisSession:
        self.session = AnalysisSession(figma_file_id=file_id, frames=list(frames), context=context)
        self._selected = []
        self.last_error = None
        self.state = SessionState.IMPORTED
        return self.session

    # -----------------------
    # Selection
    # -----------------------

    def _require_selectable(self) -> AnalysisSession:
        if self.session is None or self.state == SessionState.EMPTY:
            raise InvalidTransitionError("Import a Figma file before selecting frames")
        if self.state == SessionState.GENERATING:
            raise InvalidTransitionError("Frame selection is locked while stories are being generated")
        return self.session

    def _sync_selection_state(self) -> None:
        self.state = SessionState.FRAMES_SELECTED if self._selected else SessionState.IMPORTED

    @property
    def selected_frames(self) -> List[Frame]:
        if self.session is None:
            return []
        by_id = {f.id: f for f in self.session.frames}
        return [by_id[i] for i in self._selected if i in by_id]

    def select(self, frame_id: str) -> None:
        session = self._require_selectable()
        if frame_id not in {f.id for f in session.frames}:
            raise InvalidTransitionError(f"Unknown frame: {frame_id}")
        if frame_id not in self._selected:
            self._selected = self._selected + [frame_id]
        self._sync_selection_state()

    def deselect(self, frame_id: str) -> None:
        self._require_selectable()
        self._selected = [i for i in self._selected if i != frame_id]
        self._sync_selection_state()

    def toggle(self, frame_id: str) -> None:
        if frame_id in self._selected:
            self.deselect(frame_id)
        else:
            self.select(frame_id)

    def set_selection(self, frame_ids: List[str]) -> None:
        session = self._require_selectable()
        known = {f.id for f in session.frames}
        unknown = [i for i in frame_ids if i not in known]
        if unknown:
            raise InvalidTransitionError(f"Unknown frames: {', '.join(unknown)}")
        self._selected = list(dict.fromkeys(frame_ids))
        self._sync_selection_state()

    # -----------------------
    # Generation
    # -----------------------

    def begin_generation(self) -> List[Frame]:
        if self.state != SessionState.FRAMES_SELECTED:
            raise InvalidTransitionError("Select at least one frame to analyze")
        self.state = SessionState.GENERATING
        self.last_error = None
        return self.selected_frames

    def complete_generation(self, stories: List[UserStory]) -> AnalysisSession:
        if self.state != SessionState.GENERATING or self.session is None:
            raise InvalidTransitionError("No generation in progress")
        self.session = self.session.model_copy(update={"user_stories": list(stories)})
        self.state = SessionState.COMPLETED
        return self.session

    def fail_generation(self, error: str) -> None:
        if self.state != SessionState.GENERATING:
            raise InvalidTransitionError("No generation in progress")
        self.last_error = error
        self.state = SessionState.FRAMES_SELECTED

    def generate(self, run: Callable[[List[Frame]], List[UserStory]]) -> AnalysisSession:
        """
        Drive one generation run with `run(selected_frames) -> stories`.
        On failure the session reverts to FRAMES_SELECTED and the error is
        re-raised.
        """
        frames = self.begin_generation()
        try:
            stories = run(frames)
        except StoryLabError as e:
            self.fail_generation(e.message)
            raise
        except Exception as e:
            self.fail_generation(str(e))
            raise
        return self.complete_generation(stories)

    # -----------------------
    # Aggregates
    # -----------------------

    def summary(self) -> SessionSummary:
        if self.session is None:
            return SessionSummary()
        stories = self.session.user_stories
        by_priority: Dict[str, int] = {"High": 0, "Medium": 0, "Low": 0}
        for story in stories:
            by_priority[story.priority] = by_priority.get(story.priority, 0) + 1
        return SessionSummary(
            total_frames=len(self.session.frames),
            selected_frames=len(self.selected_frames),
            total_stories=len(stories),
            total_story_points=sum(s.story_points for s in stories),
            by_priority=by_priority,
        )
