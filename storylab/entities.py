# storylab/entities.py
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["High", "Medium", "Low"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FrameMetadata(_CamelModel):
    width: float = 0
    height: float = 0
    type: str


class Frame(_CamelModel):
    id: str
    name: str
    image_url: str = Field("", alias="imageUrl")
    file_size: Optional[int] = Field(None, alias="fileSize")
    metadata: FrameMetadata


class UserStory(_CamelModel):
    id: str
    title: str
    description: str
    acceptance_criteria: List[str] = Field(..., alias="acceptanceCriteria", min_length=1)
    priority: Priority = "Medium"
    story_points: int = Field(3, alias="storyPoints", ge=1)
    persona: str = "End User"
    category: str = "UI Component"


class AnalysisSession(_CamelModel):
    id: str = Field(default_factory=lambda: f"session-{uuid4().hex}")
    figma_file_id: str = Field(..., alias="figmaFileId")
    frames: List[Frame] = Field(default_factory=list)
    user_stories: List[UserStory] = Field(default_factory=list, alias="userStories")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")
    context: Optional[str] = None


class ImportResult(_CamelModel):
    frames: List[Frame]
    total_found: int = Field(..., alias="totalFound")
    truncated: bool = False
    images_included: bool = Field(True, alias="imagesIncluded")
    strategy: Literal["node", "full", "metadata"] = "full"


class SessionSummary(_CamelModel):
    total_frames: int = Field(0, alias="totalFrames")
    selected_frames: int = Field(0, alias="selectedFrames")
    total_stories: int = Field(0, alias="totalStories")
    total_story_points: int = Field(0, alias="totalStoryPoints")
    by_priority: Dict[str, int] = Field(default_factory=dict, alias="byPriority")


# ---- API payloads ----

class ImportRequest(_CamelModel):
    file_id: Optional[str] = Field(None, alias="fileId")
    node_id: Optional[str] = Field(None, alias="nodeId")


class PreviewRequest(_CamelModel):
    file_id: Optional[str] = Field(None, alias="fileId")
    limit: Optional[int] = Field(None, ge=1)


class GenerateStoriesRequest(_CamelModel):
    frames: List[Frame] = Field(default_factory=list)
    context: Optional[str] = None


class GenerateFromUrlRequest(_CamelModel):
    figma_url: Optional[str] = Field(None, alias="figmaUrl")


class GenerateFromUrlResponse(_CamelModel):
    stories: str
    screens: List[str]


class HealthResponse(BaseModel):
    healthy: bool
    url: str
    timestamp: str
