"""
Pydantic models and enums for the story generation workflow.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ── Closed tags ──────────────────────────────────────────────────────────────

class StoryTheme(str, Enum):
    FANTASY = "fantasy"
    SCI_FI = "sci-fi"
    ROMANCE = "romance"
    ADVENTURE = "adventure"
    MYSTERY = "mystery"
    COMEDY = "comedy"
    DRAMA = "drama"
    HORROR = "horror"


class StoryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class StoryStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CharacterRole(str, Enum):
    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    SUPPORTING = "supporting"


class VideoProvider(str, Enum):
    RUNWAY = "runway"
    REPLICATE = "replicate"
    HUGGINGFACE = "huggingface"
    LUMA = "luma"
    KLING = "kling"
    AIML = "aiml"
    MOCK = "mock"
    DEMO = "demo"  # guaranteed fallback


FALLBACK_VIDEO_PROVIDER = VideoProvider.DEMO


class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoStyle(str, Enum):
    CINEMATIC = "cinematic"
    DRAMATIC = "dramatic"
    ARTISTIC = "artistic"
    REALISTIC = "realistic"


class AspectRatio(str, Enum):
    WIDESCREEN = "16:9"
    VERTICAL = "9:16"
    SQUARE = "1:1"


class Stage(str, Enum):
    STORY_EDITING = "story-editing"
    CHARACTER_EXTRACTION = "character-extraction"
    SCENE_SEGMENTATION = "scene-segmentation"
    VIDEO_GENERATION = "video-generation"
    COMPLETED = "completed"


class NextAction(str, Enum):
    CONTINUE_WRITING = "continue writing"
    CONTINUE_CREATION = "continue creation"
    GENERATE_VIDEO = "generate video"
    VIEW_RESULT = "view result"


# ── Children ─────────────────────────────────────────────────────────────────

class Appearance(BaseModel):
    age: str = ""
    gender: str = ""
    ethnicity: str = ""
    hair_color: str = ""
    eye_color: str = ""
    style: str = ""


class CharacterPhoto(BaseModel):
    id: str = Field(default_factory=_new_id)
    character_id: str
    photo_url: str
    is_selected: bool = False
    created_at: datetime = Field(default_factory=_now)


class CharacterDraft(BaseModel):
    """A generated character before it is owned by a story."""
    name: str
    description: str
    personality: list[str] = Field(default_factory=list)
    appearance: Appearance = Field(default_factory=Appearance)
    role: CharacterRole = CharacterRole.SUPPORTING


class Character(CharacterDraft):
    id: str = Field(default_factory=_new_id)
    story_id: str
    photos: list[CharacterPhoto] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)

    @property
    def primary_photo_url(self) -> Optional[str]:
        """First selected photo, else the first photo."""
        for photo in self.photos:
            if photo.is_selected:
                return photo.photo_url
        return self.photos[0].photo_url if self.photos else None


class Segment(BaseModel):
    id: str = Field(default_factory=_new_id)
    story_id: str
    segment_order: int
    title: Optional[str] = None
    content: str = ""
    character_id: Optional[str] = None
    duration: Optional[int] = None
    visual_prompt: Optional[str] = None


class Video(BaseModel):
    id: str = Field(default_factory=_new_id)
    story_id: str
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    provider: VideoProvider = FALLBACK_VIDEO_PROVIDER
    status: VideoStatus = VideoStatus.PENDING
    created_at: datetime = Field(default_factory=_now)


# ── Story ────────────────────────────────────────────────────────────────────

class Story(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    title: str
    content: str = ""
    theme: StoryTheme
    length: StoryLength = StoryLength.MEDIUM
    status: StoryStatus = StoryStatus.DRAFT
    characters: list[Character] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)
    videos: list[Video] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class StoryUpdate(BaseModel):
    """Columns of the stories table a caller may change."""
    title: Optional[str] = None
    content: Optional[str] = None
    theme: Optional[StoryTheme] = None
    length: Optional[StoryLength] = None
    status: Optional[StoryStatus] = None
    metadata: Optional[dict] = None


# ── Derived ──────────────────────────────────────────────────────────────────

class StageDescriptor(BaseModel):
    stage: Stage
    percent: int
    label: str
    next_action: NextAction


class ProgressEvent(BaseModel):
    label: str
    percent: int
    message: str
    is_complete: bool = False


# ── Generation requests ──────────────────────────────────────────────────────

class CharacterGenerationRequest(BaseModel):
    theme: Optional[StoryTheme]
    story_id: str
    story_text: str = ""


class SceneSpec(BaseModel):
    description: str
    duration: int
    visual_prompt: str


class CharacterRef(BaseModel):
    name: str
    description: str
    photo_url: Optional[str] = None


class VideoOptions(BaseModel):
    duration: int = 30
    aspect_ratio: AspectRatio = AspectRatio.WIDESCREEN
    style: VideoStyle = VideoStyle.CINEMATIC


class VideoGenerationRequest(BaseModel):
    story_id: str
    prompt: str
    scenes: list[SceneSpec] = Field(default_factory=list)
    characters: list[CharacterRef] = Field(default_factory=list)
    duration: int = 30
    aspect_ratio: AspectRatio = AspectRatio.WIDESCREEN
    style: VideoStyle = VideoStyle.CINEMATIC


class VideoGenerationResult(BaseModel):
    """What a video provider hands back once its job has finished."""
    external_id: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    status: VideoStatus = VideoStatus.PROCESSING
    instructions: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        """Finished and pointing at an actual clip."""
        return self.status == VideoStatus.COMPLETED and bool(self.video_url)


class PortraitRequest(BaseModel):
    story_id: str
    character_id: str
    name: str
    prompt: str


# ── API Request Models ───────────────────────────────────────────────────────

class StoryCreateRequest(BaseModel):
    user_id: str
    title: str
    content: str = ""
    theme: StoryTheme
    length: StoryLength = StoryLength.MEDIUM


class SegmentInput(BaseModel):
    content: str
    title: Optional[str] = None
    character_id: Optional[str] = None
    duration: Optional[int] = None
    visual_prompt: Optional[str] = None


class SegmentsReplaceRequest(BaseModel):
    segments: list[SegmentInput] = Field(default_factory=list)


class StoryResponse(BaseModel):
    story: Story
    progress: StageDescriptor


class WorkflowResponse(BaseModel):
    story_id: str
    state: str
    story: Story
    events: list[ProgressEvent] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)
    photos: list[CharacterPhoto] = Field(default_factory=list)
    video: Optional[Video] = None
