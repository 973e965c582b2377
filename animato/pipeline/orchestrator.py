"""
StoryWorkflowService: generation pipeline orchestrator.

One invocation drives one generation kind for one story:

  Characters:  analyzing (10%) → generating (40%) → persisting → complete (70%)
  Portraits:   analyzing (40%) → generating (55%) → persisting → complete (70%)
  Scenes:      analyzing (45%) → generating (50%) → persisting → complete (60%)
  Video:       analyzing → preparing (75%) → generating (90%) → persisting → complete (100%)

Provider failures never fail a run. Each provider-backed kind ends in a
local fallback: the theme's template cast, a designed portrait picked from
the character's appearance, or the placeholder video. Scenes are cut
locally and need no provider. Remote write failures come back as
warnings. Only precondition and validation errors reach the caller, and
they do so before anything is written.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .. import metrics, presets, story_locks
from .character_templates import templates_for_theme
from .errors import PreconditionError, ValidationError, WorkflowCancelled
from .fallback_chain import FallbackChain, GenerationKind
from .models import (
    FALLBACK_VIDEO_PROVIDER,
    Character,
    CharacterGenerationRequest,
    CharacterPhoto,
    CharacterRef,
    PortraitRequest,
    ProgressEvent,
    SceneSpec,
    Segment,
    Stage,
    StageDescriptor,
    Story,
    Video,
    VideoGenerationRequest,
    VideoGenerationResult,
    VideoOptions,
    VideoProvider,
    VideoStatus,
)
from .mutations import AttachCharacterPhotos, AttachCharacters, AttachVideo, ReplaceSegments
from .progress import ProgressReporter, ProgressSink
from .scene_segmenter import segment_story
from .stages import classify_stage
from .story_store import StoryStore

logger = logging.getLogger(__name__)

# ── Placeholder video (terminal fallback) ────────────────────────────────────

PLACEHOLDER_VIDEO_URL = "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"
PLACEHOLDER_THUMBNAIL_URL = (
    "https://images.pexels.com/photos/1261728/pexels-photo-1261728.jpeg"
    "?auto=compress&cs=tinysrgb&w=800"
)
PLACEHOLDER_DURATION = 120

# ── Scene defaults ───────────────────────────────────────────────────────────

DEFAULT_SEGMENT_DURATION = 8
MIN_SCENE_DURATION = 5
MAX_SCENE_DURATION = 10
SYNTHETIC_SCENE_DURATION = 10


class WorkflowState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    PREPARING = "preparing"
    GENERATING = "generating"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"


class WorkflowResult(BaseModel):
    story_id: str
    state: WorkflowState
    story: Story
    events: list[ProgressEvent] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)
    photos: list[CharacterPhoto] = Field(default_factory=list)
    video: Optional[Video] = None
    provider: Optional[str] = None
    used_fallback: bool = False


class _Run:
    """Per-invocation state: current state, progress channel, cancellation."""

    def __init__(self, story_id: str, sink: Optional[ProgressSink], cancel_event: Optional[asyncio.Event]):
        self.story_id = story_id
        self.state = WorkflowState.IDLE
        self.reporter = ProgressReporter(sink, story_id)
        self.cancel_event = cancel_event
        self.warnings: list[str] = []

    def transition(self, state: WorkflowState):
        logger.info(f"[{self.story_id}] {self.state.value} → {state.value}")
        self.state = state

    def checkpoint(self):
        """Called before every network call; stops the run if cancelled."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.reporter.close()
            logger.info(f"[{self.story_id}] Cancelled while {self.state.value}")
            raise WorkflowCancelled(f"Workflow for story {self.story_id} cancelled")

    def emit(self, label: str, percent: int, message: str, is_complete: bool = False):
        self.reporter.emit(label, percent, message, is_complete)


# ── Request building ─────────────────────────────────────────────────────────

def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def build_video_request(story: Story, options: Optional[VideoOptions] = None) -> VideoGenerationRequest:
    """Scenes from the story's segments, or one synthetic scene from its text."""
    options = options or VideoOptions()

    if story.segments:
        ordered = sorted(story.segments, key=lambda s: s.segment_order)
        scenes = [
            SceneSpec(
                description=segment.content or f"Scene {index + 1}",
                duration=_clamp(segment.duration or DEFAULT_SEGMENT_DURATION,
                                MIN_SCENE_DURATION, MAX_SCENE_DURATION),
                visual_prompt=segment.visual_prompt or presets.segment_visual_prompt(segment.content),
            )
            for index, segment in enumerate(ordered)
        ]
    else:
        scenes = [SceneSpec(
            description=(story.content or "")[:presets.SCENE_DESCRIPTION_CHARS]
            or presets.DEFAULT_SCENE_DESCRIPTION,
            duration=SYNTHETIC_SCENE_DURATION,
            visual_prompt=presets.synthetic_scene_visual_prompt(story.theme),
        )]

    return VideoGenerationRequest(
        story_id=story.id,
        prompt=presets.story_prompt(story.theme, story.content),
        scenes=scenes,
        characters=[
            CharacterRef(name=c.name, description=c.description, photo_url=c.primary_photo_url)
            for c in story.characters
        ],
        duration=options.duration,
        aspect_ratio=options.aspect_ratio,
        style=options.style,
    )


def validate_video_request(request: VideoGenerationRequest):
    if request.duration <= 0:
        raise ValidationError(f"Video duration must be positive, got {request.duration}")
    if not request.scenes:
        raise ValidationError("Video request has no scenes")
    for index, scene in enumerate(request.scenes):
        if not scene.description.strip():
            raise ValidationError(f"Scene {index + 1} has an empty description")
        if scene.duration <= 0:
            raise ValidationError(f"Scene {index + 1} has a non-positive duration")


def validate_character_request(request: CharacterGenerationRequest):
    if not request.story_id or not request.story_id.strip():
        raise ValidationError("Character request is missing the story id")
    if not request.theme:
        raise ValidationError(f"Story {request.story_id} has no theme")


def _video_provider(tag: Optional[str]) -> VideoProvider:
    try:
        return VideoProvider(tag)
    except ValueError:
        return FALLBACK_VIDEO_PROVIDER


def placeholder_video(story_id: str) -> Video:
    return Video(
        story_id=story_id,
        video_url=PLACEHOLDER_VIDEO_URL,
        thumbnail_url=PLACEHOLDER_THUMBNAIL_URL,
        duration=PLACEHOLDER_DURATION,
        provider=FALLBACK_VIDEO_PROVIDER,
        status=VideoStatus.COMPLETED,
    )


def usable_video(result) -> bool:
    return isinstance(result, VideoGenerationResult) and result.is_usable


def _failure_summary(outcome) -> str:
    return "; ".join(f"{f.provider}: {f.message}" for f in outcome.failures)


# ═════════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═════════════════════════════════════════════════════════════════════════════

class StoryWorkflowService:
    """
    Usage:
        service = StoryWorkflowService(store, character_chain, video_chain, locks, photo_chain)

        result = await service.generate_characters(story_id, progress=sink)
        result = await service.generate_character_photos(story_id)
        result = await service.generate_segments(story_id)
        result = await service.generate_video(story_id, progress=sink)
    """

    def __init__(
        self,
        store: StoryStore,
        character_chain: FallbackChain,
        video_chain: FallbackChain,
        locks: Optional["story_locks.StoryLockRegistry"] = None,
        photo_chain: Optional[FallbackChain] = None,
    ):
        self._store = store
        self._character_chain = character_chain
        self._video_chain = video_chain
        self._photo_chain = photo_chain or FallbackChain(GenerationKind.PHOTOS, [])
        self._locks = locks or story_locks.StoryLockRegistry()

    def stage(self, story_id: str) -> StageDescriptor:
        """Where a story currently is, derived from its content."""
        return classify_stage(self._store.snapshot(story_id))

    async def advance(
        self,
        story_id: str,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
        options: Optional[VideoOptions] = None,
    ) -> WorkflowResult:
        """Run whichever generation the story's current stage calls for."""
        descriptor = self.stage(story_id)
        if descriptor.stage == Stage.CHARACTER_EXTRACTION:
            return await self.generate_characters(story_id, progress, cancel_event)
        if descriptor.stage == Stage.SCENE_SEGMENTATION:
            return await self.generate_segments(story_id, progress, cancel_event)
        if descriptor.stage == Stage.VIDEO_GENERATION:
            return await self.generate_video(story_id, progress, cancel_event, options)
        if descriptor.stage == Stage.COMPLETED:
            raise PreconditionError(f"Story {story_id} already has a video")
        raise PreconditionError(f"Story {story_id} needs more text before generation")

    async def _locked(self, story_id: str, run: _Run, body):
        try:
            async with self._locks.hold(story_id):
                return await body(run)
        except (PreconditionError, ValidationError):
            run.transition(WorkflowState.FAILED)
            raise

    # ── Characters ───────────────────────────────────────────────────────

    async def generate_characters(
        self,
        story_id: str,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        run = _Run(story_id, progress, cancel_event)
        return await self._locked(story_id, run, self._generate_characters)

    async def _generate_characters(self, run: _Run) -> WorkflowResult:
        run.transition(WorkflowState.ANALYZING)
        story = self._store.snapshot(run.story_id)
        request = CharacterGenerationRequest(
            theme=story.theme, story_id=story.id, story_text=story.content,
        )
        validate_character_request(request)
        run.emit("Analyzing Story", 10, "Analyzing story content...")

        run.transition(WorkflowState.GENERATING)
        run.emit("Creating Characters", 40, "Generating unique characters...")
        drafts, provider = await self._character_drafts(request, run)
        characters = [Character(story_id=story.id, **draft.model_dump()) for draft in drafts]

        run.checkpoint()
        run.transition(WorkflowState.PERSISTING)
        applied = await self._store.apply(AttachCharacters(story.id, characters))
        if applied.warning:
            run.warnings.append(applied.warning.message)

        run.transition(WorkflowState.COMPLETE)
        run.emit("Characters Generated", 70, "Characters created successfully!", is_complete=True)
        return WorkflowResult(
            story_id=story.id,
            state=run.state,
            story=applied.story,
            events=run.reporter.events,
            warnings=run.warnings,
            characters=characters,
            provider=provider,
            used_fallback=provider is None,
        )

    async def _character_drafts(self, request: CharacterGenerationRequest, run: _Run):
        if len(self._character_chain):
            outcome = await self._character_chain.run(request, before_attempt=run.checkpoint, accept=bool)
            if not outcome.exhausted:
                return outcome.value, outcome.provider_tag
            run.warnings.append(
                "Character generation providers unavailable, used template cast: " + _failure_summary(outcome)
            )
        logger.info(f"[{request.story_id}] Using {request.theme.value} template cast")
        return templates_for_theme(request.theme), None

    # ── Character portraits ──────────────────────────────────────────────

    async def generate_character_photos(
        self,
        story_id: str,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        """One selected portrait for every character that has no photo yet."""
        run = _Run(story_id, progress, cancel_event)
        return await self._locked(story_id, run, self._generate_character_photos)

    async def _generate_character_photos(self, run: _Run) -> WorkflowResult:
        run.transition(WorkflowState.ANALYZING)
        story = self._store.snapshot(run.story_id)
        if not story.characters:
            raise PreconditionError(f"Story {story.id} has no characters to portray")
        pending = [c for c in story.characters if not c.photos]
        run.emit("Preparing Portraits", 40, "Preparing character portraits...")

        run.transition(WorkflowState.GENERATING)
        run.emit("Generating Portraits", 55, "Creating character portraits...")
        photos = []
        designed = 0
        for character in pending:
            url = await self._portrait_url(story.id, character, run)
            if url is None:
                designed += 1
                metrics.inc_counter("photos.terminal_fallback")
                url = presets.designed_portrait_url(character.name, character.appearance)
            photos.append(CharacterPhoto(character_id=character.id, photo_url=url, is_selected=True))

        run.checkpoint()
        run.transition(WorkflowState.PERSISTING)
        result_story = story
        if photos:
            applied = await self._store.apply(AttachCharacterPhotos(story.id, photos))
            result_story = applied.story
            if applied.warning:
                run.warnings.append(applied.warning.message)

        run.transition(WorkflowState.COMPLETE)
        run.emit("Portraits Ready", 70, "Character portraits created!", is_complete=True)
        return WorkflowResult(
            story_id=story.id,
            state=run.state,
            story=result_story,
            events=run.reporter.events,
            warnings=run.warnings,
            photos=photos,
            used_fallback=designed > 0,
        )

    async def _portrait_url(self, story_id: str, character: Character, run: _Run) -> Optional[str]:
        if not len(self._photo_chain):
            return None
        request = PortraitRequest(
            story_id=story_id,
            character_id=character.id,
            name=character.name,
            prompt=presets.character_portrait_prompt(character.name, character.appearance),
        )
        outcome = await self._photo_chain.run(request, before_attempt=run.checkpoint, accept=bool)
        if outcome.exhausted:
            run.warnings.append(
                f"Portrait providers failed for {character.name}, used a designed portrait: "
                + _failure_summary(outcome)
            )
            return None
        return outcome.value

    # ── Scenes ───────────────────────────────────────────────────────────

    async def generate_segments(
        self,
        story_id: str,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        """Cut the story text into scenes, replacing any existing segmentation."""
        run = _Run(story_id, progress, cancel_event)
        return await self._locked(story_id, run, self._generate_segments)

    async def _generate_segments(self, run: _Run) -> WorkflowResult:
        run.transition(WorkflowState.ANALYZING)
        story = self._store.snapshot(run.story_id)
        segments = segment_story(story)
        if not segments:
            raise ValidationError(f"Story {story.id} has no text to segment")
        run.emit("Analyzing Scenes", 45, "Looking for scene breaks...")

        run.transition(WorkflowState.GENERATING)
        run.emit("Segmenting Story", 50, f"Creating {len(segments)} scenes...")

        run.checkpoint()
        run.transition(WorkflowState.PERSISTING)
        applied = await self._store.apply(ReplaceSegments(story.id, segments))
        if applied.warning:
            run.warnings.append(applied.warning.message)

        run.transition(WorkflowState.COMPLETE)
        run.emit("Scenes Created", 60, "Story segmented into scenes!", is_complete=True)
        return WorkflowResult(
            story_id=story.id,
            state=run.state,
            story=applied.story,
            events=run.reporter.events,
            warnings=run.warnings,
            segments=segments,
        )

    # ── Video ────────────────────────────────────────────────────────────

    async def generate_video(
        self,
        story_id: str,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
        options: Optional[VideoOptions] = None,
    ) -> WorkflowResult:
        run = _Run(story_id, progress, cancel_event)
        return await self._locked(story_id, run, lambda r: self._generate_video(r, options))

    async def _generate_video(self, run: _Run, options: Optional[VideoOptions]) -> WorkflowResult:
        run.transition(WorkflowState.ANALYZING)
        story = self._store.snapshot(run.story_id)

        run.transition(WorkflowState.PREPARING)
        request = build_video_request(story, options)
        validate_video_request(request)
        run.emit("Preparing Video", 75, "Preparing video generation...")

        run.checkpoint()
        run.transition(WorkflowState.GENERATING)
        run.emit("Generating Video", 90, "Creating your animated video...")
        outcome = await self._video_chain.run(request, before_attempt=run.checkpoint, accept=usable_video)

        if not outcome.exhausted:
            video = self._video_from_result(story.id, request, outcome.value, outcome.provider_tag)
        else:
            if len(self._video_chain):
                run.warnings.append("All video providers failed: " + _failure_summary(outcome))
            logger.warning(f"[{story.id}] Using placeholder video")
            metrics.inc_counter("videos.terminal_fallback")
            video = placeholder_video(story.id)

        run.checkpoint()
        run.transition(WorkflowState.PERSISTING)
        applied = await self._store.apply(AttachVideo(story.id, video))
        if applied.warning:
            run.warnings.append(applied.warning.message)

        run.transition(WorkflowState.COMPLETE)
        run.emit("Video Complete", 100, "Your video is ready!", is_complete=True)
        return WorkflowResult(
            story_id=story.id,
            state=run.state,
            story=applied.story,
            events=run.reporter.events,
            warnings=run.warnings,
            video=video,
            provider=video.provider.value,
            used_fallback=outcome.exhausted,
        )

    @staticmethod
    def _video_from_result(
        story_id: str,
        request: VideoGenerationRequest,
        result: VideoGenerationResult,
        provider_tag: Optional[str],
    ) -> Video:
        return Video(
            story_id=story_id,
            video_url=result.video_url,
            thumbnail_url=result.thumbnail_url or PLACEHOLDER_THUMBNAIL_URL,
            duration=request.duration,
            provider=_video_provider(provider_tag),
            status=VideoStatus.COMPLETED,
        )
