"""
Story lifecycle service.

Manages a story outside of generation:
  - Create (draft, client-generated id)
  - Edit title / content / theme / length / status / metadata
  - Replace scene segmentation
  - Delete (cascades to characters and videos)
  - List and resume (refetch an owner's stories, load one story)

Writes go through the StoryStore, so a remote failure keeps the local edit
and surfaces as a warning. Delete and refetch propagate remote failures.
"""

import logging
from typing import Optional

from .errors import PreconditionError, ValidationError
from .models import (
    SegmentInput,
    Segment,
    StageDescriptor,
    Story,
    StoryCreateRequest,
    StoryUpdate,
)
from .mutations import CreateStory, ReplaceSegments, UpdateStory
from .stages import classify_stage
from .story_store import ApplyResult, StoryStore

logger = logging.getLogger(__name__)


class StoryService:
    def __init__(self, store: StoryStore):
        self._store = store

    # ── Reads ────────────────────────────────────────────────────────────

    async def list_stories(self, user_id: str) -> list[Story]:
        """Refetch an owner's stories from the repository, newest first."""
        if not user_id:
            raise PreconditionError("user_id is required")
        return await self._store.refetch_all(user_id)

    async def get_story(self, story_id: str) -> Story:
        return await self._store.load(story_id)

    def progress(self, story_id: str) -> StageDescriptor:
        return classify_stage(self._store.snapshot(story_id))

    # ── Writes ───────────────────────────────────────────────────────────

    async def create_story(self, request: StoryCreateRequest) -> ApplyResult:
        title = request.title.strip()
        if not title:
            raise ValidationError("Story title is required")
        story = Story(
            user_id=request.user_id,
            title=title,
            content=request.content.strip(),
            theme=request.theme,
            length=request.length,
        )
        result = await self._store.apply(CreateStory(story))
        logger.info(f"[{story.id}] Story created for user {request.user_id}")
        return result

    async def update_story(self, story_id: str, changes: StoryUpdate) -> ApplyResult:
        if changes.title is not None:
            changes = changes.model_copy(update={"title": changes.title.strip()})
            if not changes.title:
                raise ValidationError("Story title cannot be empty")
        if changes.content is not None:
            changes = changes.model_copy(update={"content": changes.content.strip()})
        return await self._store.apply(UpdateStory(story_id, changes))

    async def replace_segments(self, story_id: str, segments: list[SegmentInput]) -> ApplyResult:
        """Record a scene segmentation; order follows the given list."""
        self._store.snapshot(story_id)
        for index, segment in enumerate(segments):
            if segment.duration is not None and segment.duration <= 0:
                raise ValidationError(f"Segment {index + 1} has a non-positive duration")

        stored = [
            Segment(
                story_id=story_id,
                segment_order=index,
                title=segment.title,
                content=segment.content,
                character_id=segment.character_id,
                duration=segment.duration,
                visual_prompt=segment.visual_prompt,
            )
            for index, segment in enumerate(segments)
        ]
        return await self._store.apply(ReplaceSegments(story_id, stored))

    async def delete_story(self, story_id: str) -> None:
        await self._store.remove(story_id)

    def warnings(self, story_id: Optional[str] = None):
        return self._store.warnings(story_id)
