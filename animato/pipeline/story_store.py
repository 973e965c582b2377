"""
StoryStore — owner of the in-memory story map.

Writes are optimistic: the remote attempt comes first, the local map is
updated regardless, and a remote failure becomes a non-fatal warning.
Delete is the exception: it only touches the local map after the remote
delete succeeded. A failed full refetch empties the owner's stories.

Other components only ever receive deep-copied snapshots.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .. import metrics
from .errors import PersistenceError, PreconditionError
from .models import Story
from .mutations import StoryMutation
from .repository import StoryRepository

logger = logging.getLogger(__name__)

PERSISTENCE_TIMEOUT = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", "15"))
MAX_WARNINGS = 200


class SyncWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    story_id: str
    operation: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RemoteOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    error: Optional[str] = None


class ApplyResult(BaseModel):
    """Caller-visible result of apply(); always a success."""
    model_config = ConfigDict(frozen=True)

    story: Story
    remote_synced: bool
    warning: Optional[SyncWarning] = None


class StoryStore:
    """
    Usage:
        store = StoryStore(SupabaseStoryRepository())
        await store.refetch_all(user_id)
        result = await store.apply(UpdateStory(story_id, StoryUpdate(title="New")))
    """

    def __init__(
        self,
        repository: StoryRepository,
        timeout: float = PERSISTENCE_TIMEOUT,
        on_warning: Optional[Callable[[SyncWarning], None]] = None,
    ):
        self._repository = repository
        self._timeout = timeout
        self._on_warning = on_warning
        self._stories: dict[str, Story] = {}
        self._warnings: list[SyncWarning] = []

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, story_id: str) -> Optional[Story]:
        story = self._stories.get(story_id)
        return story.model_copy(deep=True) if story else None

    def snapshot(self, story_id: str) -> Story:
        """Deep copy of a story, or PreconditionError if it is not loaded."""
        if not story_id:
            raise PreconditionError("Story id is required")
        story = self.get(story_id)
        if story is None:
            raise PreconditionError(f"Story {story_id} not found")
        return story

    def list_stories(self, user_id: str) -> list[Story]:
        """An owner's stories, newest first."""
        stories = [s for s in self._stories.values() if s.user_id == user_id]
        stories.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in stories]

    def warnings(self, story_id: Optional[str] = None) -> list[SyncWarning]:
        if story_id is None:
            return list(self._warnings)
        return [w for w in self._warnings if w.story_id == story_id]

    # ── Writes ───────────────────────────────────────────────────────────

    async def apply(self, mutation: StoryMutation) -> ApplyResult:
        """Remote first, local always; a remote failure only produces a warning."""
        if not mutation.creates_story and mutation.story_id not in self._stories:
            raise PreconditionError(f"Story {mutation.story_id} not found")

        remote = await self._attempt_remote(mutation)
        story = self._apply_local(mutation)

        warning = None
        if not remote.ok:
            warning = self._emit_warning(
                mutation.story_id,
                mutation.description,
                f"Failed to sync {mutation.description} to database, local changes kept: {remote.error}",
            )
        return ApplyResult(story=story, remote_synced=remote.ok, warning=warning)

    async def _attempt_remote(self, mutation: StoryMutation) -> RemoteOutcome:
        try:
            await self._call(mutation.push, self._repository, self.get(mutation.story_id))
        except PersistenceError as e:
            return RemoteOutcome(ok=False, error=str(e))
        return RemoteOutcome(ok=True)

    def _apply_local(self, mutation: StoryMutation) -> Story:
        current = self._stories.get(mutation.story_id)
        if current is None and not mutation.creates_story:
            # a refetch during the remote attempt no longer returned this story
            raise PreconditionError(f"Story {mutation.story_id} is no longer loaded")
        updated = mutation.apply_local(current)
        self._stories[updated.id] = updated
        return updated.model_copy(deep=True)

    def _emit_warning(self, story_id: str, operation: str, message: str) -> SyncWarning:
        warning = SyncWarning(story_id=story_id, operation=operation, message=message)
        self._warnings.append(warning)
        if len(self._warnings) > MAX_WARNINGS:
            self._warnings.pop(0)
        logger.warning(f"[{story_id}] {message}")
        metrics.inc_counter("persistence.degraded_writes")
        metrics.record_error("persistence", operation, message, story_id)
        if self._on_warning is not None:
            self._on_warning(warning)
        return warning

    async def remove(self, story_id: str) -> None:
        """
        Delete a story and (by cascade) its children.

        The local entry is only dropped after the remote delete succeeded,
        so a failure leaves local state matching the remote store.
        """
        if story_id not in self._stories:
            raise PreconditionError(f"Story {story_id} not found")

        await self._call(self._repository.delete_story, story_id)
        self._stories.pop(story_id, None)
        logger.info(f"[{story_id}] Story deleted")

    async def refetch_all(self, user_id: str) -> list[Story]:
        """
        Replace every local story of an owner with a fresh remote read.

        On failure the owner's local set is emptied and the error propagates.
        The local set stays readable while the remote read is in flight.
        """
        try:
            stories = await self._call(self._repository.list_stories, user_id)
        except PersistenceError:
            self._drop_owner(user_id)
            metrics.inc_counter("persistence.refetch_failures")
            logger.error(f"Refetch failed for user {user_id}; local stories cleared")
            raise

        self._drop_owner(user_id)
        for story in stories:
            self._stories[story.id] = story
        logger.info(f"Refetched {len(stories)} stories for user {user_id}")
        return self.list_stories(user_id)

    async def load(self, story_id: str) -> Story:
        """Bring a single story into the map if it is not there yet."""
        if story_id in self._stories:
            return self.snapshot(story_id)
        story = await self._call(self._repository.get_story, story_id)
        if story is None:
            raise PreconditionError(f"Story {story_id} not found")
        self._stories.setdefault(story.id, story)
        return self.snapshot(story.id)

    def _drop_owner(self, user_id: str):
        for story_id in [sid for sid, s in self._stories.items() if s.user_id == user_id]:
            del self._stories[story_id]

    async def _call(self, fn, *args):
        """Run a blocking repository call in a thread, bounded by the timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise PersistenceError(f"{getattr(fn, '__name__', 'call')} timed out after {self._timeout:.0f}s")
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{getattr(fn, '__name__', 'call')} failed: {e}") from e
