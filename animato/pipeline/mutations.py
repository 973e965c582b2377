"""
Story mutations applied through the StoryStore.

Each mutation knows how to push itself to the remote repository and how to
apply itself to a local story snapshot. Ids are generated client-side, so
the local copy never depends on what the remote write returned.

Segments are stored inside the stories.metadata column, so any push that
writes metadata rebuilds the "segments" key from the current local story.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .models import (
    Character,
    CharacterPhoto,
    Segment,
    Story,
    StoryStatus,
    StoryUpdate,
    Video,
)
from .repository import StoryRepository

SEGMENTS_KEY = "segments"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _without_segments(metadata: dict) -> dict:
    return {k: v for k, v in metadata.items() if k != SEGMENTS_KEY}


def metadata_with_segments(metadata: dict, segments: list[Segment]) -> dict:
    """The metadata column as stored: caller keys plus the serialized segments."""
    stored = _without_segments(metadata)
    stored[SEGMENTS_KEY] = [s.model_dump(mode="json") for s in segments]
    return stored


class StoryMutation(ABC):
    story_id: str
    creates_story = False
    description = "mutation"

    @abstractmethod
    def push(self, repository: StoryRepository, current: Optional[Story]) -> None:
        """
        Write to the remote store. Raises on failure.

        `current` is a copy of the local story before this mutation, or None
        when the story does not exist locally yet.
        """

    @abstractmethod
    def apply_local(self, story: Optional[Story]) -> Story:
        """Return the mutated story. Never mutates the argument."""


@dataclass
class CreateStory(StoryMutation):
    story: Story
    creates_story = True
    description = "create story"

    @property
    def story_id(self) -> str:
        return self.story.id

    def push(self, repository, current):
        repository.insert_story(self.story)

    def apply_local(self, story):
        return self.story.model_copy(deep=True)


@dataclass
class UpdateStory(StoryMutation):
    story_id: str
    changes: StoryUpdate
    description = "update story"

    def __post_init__(self):
        self._updated_at = _now()
        if self.changes.metadata is not None:
            self.changes = self.changes.model_copy(
                update={"metadata": _without_segments(self.changes.metadata)}
            )

    def push(self, repository, current):
        fields = self.changes.model_dump(exclude_none=True, mode="json")
        if "metadata" in fields:
            segments = current.segments if current is not None else []
            fields["metadata"] = metadata_with_segments(fields["metadata"], segments)
        fields["updated_at"] = self._updated_at.isoformat()
        repository.update_story(self.story_id, fields)

    def apply_local(self, story):
        updates = self.changes.model_dump(exclude_none=True)
        updates["updated_at"] = self._updated_at
        return story.model_copy(update=updates, deep=True)


@dataclass
class ReplaceSegments(StoryMutation):
    story_id: str
    segments: list[Segment]
    description = "replace segments"

    def __post_init__(self):
        self._updated_at = _now()

    def push(self, repository, current):
        metadata = current.metadata if current is not None else {}
        repository.update_story(self.story_id, {
            "metadata": metadata_with_segments(metadata, self.segments),
            "updated_at": self._updated_at.isoformat(),
        })

    def apply_local(self, story):
        return story.model_copy(update={
            "segments": [s.model_copy(deep=True) for s in self.segments],
            "updated_at": self._updated_at,
        }, deep=True)


@dataclass
class AttachCharacters(StoryMutation):
    story_id: str
    characters: list[Character]
    description = "attach characters"

    def __post_init__(self):
        self._updated_at = _now()

    def push(self, repository, current):
        repository.insert_characters(self.characters)
        repository.update_story(self.story_id, {"updated_at": self._updated_at.isoformat()})

    def apply_local(self, story):
        return story.model_copy(update={
            "characters": story.characters + [c.model_copy(deep=True) for c in self.characters],
            "updated_at": self._updated_at,
        }, deep=True)


@dataclass
class AttachCharacterPhotos(StoryMutation):
    """Add portraits to characters the story already has."""
    story_id: str
    photos: list[CharacterPhoto]
    description = "attach character photos"

    def __post_init__(self):
        self._updated_at = _now()

    def push(self, repository, current):
        repository.insert_character_photos(self.photos)
        repository.update_story(self.story_id, {"updated_at": self._updated_at.isoformat()})

    def apply_local(self, story):
        by_character: dict[str, list[CharacterPhoto]] = {}
        for photo in self.photos:
            by_character.setdefault(photo.character_id, []).append(photo.model_copy(deep=True))
        characters = [
            c.model_copy(update={"photos": c.photos + by_character.get(c.id, [])}, deep=True)
            for c in story.characters
        ]
        return story.model_copy(update={
            "characters": characters,
            "updated_at": self._updated_at,
        }, deep=True)


@dataclass
class AttachVideo(StoryMutation):
    """Store a finished video; the story becomes completed."""
    story_id: str
    video: Video
    description = "attach video"

    def __post_init__(self):
        self._updated_at = _now()

    def push(self, repository, current):
        repository.insert_video(self.video)
        repository.update_story(self.story_id, {
            "status": StoryStatus.COMPLETED.value,
            "updated_at": self._updated_at.isoformat(),
        })

    def apply_local(self, story):
        return story.model_copy(update={
            "videos": story.videos + [self.video.model_copy(deep=True)],
            "status": StoryStatus.COMPLETED,
            "updated_at": self._updated_at,
        }, deep=True)
