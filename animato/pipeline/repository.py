"""
Story Repository — persistent storage for stories and their children.

Tables (see the Supabase schema):
  stories           — one row per story; segments live in metadata["segments"]
  characters        — owned by a story (ON DELETE CASCADE)
  character_photos  — owned by a character
  videos            — owned by a story (ON DELETE CASCADE)

All calls go through the Supabase service role client and are synchronous;
the story store runs them in a worker thread under a timeout.
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Optional

from supabase import create_client, Client

from .models import (
    Appearance,
    Character,
    CharacterPhoto,
    Segment,
    Story,
    Video,
)

logger = logging.getLogger(__name__)

STORY_WITH_CHILDREN = "*, characters(*, character_photos(*)), videos(*)"

# Appearance is stored as camelCase JSON by the web client.
_APPEARANCE_COLUMNS = {
    "hair_color": "hairColor",
    "eye_color": "eyeColor",
}


class StoryRepository(ABC):
    """Remote store contract. Implementations raise on any failure."""

    @abstractmethod
    def list_stories(self, user_id: str) -> list[Story]:
        """All stories for an owner with children, newest first."""

    @abstractmethod
    def get_story(self, story_id: str) -> Optional[Story]:
        """One story with children, or None."""

    @abstractmethod
    def insert_story(self, story: Story) -> None: ...

    @abstractmethod
    def update_story(self, story_id: str, fields: dict) -> None: ...

    @abstractmethod
    def delete_story(self, story_id: str) -> None: ...

    @abstractmethod
    def insert_characters(self, characters: list[Character]) -> None: ...

    @abstractmethod
    def insert_character_photos(self, photos: list[CharacterPhoto]) -> None: ...

    @abstractmethod
    def insert_video(self, video: Video) -> None: ...


# ── Row conversion ───────────────────────────────────────────────────────────

def _appearance_to_row(appearance: Appearance) -> dict:
    data = appearance.model_dump()
    return {_APPEARANCE_COLUMNS.get(k, k): v for k, v in data.items()}


def _appearance_from_row(data: Optional[dict]) -> Appearance:
    data = data or {}
    reverse = {v: k for k, v in _APPEARANCE_COLUMNS.items()}
    return Appearance(**{
        reverse.get(k, k): v for k, v in data.items()
        if reverse.get(k, k) in Appearance.model_fields
    })


def story_to_row(story: Story) -> dict:
    metadata = dict(story.metadata)
    metadata["segments"] = [s.model_dump(mode="json") for s in story.segments]
    return {
        "id": story.id,
        "user_id": story.user_id,
        "title": story.title,
        "content": story.content,
        "theme": story.theme.value,
        "length": story.length.value,
        "status": story.status.value,
        "metadata": metadata,
        "created_at": story.created_at.isoformat(),
        "updated_at": story.updated_at.isoformat(),
    }


def character_to_row(character: Character) -> dict:
    return {
        "id": character.id,
        "story_id": character.story_id,
        "name": character.name,
        "description": character.description,
        "personality": character.personality,
        "appearance": _appearance_to_row(character.appearance),
        "role": character.role.value,
        "created_at": character.created_at.isoformat(),
    }


def character_photo_to_row(photo: CharacterPhoto) -> dict:
    return {
        "id": photo.id,
        "character_id": photo.character_id,
        "photo_url": photo.photo_url,
        "is_selected": photo.is_selected,
        "created_at": photo.created_at.isoformat(),
    }


def video_to_row(video: Video) -> dict:
    return {
        "id": video.id,
        "story_id": video.story_id,
        "video_url": video.video_url,
        "thumbnail_url": video.thumbnail_url,
        "duration": video.duration,
        "provider": video.provider.value,
        "status": video.status.value,
        "created_at": video.created_at.isoformat(),
    }


def _present(**fields) -> dict:
    """Drop NULL columns so model defaults apply."""
    return {k: v for k, v in fields.items() if v is not None}


def row_to_story(row: dict) -> Story:
    """Convert a Supabase row (with optional nested children) to a Story."""
    metadata = dict(row.get("metadata") or {})
    raw_segments = metadata.pop("segments", []) or []

    characters = [
        Character(**_present(
            id=c["id"],
            story_id=c.get("story_id") or row["id"],
            name=c["name"],
            description=c.get("description") or "",
            personality=c.get("personality") or [],
            appearance=_appearance_from_row(c.get("appearance")),
            role=c.get("role"),
            photos=[CharacterPhoto(**_present(**p)) for p in (c.get("character_photos") or [])],
            created_at=c.get("created_at"),
        ))
        for c in (row.get("characters") or [])
    ]
    videos = [
        Video(**_present(
            id=v["id"],
            story_id=v.get("story_id") or row["id"],
            video_url=v.get("video_url"),
            thumbnail_url=v.get("thumbnail_url"),
            duration=v.get("duration"),
            provider=v.get("provider"),
            status=v.get("status"),
            created_at=v.get("created_at"),
        ))
        for v in (row.get("videos") or [])
    ]
    characters.sort(key=lambda c: c.created_at)
    videos.sort(key=lambda v: v.created_at)

    return Story(**_present(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        content=row.get("content"),
        theme=row["theme"],
        length=row.get("length"),
        status=row.get("status"),
        characters=characters,
        segments=[Segment(**s) for s in raw_segments],
        videos=videos,
        metadata=metadata,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    ))


# ═════════════════════════════════════════════════════════════════════════════
# Supabase implementation
# ═════════════════════════════════════════════════════════════════════════════

class SupabaseStoryRepository(StoryRepository):
    """Story repository backed by Supabase (service role, bypasses RLS)."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    def _sb(self) -> Client:
        """Lazy-init Supabase client using service role key."""
        if self._client is None:
            url = os.getenv("SUPABASE_URL", "")
            key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
            if not url or not key:
                raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
            self._client = create_client(url, key)
        return self._client

    def list_stories(self, user_id: str) -> list[Story]:
        result = (
            self._sb().table("stories")
            .select(STORY_WITH_CHILDREN)
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [row_to_story(row) for row in (result.data or [])]

    def get_story(self, story_id: str) -> Optional[Story]:
        result = (
            self._sb().table("stories")
            .select(STORY_WITH_CHILDREN)
            .eq("id", story_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return row_to_story(rows[0]) if rows else None

    def insert_story(self, story: Story) -> None:
        self._sb().table("stories").insert(story_to_row(story)).execute()
        logger.info(f"Story {story.id} inserted")

    def update_story(self, story_id: str, fields: dict) -> None:
        self._sb().table("stories").update(fields).eq("id", story_id).execute()
        logger.info(f"Story {story_id} updated: {sorted(fields)}")

    def delete_story(self, story_id: str) -> None:
        # characters, character_photos and videos cascade in the database
        self._sb().table("stories").delete().eq("id", story_id).execute()
        logger.info(f"Story {story_id} deleted")

    def insert_characters(self, characters: list[Character]) -> None:
        if not characters:
            return
        self._sb().table("characters").insert(
            [character_to_row(c) for c in characters]
        ).execute()
        logger.info(f"Inserted {len(characters)} character(s) for story {characters[0].story_id}")

    def insert_video(self, video: Video) -> None:
        self._sb().table("videos").insert(video_to_row(video)).execute()
        logger.info(f"Video {video.id} ({video.provider.value}) inserted for story {video.story_id}")

    def insert_character_photos(self, photos: list[CharacterPhoto]) -> None:
        if not photos:
            return
        self._sb().table("character_photos").insert(
            [character_photo_to_row(p) for p in photos]
        ).execute()
        logger.info(f"Inserted {len(photos)} character photo(s)")
