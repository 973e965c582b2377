import pytest

from animato import metrics
from animato.pipeline.fallback_chain import FallbackChain, GenerationKind, ProviderHandle
from animato.pipeline.models import Story, StoryTheme
from animato.pipeline.repository import StoryRepository
from animato.pipeline.story_store import StoryStore
from animato.story_locks import StoryLockRegistry
from animato.pipeline.orchestrator import StoryWorkflowService

LONG_TEXT = (
    "Once upon a time in a kingdom far away, a young mapmaker discovered that the "
    "river on her charts moved every night while the city slept."
)


class FakeRepository(StoryRepository):
    """In-memory remote store. Set `fail = True` to make every call raise."""

    def __init__(self):
        self.stories: dict[str, Story] = {}
        self.fail = False
        self.calls: list[str] = []

    def _check(self, name: str):
        self.calls.append(name)
        if self.fail:
            raise ConnectionError(f"remote store unavailable ({name})")

    def list_stories(self, user_id):
        self._check("list_stories")
        stories = [s for s in self.stories.values() if s.user_id == user_id]
        stories.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in stories]

    def get_story(self, story_id):
        self._check("get_story")
        story = self.stories.get(story_id)
        return story.model_copy(deep=True) if story else None

    def insert_story(self, story):
        self._check("insert_story")
        self.stories[story.id] = story.model_copy(deep=True)

    def update_story(self, story_id, fields):
        """Column-level PATCH: a written metadata column replaces the stored one whole."""
        self._check("update_story")
        story = self.stories[story_id]
        update = {k: v for k, v in fields.items() if k != "updated_at"}
        if "metadata" in update:
            metadata = dict(update["metadata"])
            update["segments"] = metadata.pop("segments", [])
            update["metadata"] = metadata
        self.stories[story_id] = Story.model_validate({**story.model_dump(), **update})

    def delete_story(self, story_id):
        self._check("delete_story")
        self.stories.pop(story_id, None)

    def insert_characters(self, characters):
        self._check("insert_characters")
        for character in characters:
            story = self.stories[character.story_id]
            story.characters.append(character.model_copy(deep=True))

    def insert_character_photos(self, photos):
        self._check("insert_character_photos")
        for photo in photos:
            for story in self.stories.values():
                for character in story.characters:
                    if character.id == photo.character_id:
                        character.photos.append(photo.model_copy(deep=True))

    def insert_video(self, video):
        self._check("insert_video")
        self.stories[video.story_id].videos.append(video.model_copy(deep=True))


def make_story(**overrides) -> Story:
    fields = {
        "user_id": "user-1",
        "title": "The Moving River",
        "content": LONG_TEXT,
        "theme": StoryTheme.FANTASY,
    }
    fields.update(overrides)
    return Story(**fields)


def chain_of(kind: GenerationKind, *calls, timeout: float = 5.0) -> FallbackChain:
    """Chain of named async callables; names are p0, p1, ..."""
    return FallbackChain(kind, [
        ProviderHandle(name=f"p{index}", call=call, tag=tag, timeout=timeout)
        for index, (call, tag) in enumerate(calls)
    ])


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def store(repository):
    return StoryStore(repository, timeout=2.0)


@pytest.fixture
def seeded(store, repository):
    """A story present both remotely and in the local map."""
    story = make_story()
    repository.stories[story.id] = story.model_copy(deep=True)
    store._stories[story.id] = story.model_copy(deep=True)
    return story


@pytest.fixture
def empty_chains():
    return (
        FallbackChain(GenerationKind.CHARACTERS, []),
        FallbackChain(GenerationKind.VIDEO, []),
    )


@pytest.fixture
def service(store, empty_chains):
    character_chain, video_chain = empty_chains
    return StoryWorkflowService(store, character_chain, video_chain, StoryLockRegistry())
