import asyncio

import pytest

from animato import metrics
from animato.pipeline.errors import (
    PreconditionError,
    TransientProviderError,
    ValidationError,
    WorkflowBusyError,
    WorkflowCancelled,
)
from animato.pipeline.fallback_chain import FallbackChain, GenerationKind
from animato.pipeline.models import (
    Appearance,
    AspectRatio,
    Character,
    CharacterDraft,
    CharacterPhoto,
    CharacterRole,
    Segment,
    Stage,
    StoryStatus,
    StoryTheme,
    VideoGenerationResult,
    VideoOptions,
    VideoProvider,
    VideoStatus,
)
from animato.pipeline.orchestrator import (
    PLACEHOLDER_THUMBNAIL_URL,
    PLACEHOLDER_VIDEO_URL,
    StoryWorkflowService,
    WorkflowState,
    build_video_request,
)
from animato.story_locks import StoryLockRegistry

from conftest import chain_of, make_story


def _failing(message="provider down"):
    calls = []

    async def call(request):
        calls.append(request)
        raise TransientProviderError(message)

    call.calls = calls
    return call


def _returning(value, delay=0.0):
    calls = []

    async def call(request):
        calls.append(request)
        if delay:
            await asyncio.sleep(delay)
        return value

    call.calls = calls
    return call


def _service(store, character_chain=None, video_chain=None, locks=None, photo_chain=None):
    return StoryWorkflowService(
        store,
        character_chain or FallbackChain(GenerationKind.CHARACTERS, []),
        video_chain or FallbackChain(GenerationKind.VIDEO, []),
        locks or StoryLockRegistry(),
        photo_chain=photo_chain,
    )


def _assert_well_formed(events):
    percents = [e.percent for e in events]
    assert percents == sorted(percents)
    assert [e.is_complete for e in events].count(True) == 1
    assert events[-1].is_complete


# ── Video ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_exhausted_video_chain_still_produces_a_video(store, repository, seeded):
    runway = _failing("runway 503")
    replicate = _failing("replicate 500")
    service = _service(store, video_chain=chain_of(
        GenerationKind.VIDEO, (runway, "runway"), (replicate, "replicate"),
    ))
    events = []

    result = await service.generate_video(seeded.id, progress=events.append)

    assert result.state == WorkflowState.COMPLETE
    assert result.used_fallback
    assert result.video.video_url == PLACEHOLDER_VIDEO_URL
    assert result.video.provider == VideoProvider.DEMO
    assert result.video.duration == 120
    assert result.story.status == StoryStatus.COMPLETED
    assert store.get(seeded.id).videos[0].video_url == PLACEHOLDER_VIDEO_URL
    assert repository.stories[seeded.id].videos[0].id == result.video.id
    assert len(runway.calls) == 1 and len(replicate.calls) == 1
    assert any("runway 503" in w for w in result.warnings)
    assert metrics.get_counter("videos.terminal_fallback") == 1

    assert [(e.label, e.percent) for e in events] == [
        ("Preparing Video", 75),
        ("Generating Video", 90),
        ("Video Complete", 100),
    ]
    assert events[-1].message == "Your video is ready!"
    _assert_well_formed(events)


@pytest.mark.asyncio
async def test_no_video_providers_configured_uses_placeholder(service, seeded):
    result = await service.generate_video(seeded.id)
    assert result.video.provider == VideoProvider.DEMO
    assert result.video.video_url
    assert result.warnings == []


@pytest.mark.asyncio
async def test_successful_provider_video_is_stored(store, seeded):
    replicate = _returning(VideoGenerationResult(
        external_id="pred-1",
        video_url="https://replicate.delivery/out.mp4",
        status=VideoStatus.COMPLETED,
    ))
    service = _service(store, video_chain=chain_of(
        GenerationKind.VIDEO, (_failing(), "runway"), (replicate, "replicate"),
    ))

    result = await service.generate_video(seeded.id, options=VideoOptions(duration=20))

    assert not result.used_fallback
    assert result.provider == "replicate"
    assert result.video.provider == VideoProvider.REPLICATE
    assert result.video.video_url == "https://replicate.delivery/out.mp4"
    assert result.video.thumbnail_url == PLACEHOLDER_THUMBNAIL_URL
    assert result.video.duration == 20
    assert result.video.status == VideoStatus.COMPLETED


@pytest.mark.asyncio
async def test_unfinished_provider_result_tries_next_provider(store, seeded):
    pending = _returning(VideoGenerationResult(status=VideoStatus.PROCESSING, instructions="check back"))
    finished = _returning(VideoGenerationResult(
        external_id="pred-2", video_url="https://replicate.delivery/done.mp4", status=VideoStatus.COMPLETED,
    ))
    service = _service(store, video_chain=chain_of(
        GenerationKind.VIDEO, (pending, "runway"), (finished, "replicate"),
    ))

    result = await service.generate_video(seeded.id)

    assert len(pending.calls) == 1 and len(finished.calls) == 1
    assert not result.used_fallback
    assert result.video.provider == VideoProvider.REPLICATE
    assert result.video.video_url == "https://replicate.delivery/done.mp4"


@pytest.mark.asyncio
async def test_result_without_url_from_every_provider_uses_placeholder(store, seeded):
    no_url = _returning(VideoGenerationResult(status=VideoStatus.COMPLETED, instructions="instructions only"))
    service = _service(store, video_chain=chain_of(GenerationKind.VIDEO, (no_url, "runway")))

    result = await service.generate_video(seeded.id)

    assert result.used_fallback
    assert result.video.video_url == PLACEHOLDER_VIDEO_URL
    assert any("unfinished or empty result" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_video_remote_failure_is_a_warning(store, repository, seeded):
    repository.fail = True
    result = await _service(store).generate_video(seeded.id)

    assert result.state == WorkflowState.COMPLETE
    assert store.get(seeded.id).videos[0].id == result.video.id
    assert store.get(seeded.id).status == StoryStatus.COMPLETED
    assert any("attach video" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_invalid_duration_fails_before_any_provider_call(store, repository, seeded):
    provider = _returning(VideoGenerationResult(status=VideoStatus.COMPLETED, video_url="u"))
    service = _service(store, video_chain=chain_of(GenerationKind.VIDEO, (provider, "runway")))
    events = []

    with pytest.raises(ValidationError):
        await service.generate_video(seeded.id, progress=events.append, options=VideoOptions(duration=0))

    assert provider.calls == []
    assert events == []
    assert repository.calls == []


@pytest.mark.asyncio
async def test_unknown_story_is_a_precondition_error(store, repository):
    provider = _failing()
    service = _service(store, video_chain=chain_of(GenerationKind.VIDEO, (provider, "runway")))
    events = []

    with pytest.raises(PreconditionError):
        await service.generate_video("missing", progress=events.append)

    assert provider.calls == []
    assert events == []
    assert repository.calls == []


@pytest.mark.asyncio
async def test_concurrent_run_on_same_story_is_rejected(store, seeded):
    locks = StoryLockRegistry()
    service = _service(store, locks=locks)

    async with locks.hold(seeded.id):
        with pytest.raises(WorkflowBusyError):
            await service.generate_video(seeded.id)

    result = await service.generate_video(seeded.id)
    assert result.state == WorkflowState.COMPLETE


@pytest.mark.asyncio
async def test_overlapping_runs_produce_one_video(store, seeded):
    slow = _returning(VideoGenerationResult(status=VideoStatus.COMPLETED, video_url="https://x/v.mp4"), delay=0.1)
    service = _service(store, video_chain=chain_of(GenerationKind.VIDEO, (slow, "runway")))

    results = await asyncio.gather(
        service.generate_video(seeded.id),
        service.generate_video(seeded.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, WorkflowBusyError) for r in results) == 1
    assert len(store.get(seeded.id).videos) == 1


@pytest.mark.asyncio
async def test_cancellation_stops_before_next_provider_and_writes_nothing(store, repository, seeded):
    cancel = asyncio.Event()

    async def cancelling(request):
        cancel.set()
        raise TransientProviderError("gone")

    second = _returning(VideoGenerationResult(status=VideoStatus.COMPLETED, video_url="u"))
    locks = StoryLockRegistry()
    service = _service(store, locks=locks, video_chain=chain_of(
        GenerationKind.VIDEO, (cancelling, "runway"), (second, "replicate"),
    ))
    events = []

    with pytest.raises(WorkflowCancelled):
        await service.generate_video(seeded.id, progress=events.append, cancel_event=cancel)

    assert second.calls == []
    assert repository.calls == []
    assert store.get(seeded.id).videos == []
    assert [e.percent for e in events] == [75, 90]
    assert not any(e.is_complete for e in events)
    assert not locks.is_held(seeded.id)


@pytest.mark.asyncio
async def test_failing_progress_consumer_does_not_break_the_run(service, seeded):
    def sink(event):
        raise RuntimeError("consumer crashed")

    result = await service.generate_video(seeded.id, progress=sink)
    assert result.state == WorkflowState.COMPLETE
    _assert_well_formed(result.events)


# ── Characters ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_no_character_provider_uses_theme_templates(service, seeded):
    events = []
    result = await service.generate_characters(seeded.id, progress=events.append)

    assert result.used_fallback
    assert len(result.characters) == 2
    assert all(c.story_id == seeded.id for c in result.characters)
    assert len({c.id for c in result.characters}) == 2
    assert [(e.label, e.percent) for e in events] == [
        ("Analyzing Story", 10),
        ("Creating Characters", 40),
        ("Characters Generated", 70),
    ]
    _assert_well_formed(events)


@pytest.mark.asyncio
async def test_provider_characters_are_attached(store, repository, seeded):
    drafts = [
        CharacterDraft(name="Mira", description="A young mapmaker", role=CharacterRole.PROTAGONIST),
        CharacterDraft(name="The River", description="It moves at night"),
    ]
    provider = _returning(drafts)
    service = _service(store, character_chain=chain_of(GenerationKind.CHARACTERS, (provider, None)))

    result = await service.generate_characters(seeded.id)

    assert not result.used_fallback
    assert [c.name for c in result.characters] == ["Mira", "The River"]
    assert [c.name for c in store.get(seeded.id).characters] == ["Mira", "The River"]
    assert [c.name for c in repository.stories[seeded.id].characters] == ["Mira", "The River"]
    assert provider.calls[0].theme == StoryTheme.FANTASY
    assert provider.calls[0].story_text == seeded.content


@pytest.mark.asyncio
async def test_failed_character_provider_falls_back_to_templates(store, seeded):
    service = _service(store, character_chain=chain_of(
        GenerationKind.CHARACTERS, (_failing("quota exceeded"), None),
    ))
    result = await service.generate_characters(seeded.id)

    assert result.used_fallback
    assert len(result.characters) == 2
    assert any("quota exceeded" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_characters_survive_remote_failure(store, repository, seeded):
    repository.fail = True
    result = await _service(store).generate_characters(seeded.id)

    assert result.state == WorkflowState.COMPLETE
    local = store.get(seeded.id)
    assert [c.id for c in local.characters] == [c.id for c in result.characters]
    assert repository.stories[seeded.id].characters == []
    assert len(store.warnings(seeded.id)) == 1
    assert result.warnings == [store.warnings(seeded.id)[0].message]


@pytest.mark.asyncio
async def test_character_request_for_unknown_story(service):
    with pytest.raises(PreconditionError):
        await service.generate_characters("missing")


# ── Scenes ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_segments_are_cut_from_story_and_persisted(service, repository, seeded):
    events = []
    result = await service.generate_segments(seeded.id, progress=events.append)

    assert result.state == WorkflowState.COMPLETE
    assert result.segments
    assert [s.segment_order for s in result.segments] == list(range(len(result.segments)))
    assert [s.id for s in repository.stories[seeded.id].segments] == [s.id for s in result.segments]
    assert [(e.label, e.percent) for e in events] == [
        ("Analyzing Scenes", 45),
        ("Segmenting Story", 50),
        ("Scenes Created", 60),
    ]
    _assert_well_formed(events)


@pytest.mark.asyncio
async def test_story_without_text_cannot_be_segmented(store, repository):
    from animato.pipeline.mutations import CreateStory

    story = make_story(content="")
    await store.apply(CreateStory(story))
    repository.calls.clear()
    events = []

    with pytest.raises(ValidationError):
        await _service(store).generate_segments(story.id, progress=events.append)

    assert events == []
    assert repository.calls == []


# ── Character portraits ──────────────────────────────────────────────────────

async def _with_cast(service, story_id):
    await service.generate_characters(story_id)


@pytest.mark.asyncio
async def test_portraits_without_providers_use_designed_portraits(service, store, repository, seeded):
    await _with_cast(service, seeded.id)
    events = []

    result = await service.generate_character_photos(seeded.id, progress=events.append)

    assert result.used_fallback
    assert len(result.photos) == 2
    assert all(p.is_selected for p in result.photos)
    assert all(p.photo_url.startswith("https://images.unsplash.com/") for p in result.photos)
    for character in store.get(seeded.id).characters:
        assert character.primary_photo_url
    assert all(c.photos for c in repository.stories[seeded.id].characters)
    assert [e.percent for e in events] == [40, 55, 70]
    _assert_well_formed(events)
    assert metrics.get_counter("photos.terminal_fallback") == 2


@pytest.mark.asyncio
async def test_portrait_provider_falls_through_to_next(store, seeded):
    empty = _returning("")
    sdxl = _returning("https://replicate.delivery/portrait.png")
    service = _service(store, photo_chain=chain_of(GenerationKind.PHOTOS, (empty, None), (sdxl, None)))
    await _with_cast(service, seeded.id)

    result = await service.generate_character_photos(seeded.id)

    assert not result.used_fallback
    assert {p.photo_url for p in result.photos} == {"https://replicate.delivery/portrait.png"}
    assert "Professional character portrait of" in sdxl.calls[0].prompt
    assert len(empty.calls) == 2


@pytest.mark.asyncio
async def test_failed_portrait_providers_warn_and_use_designed_portrait(store, seeded):
    service = _service(store, photo_chain=chain_of(GenerationKind.PHOTOS, (_failing("sdxl 500"), None)))
    await _with_cast(service, seeded.id)

    result = await service.generate_character_photos(seeded.id)

    assert result.used_fallback
    assert len(result.photos) == 2
    assert any("sdxl 500" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_characters_with_photos_are_skipped(service, store, seeded):
    await _with_cast(service, seeded.id)
    await service.generate_character_photos(seeded.id)

    again = await service.generate_character_photos(seeded.id)

    assert again.photos == []
    assert all(len(c.photos) == 1 for c in store.get(seeded.id).characters)


@pytest.mark.asyncio
async def test_portraits_need_characters(service, seeded):
    with pytest.raises(PreconditionError):
        await service.generate_character_photos(seeded.id)


def test_designed_portrait_is_stable_per_character():
    from animato import presets

    appearance = Appearance(gender="Male", ethnicity="Asian", hair_color="black")
    first = presets.designed_portrait_url("Kenji", appearance)

    assert first == presets.designed_portrait_url("Kenji", appearance)
    assert any(pid in first for pid in presets.DESIGNED_PORTRAITS["male-asian"])
    unknown = presets.designed_portrait_url("Kenji", Appearance(gender="unknown"))
    assert any(pid in unknown for pid in presets.DESIGNED_PORTRAITS[presets.DEFAULT_PORTRAIT_KEY])


# ── Advance / request building ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_advance_follows_derived_stage(service, store, seeded):
    first = await service.advance(seeded.id)
    assert first.characters
    assert service.stage(seeded.id).stage == Stage.SCENE_SEGMENTATION

    second = await service.advance(seeded.id)
    assert second.segments
    assert [e.percent for e in second.events] == [45, 50, 60]
    assert service.stage(seeded.id).stage == Stage.VIDEO_GENERATION

    third = await service.advance(seeded.id)
    assert third.video is not None
    assert service.stage(seeded.id).stage == Stage.COMPLETED

    with pytest.raises(PreconditionError):
        await service.advance(seeded.id)


@pytest.mark.asyncio
async def test_advance_rejects_unfinished_text(store):
    from animato.pipeline.mutations import CreateStory

    story = make_story(content="Short.")
    await store.apply(CreateStory(story))
    with pytest.raises(PreconditionError):
        await _service(store).advance(story.id)


def test_request_from_segments_clamps_durations():
    story = make_story()
    story.segments = [
        Segment(story_id=story.id, segment_order=1, content="Night falls", duration=30),
        Segment(story_id=story.id, segment_order=0, content="", duration=2, visual_prompt="A river at dawn"),
        Segment(story_id=story.id, segment_order=2, content="The map burns"),
    ]

    request = build_video_request(story, VideoOptions(aspect_ratio=AspectRatio.VERTICAL))

    assert [s.description for s in request.scenes] == ["Scene 1", "Night falls", "The map burns"]
    assert [s.duration for s in request.scenes] == [5, 10, 8]
    assert request.scenes[0].visual_prompt == "A river at dawn"
    assert request.scenes[1].visual_prompt == "Night falls. Cinematic style, high quality."
    assert request.prompt == f"fantasy story: {story.content[:300]}"
    assert request.aspect_ratio == AspectRatio.VERTICAL
    assert request.duration == 30


def test_request_without_segments_has_one_synthetic_scene():
    story = make_story(theme=StoryTheme.SCI_FI, content="z" * 500)
    request = build_video_request(story)

    assert len(request.scenes) == 1
    scene = request.scenes[0]
    assert scene.description == "z" * 200
    assert scene.duration == 10
    assert scene.visual_prompt == "sci-fi themed story scene. Professional cinematography."


def test_request_carries_character_photos():
    story = make_story()
    character = Character(story_id=story.id, name="Mira", description="A mapmaker")
    character.photos = [
        CharacterPhoto(character_id=character.id, photo_url="https://p/1.jpg"),
        CharacterPhoto(character_id=character.id, photo_url="https://p/2.jpg", is_selected=True),
    ]
    story.characters = [character]

    request = build_video_request(story)
    assert request.characters[0].photo_url == "https://p/2.jpg"
