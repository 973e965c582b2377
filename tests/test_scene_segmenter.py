from animato.pipeline import scene_segmenter
from animato.pipeline.models import Character
from animato.pipeline.scene_segmenter import arc_label, scene_duration, segment_story

from conftest import make_story


def _sentences(count: int) -> str:
    return " ".join(f"Sentence number {i} tells a little more of the tale." for i in range(count))


# ── Explicit breaks ──────────────────────────────────────────────────────────

def test_markdown_headers_become_scene_titles():
    story = make_story(content=(
        "# The Map\n"
        "Mira unrolled the map in the castle.\n"
        "# The River\n"
        "The river kept moving while Mira was walking.\n"
    ))

    segments = segment_story(story)

    assert [s.title for s in segments] == ["The Map", "The River"]
    assert [s.segment_order for s in segments] == [0, 1]
    assert segments[0].content == "Mira unrolled the map in the castle."
    assert all(s.story_id == story.id for s in segments)


def test_sluglines_split_and_text_before_first_break_is_kept():
    story = make_story(content=(
        "A quiet prologue about a strange map.\n"
        "EXT. FOREST - NIGHT\n"
        "Owls watch the path.\n"
        "INT. LIBRARY - DAY\n"
        "Dust hangs in the light.\n"
    ))

    segments = segment_story(story)

    assert [s.title for s in segments] == [
        "Mystery - Scene 1",
        "EXT. FOREST - NIGHT",
        "INT. LIBRARY - DAY",
    ]


def test_transition_phrase_needs_a_scene_body_first():
    short = make_story(content="Mira packed.\nShe slept.\nThe next day she left.\n")
    assert len(segment_story(short)) == 1

    long = make_story(content=(
        "Mira packed.\nShe ate.\nShe read.\nShe slept.\n"
        "The next day the river was gone.\n"
        "Nobody noticed.\n"
    ))
    segments = segment_story(long)

    assert len(segments) == 2
    assert segments[1].content == "Nobody noticed."
    assert segments[1].title == "Story Development - Scene 2"


def test_too_many_short_scenes_are_merged():
    content = "".join(f"# Part {i}\nA brief beat.\n" for i in range(8))

    segments = segment_story(make_story(content=content))

    assert len(segments) == 4
    assert segments[0].title == "Part 0 & Part 1"
    assert segments[0].duration == 30
    assert [s.segment_order for s in segments] == [0, 1, 2, 3]


def test_six_scenes_are_not_merged():
    content = "".join(f"# Part {i}\nA brief beat.\n" for i in range(6))
    assert len(segment_story(make_story(content=content))) == 6


# ── Arc fallback ─────────────────────────────────────────────────────────────

def test_unbroken_text_follows_three_part_arc():
    segments = segment_story(make_story(content=_sentences(9)))

    assert [s.title for s in segments] == [
        "Opening - Scene 1",
        "Climax - Scene 2",
        "Resolution - Scene 3",
    ]


def test_long_unbroken_text_is_capped_at_six_scenes():
    segments = segment_story(make_story(content=_sentences(40)))

    assert len(segments) == scene_segmenter.MAX_SCENES
    assert segments[0].title.startswith("Opening")
    assert segments[-1].title.startswith("Resolution")
    assert "Sentence number 39" in segments[-1].content


def test_scene_count_never_exceeds_sentence_count():
    segments = segment_story(make_story(content=_sentences(2)))
    assert [s.title for s in segments] == ["Opening - Scene 1", "Climax - Scene 2"]


def test_text_without_full_sentences_is_one_scene():
    segments = segment_story(make_story(content="Rain. Wind. Night."))

    assert len(segments) == 1
    assert segments[0].content == "Rain. Wind. Night."


def test_empty_story_has_no_scenes():
    assert segment_story(make_story(content="")) == []
    assert segment_story(make_story(content="  \n\n ")) == []


def test_arc_labels():
    assert [arc_label(i, 4) for i in range(4)] == ["Opening", "Development", "Climax", "Resolution"]
    assert [arc_label(i, 5) for i in range(5)] == list(scene_segmenter.ARC)


# ── Scene details ────────────────────────────────────────────────────────────

def test_duration_is_clamped():
    assert scene_duration("word " * 10) == 15
    assert scene_duration("word " * 90) == 30
    assert scene_duration("word " * 600) == 60


def test_characters_named_in_a_scene_drive_its_prompt():
    story = make_story(content=(
        "# Arrival\n"
        "Mira and Tomas were walking through the castle.\n"
        "# Alone\n"
        "The wind was searching the empty street.\n"
    ))
    mira = Character(story_id=story.id, name="Mira", description="A mapmaker")
    tomas = Character(story_id=story.id, name="Tomas", description="A ferryman")
    story.characters = [mira, tomas]

    first, second = segment_story(story)

    assert first.character_id == mira.id
    assert first.visual_prompt == "Mira and Tomas in castle, walking. Cinematic lighting, detailed animation."
    assert second.character_id is None
    assert second.visual_prompt.startswith("characters in street, searching.")
