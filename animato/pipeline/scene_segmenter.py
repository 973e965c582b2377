"""
Scene segmentation — cuts a story's text into ordered Segments.

Two passes:
  1. Explicit breaks: markdown headers, screenplay sluglines (EXT./INT.),
     transitions (CUT TO, MEANWHILE, ...) and, once a scene has some body,
     time/place phrases ("the next day", "across town", ...).
  2. No breaks at all: 3–6 evenly sized scenes following a dramatic arc
     (Opening → ... → Resolution), built from the story's sentences.

Everything here is deterministic; the same story always yields the same
scenes apart from the generated segment ids.
"""

import re
import logging
from typing import Optional

from .. import presets
from .models import Character, Segment, Story

logger = logging.getLogger(__name__)

MIN_SCENES = 3
MAX_SCENES = 6
MIN_SCENE_SECONDS = 15
MAX_SCENE_SECONDS = 60
WORDS_PER_SECOND = 3
SHORT_SCENE_SECONDS = 20   # shorter scenes are merged when there are too many
MIN_SENTENCE_CHARS = 20

BREAK_MARKERS = ("EXT.", "INT.", "FADE IN", "CUT TO", "MEANWHILE", "LATER", "SUDDENLY")

# Only start a new scene once the current one has more than this many lines.
TRANSITION_MIN_LINES = 3
TRANSITION_PHRASES = (
    "the next day", "hours later", "moments later", "back at",
    "in the distance", "across town", "upstairs", "outside",
    "at the same time", "while", "chapter",
)

SCENE_THEMES = (
    ("Action Sequence", ("action", "fight", "chase")),
    ("Character Dialogue", ("dialogue", "conversation", "talk")),
    ("Discovery", ("discover", "reveal", "find")),
    ("Emotional Moment", ("emotional", "feel", "heart")),
    ("Mystery", ("mysterious", "strange", "unknown")),
)
DEFAULT_SCENE_THEME = "Story Development"

SETTINGS = (
    "forest", "castle", "city", "home", "office", "school", "park", "beach",
    "mountain", "space station", "laboratory", "restaurant", "street", "room",
)
DEFAULT_SETTING = "indoor scene"

ACTIONS = (
    "walking", "talking", "fighting", "running", "sitting", "standing",
    "looking", "searching", "discovering", "meeting", "arguing", "laughing",
)

ARC = ("Opening", "Development", "Conflict", "Climax", "Resolution")
_SHORT_ARCS = {
    3: ("Opening", "Climax", "Resolution"),
    4: ("Opening", "Development", "Climax", "Resolution"),
}

_SENTENCE_END = re.compile(r"[.!?]+")


# ── Text analysis ────────────────────────────────────────────────────────────

def _is_scene_break(line: str, current: list[str]) -> bool:
    if line.startswith("#") or any(marker in line for marker in BREAK_MARKERS):
        return True
    if len(current) <= TRANSITION_MIN_LINES:
        return False
    lowered = line.lower()
    return any(phrase in lowered for phrase in TRANSITION_PHRASES)


def _heading(line: str) -> Optional[str]:
    """Title carried by the break line itself, if any."""
    if line.startswith("#"):
        return line.lstrip("#").replace("**", "").strip() or None
    if "EXT." in line or "INT." in line:
        return line
    return None


def scene_theme(content: str) -> str:
    lowered = content.lower()
    for theme, keywords in SCENE_THEMES:
        if any(k in lowered for k in keywords):
            return theme
    return DEFAULT_SCENE_THEME


def scene_setting(content: str) -> str:
    lowered = content.lower()
    return next((s for s in SETTINGS if s in lowered), DEFAULT_SETTING)


def scene_actions(content: str) -> list[str]:
    lowered = content.lower()
    return [a for a in ACTIONS if a in lowered]


def scene_duration(content: str) -> int:
    """Seconds at three words per second, clamped to 15–60."""
    words = len(content.split())
    return max(MIN_SCENE_SECONDS, min(MAX_SCENE_SECONDS, words // WORDS_PER_SECOND))


def arc_label(index: int, total: int) -> str:
    if total <= 4:
        return _SHORT_ARCS[max(total, MIN_SCENES)][index]
    return ARC[min(index * len(ARC) // total, len(ARC) - 1)]


# ── Segment building ─────────────────────────────────────────────────────────

def _build_segment(story: Story, title: str, content: str, order: int) -> Segment:
    lowered = content.lower()
    present: list[Character] = [c for c in story.characters if c.name and c.name.lower() in lowered]
    return Segment(
        story_id=story.id,
        segment_order=order,
        title=title,
        content=content,
        character_id=present[0].id if present else None,
        duration=scene_duration(content),
        visual_prompt=presets.scene_visual_prompt(
            [c.name for c in present], scene_setting(content), scene_actions(content),
        ),
    )


def _split_at_breaks(story: Story) -> list[Segment]:
    """Scenes cut at explicit breaks; empty when the text has none."""
    lines = [line.strip() for line in (story.content or "").splitlines() if line.strip()]
    scenes: list[tuple[Optional[str], list[str]]] = []
    title: Optional[str] = None
    current: list[str] = []
    found_break = False

    for line in lines:
        if _is_scene_break(line, current):
            found_break = True
            if current:
                scenes.append((title, current))
            title, current = _heading(line), []
        else:
            current.append(line)
    if current:
        scenes.append((title, current))

    if not found_break:
        return []

    segments = []
    for order, (heading, body) in enumerate(scenes):
        content = "\n".join(body)
        title = heading or f"{scene_theme(content)} - Scene {order + 1}"
        segments.append(_build_segment(story, title, content, order))
    return segments


def _split_by_arc(story: Story) -> list[Segment]:
    """Evenly sized scenes over the story's sentences."""
    text = (story.content or "").strip()
    sentences = [s.strip() for s in _SENTENCE_END.split(text) if len(s.strip()) > MIN_SENTENCE_CHARS]
    if not sentences:
        return [_build_segment(story, f"{arc_label(0, 1)} - Scene 1", text, 0)] if text else []

    total = min(max(MIN_SCENES, len(sentences) // 3), MAX_SCENES, len(sentences))
    per_scene = len(sentences) // total

    segments = []
    for index in range(total):
        end = len(sentences) if index == total - 1 else (index + 1) * per_scene
        content = ". ".join(sentences[index * per_scene:end]) + "."
        title = f"{arc_label(index, total)} - Scene {index + 1}"
        segments.append(_build_segment(story, title, content, index))
    return segments


def _merge(first: Segment, second: Segment) -> Segment:
    return first.model_copy(update={
        "title": f"{first.title} & {second.title}",
        "content": f"{first.content}\n\n{second.content}",
        "character_id": first.character_id or second.character_id,
        "duration": (first.duration or 0) + (second.duration or 0),
        "visual_prompt": f"{first.visual_prompt} Transitions to {(second.visual_prompt or '').lower()}",
    })


def _limit_scene_count(segments: list[Segment]) -> list[Segment]:
    """With too many scenes, fold each short scene into the one after it."""
    if len(segments) <= MAX_SCENES:
        return segments

    merged: list[Segment] = []
    index = 0
    while index < len(segments):
        segment = segments[index]
        if (segment.duration or 0) < SHORT_SCENE_SECONDS and index < len(segments) - 1:
            merged.append(_merge(segment, segments[index + 1]))
            index += 2
        else:
            merged.append(segment)
            index += 1
    return [s.model_copy(update={"segment_order": order}) for order, s in enumerate(merged)]


def segment_story(story: Story) -> list[Segment]:
    """Ordered scenes for a story; empty only when the story has no text."""
    segments = _split_at_breaks(story)
    if segments:
        segments = _limit_scene_count(segments)
        logger.info(f"[{story.id}] Split into {len(segments)} scene(s) at explicit breaks")
    else:
        segments = _split_by_arc(story)
        logger.info(f"[{story.id}] No scene breaks, built {len(segments)} arc scene(s)")
    return segments
