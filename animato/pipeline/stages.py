"""
Stage classification: which production step a story is at, derived purely
from what the story currently contains. Nothing here is ever persisted.
"""

from .models import NextAction, Stage, StageDescriptor, Story

# Body text longer than this is considered ready for character extraction.
STORY_READY_MIN_CHARS = 100

STAGE_ORDER = (
    Stage.STORY_EDITING,
    Stage.CHARACTER_EXTRACTION,
    Stage.SCENE_SEGMENTATION,
    Stage.VIDEO_GENERATION,
    Stage.COMPLETED,
)

_DESCRIPTORS = {
    Stage.COMPLETED: StageDescriptor(
        stage=Stage.COMPLETED, percent=100,
        label="Video Ready", next_action=NextAction.VIEW_RESULT,
    ),
    Stage.VIDEO_GENERATION: StageDescriptor(
        stage=Stage.VIDEO_GENERATION, percent=85,
        label="Ready for Video", next_action=NextAction.GENERATE_VIDEO,
    ),
    Stage.SCENE_SEGMENTATION: StageDescriptor(
        stage=Stage.SCENE_SEGMENTATION, percent=60,
        label="Segment Scenes", next_action=NextAction.CONTINUE_CREATION,
    ),
    Stage.CHARACTER_EXTRACTION: StageDescriptor(
        stage=Stage.CHARACTER_EXTRACTION, percent=40,
        label="Extract Characters", next_action=NextAction.CONTINUE_CREATION,
    ),
    Stage.STORY_EDITING: StageDescriptor(
        stage=Stage.STORY_EDITING, percent=20,
        label="Complete Story", next_action=NextAction.CONTINUE_WRITING,
    ),
}


def classify_stage(story: Story) -> StageDescriptor:
    """
    Return the stage descriptor for a story snapshot.

    First match wins: a video, then segments, then characters, then enough
    body text. Status and timestamps are never consulted.
    """
    if story.videos:
        stage = Stage.COMPLETED
    elif story.segments:
        stage = Stage.VIDEO_GENERATION
    elif story.characters:
        stage = Stage.SCENE_SEGMENTATION
    elif len(story.content or "") > STORY_READY_MIN_CHARS:
        stage = Stage.CHARACTER_EXTRACTION
    else:
        stage = Stage.STORY_EDITING
    return _DESCRIPTORS[stage].model_copy()


def stage_rank(stage: Stage) -> int:
    """Position of a stage in the production order, 0 = story-editing."""
    return STAGE_ORDER.index(stage)
