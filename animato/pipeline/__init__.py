"""
Story Workflow Pipeline

Drives a story from text to finished video:
  Stage       — derived from the story's content (stages.classify_stage)
  Characters  — provider chain → template cast fallback
  Portraits   — provider chain → designed portrait fallback
  Scenes      — deterministic split of the story text (scene_segmenter)
  Video       — provider chain → placeholder video fallback
  Persistence — optimistic local writes, remote failures as warnings
"""

from .orchestrator import StoryWorkflowService, WorkflowState
from .story_service import StoryService
from .story_store import StoryStore
from .models import Stage, StoryStatus

__all__ = [
    "StoryWorkflowService",
    "WorkflowState",
    "StoryService",
    "StoryStore",
    "Stage",
    "StoryStatus",
]
