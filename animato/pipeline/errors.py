"""
Error taxonomy for the story workflow.

Precondition and validation errors are fatal and reach the caller untouched.
Provider errors are absorbed by the fallback chain. Persistence errors are
degraded to warnings for writes, and propagated for delete and refetch.
"""


class WorkflowError(Exception):
    """Base class for workflow errors."""


class PreconditionError(WorkflowError, ValueError):
    """Story not found, invalid id, or otherwise not in a state to proceed."""


class WorkflowBusyError(PreconditionError):
    """Another workflow invocation already holds this story."""

    def __init__(self, story_id: str):
        super().__init__(f"Story {story_id} already has a workflow in progress")
        self.story_id = story_id


class ValidationError(WorkflowError, ValueError):
    """Malformed generation request, raised before any provider is called."""


class TransientProviderError(WorkflowError, RuntimeError):
    """Network failure, timeout or rejection from a single generation provider."""


class PersistenceError(WorkflowError, RuntimeError):
    """Remote store write, delete or read failure."""


class WorkflowCancelled(WorkflowError):
    """The caller signalled cancellation at a suspension point."""
