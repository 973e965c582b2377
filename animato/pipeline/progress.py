"""
Progress event channel for one workflow invocation.

The orchestrator emits through a ProgressReporter; the caller supplies the
sink. Percent never decreases, the completion flag is set exactly once on
the final event, and a closed reporter (completed or cancelled) emits nothing.
"""

import asyncio
import logging
from typing import Callable, Optional

from .models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


class ProgressReporter:
    def __init__(self, sink: Optional[ProgressSink] = None, story_id: str = ""):
        self._sink = sink
        self._story_id = story_id
        self._last_percent = 0
        self._closed = False
        self.events: list[ProgressEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, label: str, percent: int, message: str, is_complete: bool = False):
        if self._closed:
            return
        if percent < self._last_percent:
            raise ValueError(
                f"Progress went backwards for story {self._story_id}: "
                f"{percent}% after {self._last_percent}%"
            )
        self._last_percent = percent
        event = ProgressEvent(label=label, percent=percent, message=message, is_complete=is_complete)
        self.events.append(event)
        if is_complete:
            self._closed = True
        logger.info(f"[{self._story_id}] {label} ({percent}%) {message}")

        if self._sink is None:
            return
        # Fire-and-forget: a failing consumer never breaks the workflow.
        try:
            self._sink(event)
        except Exception as e:
            logger.error(f"[{self._story_id}] Progress consumer raised: {e}", exc_info=True)

    def close(self):
        """Stop emitting, e.g. after cancellation."""
        self._closed = True


class ProgressStream:
    """
    Async-iterable sink, for streaming events to an HTTP response.

    Usage:
        stream = ProgressStream()
        task = asyncio.create_task(service.generate_video(story_id, progress=stream.push))
        async for event in stream:
            ...
    """

    _DONE = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, event: ProgressEvent):
        self._queue.put_nowait(event)
        if event.is_complete:
            self._queue.put_nowait(self._DONE)

    def finish(self):
        """End the stream without a completion event (error or cancellation)."""
        self._queue.put_nowait(self._DONE)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is self._DONE:
            raise StopAsyncIteration
        return item
