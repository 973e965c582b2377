import asyncio

import pytest

from animato.pipeline.models import ProgressEvent
from animato.pipeline.progress import ProgressReporter, ProgressStream


def test_reporter_records_and_forwards_events():
    seen = []
    reporter = ProgressReporter(seen.append, "s1")
    reporter.emit("Preparing Video", 75, "Preparing video generation...")
    reporter.emit("Video Complete", 100, "Your video is ready!", is_complete=True)

    assert seen == reporter.events
    assert reporter.closed


def test_percent_never_goes_backwards():
    reporter = ProgressReporter()
    reporter.emit("A", 40, "a")
    with pytest.raises(ValueError):
        reporter.emit("B", 10, "b")


def test_nothing_is_emitted_after_close():
    seen = []
    reporter = ProgressReporter(seen.append)
    reporter.emit("A", 10, "a")
    reporter.close()
    reporter.emit("B", 40, "b")
    assert [e.label for e in seen] == ["A"]


@pytest.mark.asyncio
async def test_stream_ends_after_completion_event():
    stream = ProgressStream()

    async def produce():
        stream.push(ProgressEvent(label="A", percent=75, message="a"))
        await asyncio.sleep(0)
        stream.push(ProgressEvent(label="B", percent=100, message="b", is_complete=True))

    producer = asyncio.create_task(produce())
    labels = [event.label async for event in stream]
    await producer
    assert labels == ["A", "B"]


@pytest.mark.asyncio
async def test_finish_ends_stream_without_completion():
    stream = ProgressStream()
    stream.push(ProgressEvent(label="A", percent=75, message="a"))
    stream.finish()
    assert [event.label async for event in stream] == ["A"]
