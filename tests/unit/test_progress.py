import io

import pytest

from b2client._http.iter_coroutine import iter_coroutine
from b2client._pipeline import PartProgress
from b2client.progress import (
    ProgressTracker,
    StreamingBodyWithProgress,
    iter_with_progress,
    make_progress_event,
)


def test_make_progress_event():
    event = make_progress_event(5, 10)
    assert event.loaded == 5
    assert event.total == 10
    assert event.length_computable is True
    assert event.progress == 0.5
    assert event.percentage == 50.0


def test_unknown_total_is_not_computable():
    event = make_progress_event(42, 0)
    assert event.length_computable is False
    assert event.progress == 0.0


def test_tracker_isolates_callback_failures():
    seen = []

    def callback(event):
        seen.append(event.loaded)
        raise RuntimeError("observer bug")

    tracker = ProgressTracker(callback, 10)
    tracker.advance(4)
    tracker.advance(6)

    assert seen == [4, 10]
    assert tracker.loaded == 10


def test_streaming_body_reports_every_chunk():
    seen = []
    body = StreamingBodyWithProgress(io.BytesIO(b"x" * 3000), lambda e: seen.append(e.loaded), 1024)

    assert b"".join(body) == b"x" * 3000
    assert seen == [1024, 2048, 3000]
    assert body.total == 3000


@pytest.mark.asyncio
async def test_streaming_body_async_iteration():
    seen = []
    body = StreamingBodyWithProgress(b"y" * 2048, lambda e: seen.append(e.loaded), 1024)

    chunks = [chunk async for chunk in body]

    assert b"".join(chunks) == b"y" * 2048
    assert seen == [1024, 2048]


def test_measured_progress_follows_wire_bytes():
    # decoded chunks of 8 bytes, read from 3 bytes on the wire each
    wire = iter([3, 6, 9])
    seen = []
    tracker = ProgressTracker(lambda e: seen.append(e.loaded), 9)

    chunks = list(iter_with_progress([b"a" * 8] * 3, tracker, measure=lambda: next(wire, 9)))

    assert len(chunks) == 3
    assert seen == [3, 6, 9]
    assert tracker.loaded == tracker.total


def test_part_progress_is_monotone_across_part_retries():
    events = []
    progress = PartProgress(events.append, 20)

    part1 = progress.for_part(1)
    part2 = progress.for_part(2)
    part1(make_progress_event(8, 10))
    part2(make_progress_event(5, 10))
    # part 1 retried from scratch
    part1(make_progress_event(2, 10))
    iter_coroutine(progress.complete(1, 10))
    iter_coroutine(progress.complete(2, 10))
    iter_coroutine(progress.finish())

    loaded = [event.loaded for event in events]
    assert loaded == sorted(loaded)
    assert all(value <= 20 for value in loaded)
    assert events[-1].loaded == 20
    assert events[-1].percentage == 100.0


def test_part_progress_without_callback():
    progress = PartProgress(None, 10)
    assert progress.for_part(1) is None
    iter_coroutine(progress.finish())
