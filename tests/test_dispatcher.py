"""Tests for the bounded generation worker pool."""

import asyncio
from uuid import UUID, uuid4

import pytest

from shootx.services.exceptions import CapacityError
from shootx.workers.generation_dispatcher import GenerationDispatcher


class Handler:
    def __init__(self, fail_on: set[UUID] | None = None):
        self.fail_on = fail_on or set()
        self.seen: list[UUID] = []

    async def __call__(self, job_id: UUID) -> None:
        self.seen.append(job_id)
        if job_id in self.fail_on:
            raise RuntimeError("handler exploded")


def test_reserve_rejects_past_max_pending():
    dispatcher = GenerationDispatcher(Handler(), workers=1, max_pending=2)

    dispatcher.reserve()
    dispatcher.reserve()

    with pytest.raises(CapacityError):
        dispatcher.reserve()
    assert dispatcher.pending == 2

    dispatcher.release()
    dispatcher.reserve()
    assert dispatcher.pending == 2


def test_release_never_goes_negative():
    dispatcher = GenerationDispatcher(Handler(), workers=1, max_pending=1)

    dispatcher.release()

    assert dispatcher.pending == 0


@pytest.mark.parametrize("kwargs", [{"workers": 0}, {"max_pending": 0}])
def test_invalid_sizes_rejected(kwargs):
    with pytest.raises(ValueError):
        GenerationDispatcher(Handler(), **kwargs)


@pytest.mark.asyncio
async def test_processes_queued_jobs_and_releases_slots():
    handler = Handler()
    dispatcher = GenerationDispatcher(handler, workers=2, max_pending=5)
    dispatcher.start()
    job_ids = [uuid4() for _ in range(4)]

    try:
        for job_id in job_ids:
            dispatcher.reserve()
            dispatcher.enqueue(job_id)
        await dispatcher.join()
    finally:
        await dispatcher.stop()

    assert sorted(handler.seen) == sorted(job_ids)
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_worker():
    bad, good = uuid4(), uuid4()
    handler = Handler(fail_on={bad})
    dispatcher = GenerationDispatcher(handler, workers=1, max_pending=5)
    dispatcher.start()

    try:
        for job_id in (bad, good):
            dispatcher.reserve()
            dispatcher.enqueue(job_id)
        await dispatcher.join()
        assert dispatcher.running
    finally:
        await dispatcher.stop()

    assert handler.seen == [bad, good]
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_stop_cancels_blocked_workers():
    started = asyncio.Event()

    async def blocking_handler(job_id: UUID) -> None:
        started.set()
        await asyncio.Event().wait()

    dispatcher = GenerationDispatcher(blocking_handler, workers=1, max_pending=2)
    dispatcher.start()
    dispatcher.reserve()
    dispatcher.enqueue(uuid4())
    await started.wait()

    await dispatcher.stop()

    assert not dispatcher.running


@pytest.mark.asyncio
async def test_start_is_idempotent():
    dispatcher = GenerationDispatcher(Handler(), workers=3)
    dispatcher.start()
    tasks = list(dispatcher._tasks)

    dispatcher.start()

    assert dispatcher._tasks == tasks
    await dispatcher.stop()
