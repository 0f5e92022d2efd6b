"""
Tests for the asyncio helpers in vidfact.core: SingleFlight and the
detached BackgroundTasks runner.
"""

import asyncio
import logging

import pytest

from vidfact.core.background import BackgroundTasks
from vidfact.core.single_flight import SingleFlight


class TestSingleFlight:
    async def test_concurrent_callers_share_one_run(self):
        flight = SingleFlight()
        calls = 0
        release = asyncio.Event()

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "report"

        first = asyncio.create_task(flight.do("vid", work))
        second = asyncio.create_task(flight.do("vid", work))
        await asyncio.sleep(0)
        assert flight.in_flight("vid")

        release.set()
        assert await asyncio.gather(first, second) == [("report", False), ("report", True)]
        assert calls == 1
        assert not flight.in_flight("vid")

    async def test_failure_reaches_every_caller_and_releases_key(self):
        flight = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            raise ValueError("boom")

        tasks = [asyncio.create_task(flight.do("vid", work)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, ValueError) for r in results)
        assert not flight.in_flight("vid")

    async def test_sequential_calls_run_again(self):
        flight = SingleFlight()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return calls

        assert await flight.do("vid", work) == (1, False)
        assert await flight.do("vid", work) == (2, False)

    async def test_different_keys_do_not_share(self):
        flight = SingleFlight()

        async def work(value):
            await asyncio.sleep(0)
            return value

        results = await asyncio.gather(
            flight.do("a", lambda: work("a")), flight.do("b", lambda: work("b"))
        )
        assert results == [("a", False), ("b", False)]

    async def test_cancelled_caller_does_not_cancel_the_run(self):
        flight = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            return "done"

        quitter = asyncio.create_task(flight.do("vid", work))
        stayer = asyncio.create_task(flight.do("vid", work))
        await asyncio.sleep(0)

        quitter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await quitter

        release.set()
        assert await stayer == ("done", True)


class TestBackgroundTasks:
    async def test_spawned_task_runs_and_is_forgotten(self):
        runner = BackgroundTasks()
        done = []

        async def job():
            done.append(True)

        runner.spawn(job(), name="job")
        assert runner.pending == 1
        await runner.drain()

        assert done == [True]
        assert runner.pending == 0

    async def test_failure_is_logged_not_raised(self, caplog):
        runner = BackgroundTasks()

        async def job():
            raise RuntimeError("db down")

        with caplog.at_level(logging.WARNING, logger="vidfact.background"):
            runner.spawn(job(), name="history-count:abc")
            await runner.drain()
            await asyncio.sleep(0)

        assert any("history-count:abc" in r.getMessage() for r in caplog.records)

    async def test_drain_cancels_stragglers(self):
        runner = BackgroundTasks()
        task = runner.spawn(asyncio.sleep(60), name="slow")

        await runner.drain(timeout=0.01)

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
