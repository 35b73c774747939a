from __future__ import annotations

import asyncio
import logging

import pytest

from pythings._events import EventEmitter
from pythings.state.scheduler import Scheduler


def test_drain_runs_fifo_including_tasks_queued_while_draining() -> None:
    scheduler = Scheduler()
    ran: list[int] = []

    def first() -> None:
        ran.append(1)
        scheduler.call_soon(ran.append, 3)

    scheduler.call_soon(first)
    scheduler.call_soon(ran.append, 2)
    assert scheduler.pending == 2
    assert ran == []

    assert scheduler.drain() == 3
    assert ran == [1, 2, 3]
    assert scheduler.pending == 0


def test_failing_task_does_not_stop_drain(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = Scheduler()
    ran: list[str] = []

    def boom() -> None:
        raise RuntimeError("boom")

    scheduler.call_soon(boom)
    scheduler.call_soon(ran.append, "after")

    with caplog.at_level(logging.ERROR, logger="pythings.state.scheduler"):
        scheduler.drain()

    assert ran == ["after"]
    assert "failed" in caplog.text


@pytest.mark.asyncio
async def test_scheduler_drains_itself_inside_running_loop() -> None:
    scheduler = Scheduler()
    ran: list[int] = []

    scheduler.call_soon(ran.append, 1)
    scheduler.call_soon(ran.append, 2)
    assert ran == []

    await asyncio.sleep(0)
    assert ran == [1, 2]
    assert scheduler.pending == 0


def test_emitter_isolates_failing_listeners() -> None:
    emitter = EventEmitter()
    seen: list[str] = []

    def bad(value: str) -> None:
        raise ValueError(value)

    emitter.on("state", bad)
    emitter.on("state", seen.append)

    assert emitter.emit("state", "x") is True
    assert seen == ["x"]
    assert emitter.emit("other") is False


def test_emitter_off() -> None:
    emitter = EventEmitter()
    seen: list[str] = []
    listener = emitter.on("state", seen.append)

    emitter.off("state", listener)
    emitter.off("state", listener)
    emitter.emit("state", "x")

    assert seen == []
    assert emitter.listener_count("state") == 0
