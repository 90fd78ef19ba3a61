from __future__ import annotations

import asyncio
import threading
import time

from textual.widgets import Input

import ribtrace.app
from ribtrace.app import RibTraceApp
from ribtrace.models import ChainStatus
from ribtrace.registry import build_snapshot


async def _wait_for(pilot, condition, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, "timed out waiting on the app"
        await pilot.pause(0.05)


def _traced(app: RibTraceApp) -> list[str]:
    return [str(r.destination) for r in app._results]


def test_initial_destinations_are_traced_after_the_build(capture_dir):
    app = RibTraceApp(str(capture_dir), "r1", destinations=["192.168.204.204"])

    async def scenario():
        async with app.run_test() as pilot:
            await _wait_for(pilot, lambda: app._results)
            assert not app._building

    asyncio.run(scenario())

    assert _traced(app) == ["192.168.204.204"]
    [result] = app._results
    assert result.status == ChainStatus.COMPLETE
    assert len(result.paths) == 2


def test_destination_entered_during_a_build_is_traced_once_it_finishes(
        capture_dir, monkeypatch):
    gate = threading.Event()

    def slow_build(*args, **kwargs):
        gate.wait(5)
        return build_snapshot(*args, **kwargs)

    monkeypatch.setattr(ribtrace.app, "build_snapshot", slow_build)
    app = RibTraceApp(str(capture_dir), "r1")

    async def scenario():
        async with app.run_test() as pilot:
            await pilot.pause()
            assert app._building

            dest_input = app.query_one("#dest-input", Input)
            dest_input.focus()
            dest_input.value = "192.168.204.204"
            await pilot.press("enter")
            await pilot.pause()

            assert dest_input.value == ""
            assert app._pending == ["192.168.204.204"]

            gate.set()
            await _wait_for(pilot, lambda: app._results)
            assert app._pending == []

    asyncio.run(scenario())

    assert _traced(app) == ["192.168.204.204"]


def test_failed_build_keeps_queued_destinations(tmp_path):
    app = RibTraceApp(str(tmp_path / "missing"), "r1", destinations=["10.0.0.1"])

    async def scenario():
        async with app.run_test() as pilot:
            await _wait_for(pilot, lambda: any(
                evt.event == "build_failed" for evt, _ in app._all_logs))
            assert not app._building

    asyncio.run(scenario())

    assert app._results == []
    assert app._pending == ["10.0.0.1"]
