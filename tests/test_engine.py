from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pyalbumart.models.tile import SourceResult, Tile
from pyalbumart.polling.engine import PollingEngine
from pyalbumart.sources._base import DynamicSource, StaticSource


def _t(tile_id: str) -> Tile:
    return Tile(id=tile_id, src=f"https://img.example/{tile_id}.jpg")


class ScriptedSource:
    """Returns queued results (or raises queued exceptions) per call."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _engine(scheduler: Any, emitted: list[list[Tile]], **kwargs: Any) -> PollingEngine:
    engine = PollingEngine(scheduler, **kwargs)
    engine.subscribe(emitted.append)
    return engine


@pytest.mark.asyncio
async def test_first_poll_is_armed_immediately(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)
    source = ScriptedSource(SourceResult(tiles=[_t("a")]))

    handle = engine.start(source, max_tiles=2, poll_ms=10_000)

    assert [t.delay for t in scheduler.pending] == [0]
    assert source.calls == 0
    await scheduler.fire()

    assert source.calls == 1
    assert [[t.id for t in batch] for batch in emitted] == [["a", "placeholder-1"]]
    assert handle.next_delay_ms == 10_000
    assert [t.delay for t in scheduler.pending] == [10.0]


@pytest.mark.asyncio
async def test_retry_hint_overrides_poll_interval(scheduler: Any) -> None:
    engine = _engine(scheduler, [])
    source = ScriptedSource(SourceResult(tiles=[], retry_ms=5_000), {"tiles": [], "retryMs": 0})

    handle = engine.start(source, max_tiles=1, poll_ms=10_000)
    await scheduler.fire()
    assert handle.next_delay_ms == 5_000
    assert scheduler.pending[0].delay == 5.0

    # Non-positive hints fall back to the poll interval.
    await scheduler.fire()
    assert handle.next_delay_ms == 10_000


@pytest.mark.asyncio
async def test_fetch_error_keeps_tiles_and_backs_off(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted, error_retry_ms=30_000)
    source = ScriptedSource(SourceResult(tiles=[_t("a")]), RuntimeError("boom"))

    handle = engine.start(source, max_tiles=1, poll_ms=10_000)
    await scheduler.fire()
    await scheduler.fire()

    assert len(emitted) == 1
    assert [t.id for t in engine.tiles] == ["a"]
    assert handle.next_delay_ms == 30_000
    assert engine.last_error is not None
    assert isinstance(engine.last_error.__cause__, RuntimeError)
    assert engine.running


@pytest.mark.asyncio
async def test_fetch_error_ignores_earlier_retry_hint(scheduler: Any) -> None:
    engine = _engine(scheduler, [], error_retry_ms=30_000)
    source = ScriptedSource(SourceResult(retry_ms=5_000), RuntimeError("boom"), SourceResult(tiles=[]))

    handle = engine.start(source, max_tiles=1, poll_ms=10_000)
    await scheduler.fire()
    assert handle.next_delay_ms == 5_000

    await scheduler.fire()
    assert handle.next_delay_ms == 30_000
    assert scheduler.pending[0].delay == 30.0

    await scheduler.fire()
    assert handle.next_delay_ms == 10_000
    assert engine.last_error is None


@pytest.mark.asyncio
async def test_malformed_result_counts_as_fetch_error(scheduler: Any) -> None:
    engine = _engine(scheduler, [])
    source = ScriptedSource({"tiles": [{"id": ""}]})

    handle = engine.start(source, max_tiles=1, poll_ms=10_000)
    await scheduler.fire()

    assert engine.last_error is not None
    assert handle.next_delay_ms == 30_000


def test_static_source_emits_once_without_timer(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)

    engine.start(["https://img.example/1.jpg", {"id": "b", "src": "https://img.example/b.jpg"}], max_tiles=3)

    assert len(emitted) == 1
    assert [t.id for t in emitted[0]] == ["https://img.example/1.jpg", "b", "placeholder-2"]
    assert scheduler.timers == []


def test_empty_static_source_emits_placeholders_once(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)

    engine.start(StaticSource(entries=()), max_tiles=2)
    engine.start(StaticSource(entries=()), max_tiles=2)

    assert [[t.id for t in batch] for batch in emitted] == [["placeholder-0", "placeholder-1"]]


@pytest.mark.asyncio
async def test_identical_batch_does_not_emit(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)
    batch = SourceResult(tiles=[_t("a"), _t("b")])
    source = ScriptedSource(batch, batch, SourceResult(tiles=[_t("b"), _t("a")]))

    engine.start(source, max_tiles=2, poll_ms=1_000)
    await scheduler.fire()
    await scheduler.fire()
    assert len(emitted) == 1

    # Same ids in a different order is a change.
    await scheduler.fire()
    assert len(emitted) == 2


@pytest.mark.asyncio
async def test_backfill_uses_previous_stable_set(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)
    source = ScriptedSource(
        SourceResult(tiles=[_t("a"), _t("b"), _t("c")]),
        SourceResult(tiles=[_t("d")]),
    )

    engine.start(source, max_tiles=3, poll_ms=1_000)
    await scheduler.fire()
    await scheduler.fire()

    assert [t.id for t in emitted[-1]] == ["d", "a", "b"]


@pytest.mark.asyncio
async def test_stop_cancels_pending_timer(scheduler: Any) -> None:
    engine = _engine(scheduler, [])
    source = ScriptedSource()

    engine.start(source, max_tiles=1, poll_ms=1_000)
    timer = scheduler.pending[0]
    engine.stop()
    engine.stop()

    assert timer.cancelled
    assert scheduler.pending == []
    assert not engine.running
    assert source.calls == 0


@pytest.mark.asyncio
async def test_stop_during_fetch_discards_result(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)
    release = asyncio.Event()

    async def slow_fetch() -> SourceResult:
        await release.wait()
        return SourceResult(tiles=[_t("late")])

    engine.start(DynamicSource(fetch=slow_fetch), max_tiles=1, poll_ms=1_000)
    cycle = asyncio.ensure_future(scheduler.fire())
    await asyncio.sleep(0)
    engine.stop()
    release.set()
    await cycle

    assert emitted == []
    assert engine.tiles == []
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_restart_replaces_previous_run(scheduler: Any) -> None:
    engine = _engine(scheduler, [])
    first = engine.start(ScriptedSource(), max_tiles=1, poll_ms=1_000)
    first_timer = scheduler.pending[0]

    second = engine.start(ScriptedSource(SourceResult()), max_tiles=1, poll_ms=1_000)

    assert first.stopped
    assert first_timer.cancelled
    assert not second.stopped
    assert len(scheduler.pending) == 1


def test_reset_forgets_stable_tiles(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = _engine(scheduler, emitted)
    engine.start([_t("a")], max_tiles=1)

    engine.reset()
    engine.start([], max_tiles=1)

    assert [t.id for t in emitted[-1]] == ["placeholder-0"]


def test_unsubscribe_stops_notifications(scheduler: Any) -> None:
    emitted: list[list[Tile]] = []
    engine = PollingEngine(scheduler)
    unsubscribe = engine.subscribe(emitted.append)
    unsubscribe()

    engine.start([_t("a")], max_tiles=1)

    assert emitted == []
    assert [t.id for t in engine.tiles] == ["a"]


@pytest.mark.parametrize(("max_tiles", "poll_ms"), [(0, 1_000), (1, 0), (1, -5)])
def test_start_rejects_invalid_arguments(scheduler: Any, max_tiles: int, poll_ms: int) -> None:
    engine = PollingEngine(scheduler)
    with pytest.raises(ValueError):
        engine.start([], max_tiles=max_tiles, poll_ms=poll_ms)


def test_start_rejects_non_source(scheduler: Any) -> None:
    engine = PollingEngine(scheduler)
    with pytest.raises(TypeError):
        engine.start("https://img.example/a.jpg")  # type: ignore[arg-type]
