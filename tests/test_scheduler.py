"""
Playback scheduler tests on a virtual clock: loop order, real-time pass boundaries,
mutual exclusion and race-free cancellation.
Run from project root: python -m pytest tests/test_scheduler.py -v
"""
import sys
import os
import asyncio
import heapq

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest

from sittingroom.core.errors import NoDataError, PlaybackError
from sittingroom.core.types import Iteration, ParameterSnapshot, SpectralMetrics
from sittingroom.playback.scheduler import PlaybackMode, PlaybackScheduler
from sittingroom.playback.sinks import AudioSink

SR = 1000
BUFFER_S = 0.1


class VirtualClock:
    """Replaces asyncio.sleep: sleepers wake only when advance() moves time past their deadline."""

    def __init__(self):
        self.now = 0.0
        self._sleepers = []
        self._seq = 0

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + max(seconds, 0.0), self._seq, future))
        self._seq += 1
        await future

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target + 1e-9:
            deadline, _, future = heapq.heappop(self._sleepers)
            self.now = max(self.now, deadline)
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, f in self._sleepers if not f.done())


class RecordingSink(AudioSink):
    def __init__(self, clock: VirtualClock):
        self.clock = clock
        self.played = []
        self.stops = 0

    async def play(self, samples, sample_rate):
        self.played.append((self.clock.now, np.array(samples)))
        await self.clock.sleep(len(samples) / float(sample_rate))

    def stop(self):
        self.stops += 1


class SparseStore:
    """Store double with arbitrary (gappy) indices; samples are filled with the index value."""

    def __init__(self, indices):
        metrics = SpectralMetrics(0.0, 0.0, 0.0, 0.0, 0.0)
        self._items = {
            i: Iteration(i, np.full(int(SR * BUFFER_S), float(i), dtype=np.float32), SR, np.zeros(8), metrics)
            for i in indices
        }

    def get(self, index):
        return self._items.get(index)

    def latest_index(self):
        return max(self._items) if self._items else -1


class RecordingRenderer:
    def __init__(self):
        self.calls = []

    def process_chain(self, samples, sample_rate, snapshot):
        self.calls.append(snapshot)
        return np.asarray(samples) * 0.5


def _scheduler(store, clock, renderer=None, params=ParameterSnapshot):
    sink = RecordingSink(clock)
    scheduler = PlaybackScheduler(
        store,
        renderer or RecordingRenderer(),
        sink,
        params,
        sleep=clock.sleep,
        render_in_thread=False,
    )
    return scheduler, sink


# -----------------------------------------------------------------------------
# Loop
# -----------------------------------------------------------------------------

def test_loop_visits_stored_indices_in_order_and_wraps():
    async def scenario():
        clock = VirtualClock()
        scheduler, sink = _scheduler(SparseStore([0, 2, 4]), clock)
        scheduler.start_loop()
        assert scheduler.mode == PlaybackMode.LOOP
        # Each step is 0.1 s of audio + 0.3 s gap: six plays start at 0.0 .. 2.0
        await clock.advance(2.2)
        visits = [int(samples[0]) for _, samples in sink.played]
        starts = [round(t, 6) for t, _ in sink.played]
        scheduler.stop()
        await clock.settle()
        return visits, starts

    visits, starts = asyncio.run(scenario())
    assert visits == [0, 2, 4, 0, 2, 4], f"loop visited {visits}"
    assert starts == [0.0, 0.4, 0.8, 1.2, 1.6, 2.0]


def test_loop_position_tracks_playing_index():
    async def scenario():
        clock = VirtualClock()
        scheduler, _ = _scheduler(SparseStore([0, 1]), clock)
        scheduler.start_loop()
        await clock.advance(0.05)
        first = scheduler.position
        await clock.advance(0.4)
        second = scheduler.position
        scheduler.stop()
        return first, second, scheduler.position, scheduler.is_running

    first, second, after, running = asyncio.run(scenario())
    assert (first, second) == (0, 1)
    assert after is None and not running


def test_loop_on_empty_store_raises():
    async def scenario():
        scheduler, _ = _scheduler(SparseStore([]), VirtualClock())
        with pytest.raises(NoDataError):
            scheduler.start_loop()
        assert scheduler.mode == PlaybackMode.IDLE

    asyncio.run(scenario())


def test_loop_picks_up_new_iterations():
    async def scenario():
        clock = VirtualClock()
        store = SparseStore([0])
        scheduler, sink = _scheduler(store, clock)
        scheduler.start_loop()
        await clock.advance(0.2)
        store._items[1] = Iteration(1, np.full(100, 1.0, dtype=np.float32), SR, np.zeros(8), store.get(0).metrics)
        await clock.advance(1.0)
        scheduler.stop()
        return [int(s[0]) for _, s in sink.played]

    visits = asyncio.run(scenario())
    assert visits[:4] == [0, 0, 1, 0]


# -----------------------------------------------------------------------------
# Real-time
# -----------------------------------------------------------------------------

def test_realtime_reads_params_at_pass_boundaries_only():
    async def scenario():
        clock = VirtualClock()
        current = {"snap": ParameterSnapshot(filter_q=10.0)}
        renderer = RecordingRenderer()
        scheduler, sink = _scheduler(SparseStore([0]), clock, renderer, params=lambda: current["snap"])
        scheduler.start_realtime()
        await clock.advance(0.05)
        current["snap"] = ParameterSnapshot(filter_q=90.0)  # mid-buffer edit
        await clock.advance(0.1)
        mid = [s.filter_q for s in renderer.calls]
        await clock.advance(0.1)
        scheduler.stop()
        return mid, [s.filter_q for s in renderer.calls], sink.played

    mid, calls, played = asyncio.run(scenario())
    assert mid == [10.0], "edit must not apply before the 100 ms restart"
    assert calls == [10.0, 90.0]
    np.testing.assert_allclose(played[0][1], np.zeros(100))  # iteration 0 holds index value 0
    assert [round(t, 6) for t, _ in played] == [0.0, 0.2]


def test_realtime_requires_iteration_zero():
    async def scenario():
        scheduler, _ = _scheduler(SparseStore([]), VirtualClock())
        with pytest.raises(NoDataError):
            scheduler.start_realtime()

    asyncio.run(scenario())


def test_cancel_realtime_mid_buffer_fires_nothing_later():
    async def scenario():
        clock = VirtualClock()
        renderer = RecordingRenderer()
        scheduler, sink = _scheduler(SparseStore([0]), clock, renderer)
        scheduler.start_realtime()
        await clock.advance(0.05)
        assert len(sink.played) == 1
        scheduler.stop()
        stops_at_cancel = sink.stops
        # Well past the end of the buffer and the 100 ms restart window
        await clock.advance(0.5)
        return (
            len(sink.played),
            len(renderer.calls),
            scheduler.passes,
            scheduler.mode,
            scheduler.position,
            sink.stops - stops_at_cancel,
            clock.pending,
        )

    plays, renders, passes, mode, position, extra_stops, pending = asyncio.run(scenario())
    assert plays == 1 and renders == 1 and passes == 1
    assert mode == PlaybackMode.IDLE and position is None
    assert extra_stops == 0
    assert pending == 0


def test_cancel_during_restart_gap():
    async def scenario():
        clock = VirtualClock()
        scheduler, sink = _scheduler(SparseStore([0]), clock)
        scheduler.start_realtime()
        await clock.advance(0.15)  # buffer done, waiting out the gap
        scheduler.stop()
        await clock.advance(1.0)
        return len(sink.played)

    assert asyncio.run(scenario()) == 1


# -----------------------------------------------------------------------------
# Mode exclusion
# -----------------------------------------------------------------------------

def test_starting_one_mode_stops_the_other():
    async def scenario():
        clock = VirtualClock()
        renderer = RecordingRenderer()
        scheduler, sink = _scheduler(SparseStore([0, 1]), clock, renderer)
        scheduler.start_loop()
        await clock.advance(0.05)
        scheduler.start_realtime()
        assert scheduler.mode == PlaybackMode.REALTIME
        await clock.advance(1.0)
        modes = scheduler.mode
        scheduler.start_loop()
        await clock.advance(0.05)
        renders_before = len(renderer.calls)
        await clock.advance(1.0)
        scheduler.stop()
        return modes, sink.played, renders_before, len(renderer.calls)

    mode, played, renders_before, renders_after = asyncio.run(scenario())
    assert mode == PlaybackMode.REALTIME
    # The loop never resumed after real-time started: no iteration-1 buffers in that window
    realtime_window = [s for t, s in played if 0.05 <= t < 1.05]
    assert all(float(np.max(np.abs(s))) == 0.0 for s in realtime_window)
    assert renders_after == renders_before, "real-time kept rendering after the loop took over"


def test_stop_is_idempotent():
    async def scenario():
        scheduler, sink = _scheduler(SparseStore([0]), VirtualClock())
        scheduler.stop()
        scheduler.stop()
        return scheduler.mode, sink.stops

    mode, stops = asyncio.run(scenario())
    assert mode == PlaybackMode.IDLE
    assert stops == 2


def test_render_failure_stops_realtime():
    class FailingRenderer:
        def process_chain(self, samples, sample_rate, snapshot):
            raise RuntimeError("boom")

    async def scenario():
        clock = VirtualClock()
        scheduler, sink = _scheduler(SparseStore([0]), clock, FailingRenderer())
        task = scheduler.start_realtime()
        await clock.advance(0.1)
        return task.done(), scheduler.mode, scheduler.status()["last_error"], sink.played

    done, mode, error, played = asyncio.run(scenario())
    assert done
    assert mode == PlaybackMode.IDLE
    assert error == "boom"
    assert played == []

def test_unavailable_sink_fails_before_starting():
    class UnavailableSink(RecordingSink):
        def open(self):
            raise PlaybackError("no output device")

    async def scenario():
        clock = VirtualClock()
        sink = UnavailableSink(clock)
        scheduler = PlaybackScheduler(
            SparseStore([0, 1]), RecordingRenderer(), sink, ParameterSnapshot,
            sleep=clock.sleep, render_in_thread=False,
        )
        with pytest.raises(PlaybackError):
            scheduler.start_loop()
        with pytest.raises(PlaybackError):
            scheduler.start_realtime()
        await clock.advance(0.5)
        return scheduler.mode, sink.played, clock.pending

    mode, played, pending = asyncio.run(scenario())
    assert mode == PlaybackMode.IDLE
    assert played == []
    assert pending == 0, "no playback task may be left behind"



if __name__ == "__main__":
    pytest.main([__file__, "-v"])
