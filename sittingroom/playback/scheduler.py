"""
Playback scheduling over the iteration store.

Two mutually exclusive modes:
- loop: play every stored iteration in index order, 300 ms apart, wrapping to 0;
  missing indices are skipped.
- realtime: replay iteration 0 through a freshly built effect chain each pass, so
  parameter edits are heard from the next pass boundary; 100 ms between passes.

Every run carries a token. stop() (and starting another mode) bumps the token and
cancels the task; a run whose token is stale never touches scheduler state again.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import numpy as np

from sittingroom.core.errors import NoDataError
from sittingroom.core.types import Iteration, ParameterSnapshot
from sittingroom.params.canonical_defaults import SESSION_DEFAULTS
from sittingroom.playback.sinks import AudioSink, Sleep
from sittingroom.render.offline import OfflineRenderer

logger = logging.getLogger(__name__)


class PlaybackMode(str, Enum):
    IDLE = "idle"
    LOOP = "loop"
    REALTIME = "realtime"


class PlaybackScheduler:
    def __init__(
        self,
        store,
        renderer: OfflineRenderer,
        sink: AudioSink,
        params: Callable[[], ParameterSnapshot],
        sleep: Optional[Sleep] = None,
        loop_gap_s: float = SESSION_DEFAULTS["loop_gap_ms"] / 1000.0,
        realtime_gap_s: float = SESSION_DEFAULTS["realtime_gap_ms"] / 1000.0,
        render_in_thread: bool = True,
    ):
        self.store = store
        self.renderer = renderer
        self.sink = sink
        self._params = params
        self._sleep = sleep or asyncio.sleep
        self.loop_gap_s = loop_gap_s
        self.realtime_gap_s = realtime_gap_s
        self.render_in_thread = render_in_thread

        self._token = 0
        self._task: Optional[asyncio.Task] = None
        self._mode = PlaybackMode.IDLE
        self._position: Optional[int] = None
        self.passes = 0
        self.last_pass_params: Optional[ParameterSnapshot] = None
        self.last_error: Optional[BaseException] = None

    @property
    def mode(self) -> PlaybackMode:
        return self._mode

    @property
    def position(self) -> Optional[int]:
        """Index of the iteration currently playing (None when idle)."""
        return self._position

    @property
    def is_running(self) -> bool:
        return self._mode != PlaybackMode.IDLE

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self._mode.value,
            "position": self._position,
            "passes": self.passes,
            "last_error": str(self.last_error) if self.last_error else None,
        }

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start_loop(self) -> asyncio.Task:
        """
        Start sequential loop playback. Raises NoDataError if nothing is stored and
        PlaybackError if the sink cannot output; the current mode keeps running then.
        """
        loop = asyncio.get_running_loop()
        if self._next_available(0) is None:
            raise NoDataError("No recordings to play. Record something first.")
        self.sink.open()
        token = self._begin(PlaybackMode.LOOP)
        logger.info("Starting loop playback (max index %d)", self.store.latest_index())
        return self._spawn(loop, self._run_loop(token))

    def start_realtime(self) -> asyncio.Task:
        """
        Start real-time monitoring of iteration 0. Raises NoDataError without a
        recording and PlaybackError if the sink cannot output.
        """
        loop = asyncio.get_running_loop()
        if self.store.get(0) is None:
            raise NoDataError("Record something first before using real-time mode.")
        self.sink.open()
        token = self._begin(PlaybackMode.REALTIME)
        self.passes = 0
        logger.info("Real-time mode started")
        return self._spawn(loop, self._run_realtime(token))

    def stop(self) -> None:
        """Stop whichever mode is running; output is silenced immediately."""
        was = self._mode
        self._cancel()
        if was != PlaybackMode.IDLE:
            logger.info("Playback stopped (%s)", was.value)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self, mode: PlaybackMode) -> int:
        self._cancel()
        self._mode = mode
        self.last_error = None
        return self._token

    def _cancel(self) -> None:
        self._token += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self.sink.stop()
        self._mode = PlaybackMode.IDLE
        self._position = None

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro) -> asyncio.Task:
        task = loop.create_task(coro)
        task.add_done_callback(self._on_done)
        self._task = task
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.last_error = exc
            logger.error("Playback stopped on error: %s", exc)

    def _finish(self, token: int) -> None:
        if self._token != token:
            return
        self._mode = PlaybackMode.IDLE
        self._position = None
        self._task = None

    def _next_available(self, start: int) -> Optional[Iteration]:
        highest = self.store.latest_index()
        if highest < 0:
            return None
        index = start if start <= highest else 0
        for _ in range(highest + 1):
            iteration = self.store.get(index)
            if iteration is not None:
                return iteration
            index = index + 1 if index < highest else 0
        return None

    async def _run_loop(self, token: int) -> None:
        index = 0
        try:
            while self._token == token:
                iteration = self._next_available(index)
                if iteration is None:
                    logger.info("No valid buffer found, stopping loop")
                    break
                self._position = iteration.index
                logger.debug("Loop: playing iteration %d / %d", iteration.index, self.store.latest_index())
                await self.sink.play(iteration.samples, iteration.sample_rate)
                if self._token != token:
                    return
                index = iteration.index + 1
                if index > self.store.latest_index():
                    index = 0
                await self._sleep(self.loop_gap_s)
        finally:
            self._finish(token)

    async def _process(self, source: Iteration, snapshot: ParameterSnapshot) -> np.ndarray:
        if self.render_in_thread:
            return await asyncio.to_thread(
                self.renderer.process_chain, source.samples, source.sample_rate, snapshot
            )
        return self.renderer.process_chain(source.samples, source.sample_rate, snapshot)

    async def _run_realtime(self, token: int) -> None:
        try:
            while self._token == token:
                source = self.store.get(0)
                if source is None:
                    break
                # Parameters are read once per pass, never mid-buffer.
                snapshot = self._params()
                processed = await self._process(source, snapshot)
                if self._token != token:
                    return
                self.passes += 1
                self.last_pass_params = snapshot
                self._position = 0
                logger.debug("Real-time pass %d: Q=%.1f wet=%.2f", self.passes, snapshot.filter_q, snapshot.dry_wet_mix)
                await self.sink.play(processed, source.sample_rate)
                if self._token != token:
                    return
                await self._sleep(self.realtime_gap_s)
        finally:
            self._finish(token)
