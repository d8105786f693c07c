"""
Session engine: the explicit owner of everything one "sitting in a room" run needs.

- store: append-only iterations (0 = conditioned capture)
- params: the current ParameterSnapshot, swapped atomically (last write wins)
- classifier: current phase + transition history
- render gate: at most one render in flight; a second request is rejected, not queued
- scheduler: loop / real-time playback over the store
- randomizer: parameter draws for randomized batches, with their log

reset() bumps a generation counter so renders and batches started before the reset
cannot write into the fresh session.
"""
import asyncio
import logging
import threading
from typing import Any, List, Optional, Tuple

import numpy as np

from sittingroom.analysis import analyze, spectrum_snapshot
from sittingroom.analysis.phase import PhaseClassifier
from sittingroom.core.errors import (
    NoDataError,
    RenderBusyError,
    RenderError,
    SequenceError,
    SittingRoomError,
)
from sittingroom.core.types import (
    Iteration,
    ParameterLogEntry,
    ParameterSnapshot,
    Phase,
    PhaseHistoryEntry,
    SpectralMetrics,
)
from sittingroom.dsp.postchain import PostChain
from sittingroom.params.canonical_defaults import DEV, RESONANCE_COUNT, ROOM_PRESETS, SESSION_DEFAULTS
from sittingroom.params.clamp import clamp_if_bounds, clamp_snapshot
from sittingroom.params.randomizer import ParameterRandomizer
from sittingroom.params.schema import SESSION_SCHEMA
from sittingroom.playback.scheduler import PlaybackScheduler
from sittingroom.playback.sinks import AudioSink, NullSink, Sleep
from sittingroom.render.offline import OfflineRenderer, as_tensor
from sittingroom.session.store import IterationStore

logger = logging.getLogger(__name__)


class RoomSession:
    def __init__(
        self,
        sink: Optional[AudioSink] = None,
        renderer: Optional[OfflineRenderer] = None,
        randomizer: Optional[ParameterRandomizer] = None,
        sleep: Optional[Sleep] = None,
        max_iterations: int = SESSION_DEFAULTS["max_iterations"],
        batch_gap_s: float = SESSION_DEFAULTS["batch_gap_ms"] / 1000.0,
        render_in_thread: bool = True,
        clock_ms=None,
        params: Optional[ParameterSnapshot] = None,
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.store = IterationStore()
        self.renderer = renderer or OfflineRenderer()
        self.randomizer = randomizer or ParameterRandomizer()
        self.classifier = PhaseClassifier(clock_ms)
        self.max_iterations = int(max_iterations)
        self.batch_gap_s = batch_gap_s
        self.render_in_thread = render_in_thread
        self._sleep = sleep or asyncio.sleep

        self._params = clamp_snapshot(params or ParameterSnapshot())
        self._params_lock = threading.Lock()

        self._rendering = False
        self._generation = 0
        self._batch_token = 0
        self._batch_running = False
        self.last_batch_error: Optional[BaseException] = None

        self.scheduler = PlaybackScheduler(
            self.store,
            self.renderer,
            sink or NullSink(self._sleep),
            self.get_params,
            sleep=self._sleep,
            render_in_thread=render_in_thread,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def latest_index(self) -> int:
        return self.store.latest_index()

    @property
    def current_phase(self) -> Phase:
        return self.classifier.current

    @property
    def phase_history(self) -> Tuple[PhaseHistoryEntry, ...]:
        return self.classifier.history

    @property
    def parameter_log(self) -> Tuple[ParameterLogEntry, ...]:
        return self.randomizer.log

    @property
    def rendering(self) -> bool:
        return self._rendering

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    def iteration(self, index: int) -> Optional[Iteration]:
        return self.store.get(index)

    def iterations(self) -> List[Iteration]:
        return list(self.store)

    def status(self) -> dict:
        return {
            "latest_index": self.latest_index,
            "max_iterations": self.max_iterations,
            "phase": self.current_phase.value,
            "rendering": self._rendering,
            "batch_running": self._batch_running,
            "batch_error": str(self.last_batch_error) if self.last_batch_error else None,
            "playback": self.scheduler.status(),
        }

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def params(self) -> ParameterSnapshot:
        return self.get_params()

    def get_params(self) -> ParameterSnapshot:
        with self._params_lock:
            return self._params

    def set_params(self, snapshot: ParameterSnapshot) -> ParameterSnapshot:
        """Swap in a whole snapshot (clamped to the schema). Takes effect at the next pass or render."""
        clamped = clamp_snapshot(snapshot)
        with self._params_lock:
            self._params = clamped
        return clamped

    def update_params(self, **changes: Any) -> ParameterSnapshot:
        """
        Change some fields of the current snapshot.
        Editing room_resonances directly detaches the snapshot from its named preset.
        """
        if "room_resonances" in changes and "room_preset" not in changes:
            changes["room_preset"] = None
        with self._params_lock:
            requested = ParameterSnapshot.from_dict({**self._params.to_dict(), **changes})
            snapshot = clamp_snapshot(requested)
            self._params = snapshot
        if DEV and snapshot != requested:
            clamped = [name for name in changes if getattr(snapshot, name) != getattr(requested, name)]
            logger.warning("[Parameter Contract] Values clamped to schema bounds: %s", clamped)
        logger.debug("Parameters updated: %s", sorted(changes))
        return snapshot

    def set_max_iterations(self, count: int) -> int:
        """
        Change the iteration cap (clamped to the session schema, 4..32). Running batches
        pick it up before their next step; iterations already stored are kept.
        """
        entry = SESSION_SCHEMA["max_iterations"]
        self.max_iterations = int(clamp_if_bounds(int(count), entry["min"], entry["max"]))
        logger.info("Iteration cap set to %d", self.max_iterations)
        return self.max_iterations

    def select_room_preset(self, name: str) -> ParameterSnapshot:
        if name not in ROOM_PRESETS:
            raise ValueError(f"Unknown room preset '{name}'. Choose from {list(ROOM_PRESETS)}")
        logger.info("Room preset: %s", name)
        return self.update_params(room_resonances=tuple(ROOM_PRESETS[name]), room_preset=name)

    def set_resonance(self, position: int, freq_hz: float) -> ParameterSnapshot:
        """Set one of the 8 resonance frequencies, keeping the others in order."""
        if not 0 <= position < RESONANCE_COUNT:
            raise ValueError(f"Resonance position must be 0..{RESONANCE_COUNT - 1}, got {position}")
        resonances = list(self.get_params().room_resonances)
        resonances[position] = float(freq_hz)
        return self.update_params(room_resonances=tuple(resonances))

    def randomize_parameters(self, iteration_index: Optional[int] = None) -> ParameterSnapshot:
        """Draw and apply a random snapshot, logged against the iteration it will produce."""
        if iteration_index is None:
            iteration_index = self.latest_index + 1
        with self._params_lock:
            self._params = clamp_snapshot(self.randomizer.randomize(self._params, iteration_index))
            return self._params

    # ------------------------------------------------------------------
    # Capture and rendering
    # ------------------------------------------------------------------

    def capture(self, samples, sample_rate: int, condition: bool = True) -> Iteration:
        """
        Store a recording as iteration 0. By default it is conditioned first
        (peak-normalized, 50 ms / 150 ms cosine fades).
        """
        if len(self.store):
            raise SequenceError("A recording already exists; reset the session before capturing again")
        if sample_rate <= 0:
            raise RenderError(f"Invalid sample rate: {sample_rate}")
        x = as_tensor(samples)
        if condition:
            x = PostChain.condition_capture(x, sample_rate)
        buffer = x.numpy().astype(np.float32)
        spectrum, metrics = self._analyze(buffer, sample_rate)
        iteration = self._append(buffer, sample_rate, spectrum, metrics, None, 0)
        logger.info(
            "Recording captured: %.2fs at %d Hz, phase %s",
            iteration.duration_seconds,
            sample_rate,
            iteration.metrics.phase.value,
        )
        return iteration

    async def advance(self, params: Optional[ParameterSnapshot] = None) -> Optional[Iteration]:
        """
        Render the next iteration from the latest one.

        Raises RenderBusyError if a render is in flight, NoDataError on an empty
        session and SequenceError once max_iterations is reached. Returns None if
        the session was reset while rendering (the result is discarded).
        """
        if self._rendering:
            raise RenderBusyError("A render is already in progress")
        source = self.store.latest()
        if source is None:
            raise NoDataError("No recording yet. Capture audio before processing iterations.")
        next_index = source.index + 1
        if next_index >= self.max_iterations:
            raise SequenceError(f"Maximum of {self.max_iterations} iterations reached")

        snapshot = params if params is not None else self.get_params()
        generation = self._generation
        self._rendering = True
        try:
            if self.render_in_thread:
                samples, spectrum, metrics = await asyncio.to_thread(self._render, source, snapshot)
            else:
                samples, spectrum, metrics = self._render(source, snapshot)
        finally:
            self._rendering = False

        if generation != self._generation:
            logger.info("Session reset during render; discarding iteration %d", next_index)
            return None
        iteration = self._append(samples, source.sample_rate, spectrum, metrics, snapshot, next_index)
        logger.info("Iteration %d complete, phase %s", next_index, iteration.metrics.phase.value)
        return iteration

    def _render(self, source: Iteration, snapshot: ParameterSnapshot):
        samples = self.renderer.render(source.samples, source.sample_rate, snapshot)
        spectrum, metrics = self._analyze(samples, source.sample_rate)
        return samples, spectrum, metrics

    @staticmethod
    def _analyze(samples: np.ndarray, sample_rate: int) -> Tuple[np.ndarray, SpectralMetrics]:
        spectrum = spectrum_snapshot(samples)
        return spectrum, analyze(spectrum, sample_rate / 2.0)

    def _append(self, samples, sample_rate, spectrum, metrics, snapshot, index) -> Iteration:
        phase = self.classifier.observe(metrics, index)
        return self.store.append(samples, sample_rate, spectrum, metrics.with_phase(phase), snapshot, index=index)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def auto_process(self) -> List[Iteration]:
        """Render with the current parameters until max_iterations is reached."""
        return await self._run_batch(randomize=False)

    async def random_batch(self) -> List[Iteration]:
        """Randomize the parameters before every step, until max_iterations is reached."""
        return await self._run_batch(randomize=True)

    def stop_batch(self) -> None:
        if self._batch_running:
            logger.info("Batch stopped at iteration %d", self.latest_index)
        self._batch_token += 1
        self._batch_running = False

    async def _run_batch(self, randomize: bool) -> List[Iteration]:
        if self._batch_running:
            raise RenderBusyError("A batch is already running")
        if self.store.latest() is None:
            raise NoDataError("No recording yet. Capture audio before processing iterations.")

        self._batch_token += 1
        token = self._batch_token
        self._batch_running = True
        self.last_batch_error = None
        produced: List[Iteration] = []
        mode = "random" if randomize else "auto"
        logger.info("Starting %s batch from iteration %d", mode, self.latest_index)
        try:
            while self._batch_token == token:
                next_index = self.latest_index + 1
                if next_index >= self.max_iterations:
                    logger.info("%s batch complete: %d iterations", mode.capitalize(), self.latest_index + 1)
                    break
                snapshot = self.randomize_parameters(next_index) if randomize else None
                iteration = await self.advance(snapshot)
                if iteration is None or self._batch_token != token:
                    break
                produced.append(iteration)
                if next_index + 1 < self.max_iterations:
                    await self._sleep(self.batch_gap_s)
        except SittingRoomError as exc:
            self.last_batch_error = exc
            logger.error("%s batch aborted after iteration %d: %s", mode.capitalize(), self.latest_index, exc)
            raise
        finally:
            if self._batch_token == token:
                self._batch_running = False
        return produced

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Stop playback and batches and clear every iteration, the phase state and the parameter log."""
        self._generation += 1
        self.stop_batch()
        self.scheduler.stop()
        self.store.reset()
        self.classifier.reset()
        self.randomizer.reset()
        self.last_batch_error = None
        logger.info("Session reset")
