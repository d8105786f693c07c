"""
Phase classifier: speech -> hybrid -> modal, evaluated as a priority-ordered guard chain.

The guards overlap; evaluation order is the tie-break. When no guard matches the
previous phase is kept (including the UNKNOWN pre-state). A history entry is appended
only when the phase actually changes to a known phase.
"""
import logging
import time
from typing import Callable, List, Optional, Tuple

from sittingroom.analysis.thresholds import PHASE_THRESHOLDS
from sittingroom.core.types import Phase, PhaseHistoryEntry, SpectralMetrics

logger = logging.getLogger(__name__)

Guard = Callable[[SpectralMetrics], bool]

_SPEECH = PHASE_THRESHOLDS["speech"]
_HYBRID = PHASE_THRESHOLDS["hybrid"]
_MODAL = PHASE_THRESHOLDS["modal"]

PHASE_RULES: Tuple[Tuple[Phase, Guard], ...] = (
    (
        Phase.SPEECH,
        lambda m: m.intelligibility > _SPEECH["intelligibility_min"] and m.flatness > _SPEECH["flatness_min"],
    ),
    (
        Phase.HYBRID,
        lambda m: m.intelligibility > _HYBRID["intelligibility_min"] and m.peak_ratio < _HYBRID["peak_ratio_max"],
    ),
    (
        Phase.MODAL,
        lambda m: m.peak_ratio > _MODAL["peak_ratio_min"] or m.flatness < _MODAL["flatness_max"],
    ),
)


def classify_phase(metrics: SpectralMetrics, previous: Phase = Phase.UNKNOWN) -> Phase:
    """First matching guard wins; no match keeps previous."""
    for phase, guard in PHASE_RULES:
        if guard(metrics):
            return phase
    return previous


def _now_ms() -> float:
    return time.monotonic() * 1000.0


class PhaseClassifier:
    """Carries the current phase between readings and logs transitions."""

    def __init__(self, clock_ms: Optional[Callable[[], float]] = None):
        self._clock_ms = clock_ms or _now_ms
        self._current = Phase.UNKNOWN
        self._history: List[PhaseHistoryEntry] = []

    @property
    def current(self) -> Phase:
        return self._current

    @property
    def history(self) -> Tuple[PhaseHistoryEntry, ...]:
        return tuple(self._history)

    def observe(self, metrics: SpectralMetrics, iteration_index: int) -> Phase:
        previous = self._current
        phase = classify_phase(metrics, previous)
        if phase != previous and phase != Phase.UNKNOWN:
            entry = PhaseHistoryEntry(iteration_index, phase, self._clock_ms())
            self._history.append(entry)
            logger.info("Phase transition at iteration %d: %s -> %s", iteration_index, previous.value, phase.value)
        self._current = phase
        return phase

    def reset(self) -> None:
        self._current = Phase.UNKNOWN
        self._history = []
