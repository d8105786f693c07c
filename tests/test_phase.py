"""
Tests for sittingroom/analysis/phase: priority-ordered guards and transition history.
Run from project root: python -m pytest tests/test_phase.py -v
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from sittingroom.analysis.metrics import intelligibility
from sittingroom.analysis.phase import PHASE_RULES, PhaseClassifier, classify_phase
from sittingroom.core.types import Phase, SpectralMetrics


def _m(intel: float, flatness: float, peak_ratio: float) -> SpectralMetrics:
    return SpectralMetrics(
        centroid_hz=1000.0,
        flatness=flatness,
        peak_ratio=peak_ratio,
        bandwidth_hz=500.0,
        intelligibility=intel,
    )


def _consistent(flatness: float, peak_ratio: float) -> SpectralMetrics:
    """Metrics whose intelligibility follows from flatness and peak ratio, as analyze() produces."""
    return _m(intelligibility(flatness, peak_ratio), flatness, peak_ratio)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

def test_rule_order():
    assert [phase for phase, _ in PHASE_RULES] == [Phase.SPEECH, Phase.HYBRID, Phase.MODAL]


def test_speech():
    assert classify_phase(_m(0.8, 0.5, 0.3)) == Phase.SPEECH


def test_hybrid():
    assert classify_phase(_m(0.4, 0.25, 0.3)) == Phase.HYBRID


def test_modal_on_high_peak_ratio():
    assert classify_phase(_m(0.1, 0.25, 0.9)) == Phase.MODAL


def test_modal_on_low_flatness():
    assert classify_phase(_m(0.1, 0.1, 0.4)) == Phase.MODAL


@pytest.mark.parametrize("flatness", [0.0, 0.05, 0.1, 0.2, 0.3, 0.35])
def test_peak_ratio_09_is_modal_for_analyzed_metrics(flatness):
    """A 0.9 peak ratio pins intelligibility low enough that only the modal guard can match."""
    assert classify_phase(_consistent(flatness, 0.9)) == Phase.MODAL


def test_overlapping_guards_first_match_wins():
    # Matches speech, hybrid and modal
    m = _m(0.9, 0.35, 0.6)
    assert classify_phase(m) == Phase.SPEECH
    # Matches hybrid and modal
    m = _m(0.5, 0.1, 0.6)
    assert classify_phase(m) == Phase.HYBRID


def test_no_match_keeps_previous():
    ambiguous = _m(0.2, 0.25, 0.45)
    assert classify_phase(ambiguous, Phase.HYBRID) == Phase.HYBRID
    assert classify_phase(ambiguous, Phase.SPEECH) == Phase.SPEECH
    assert classify_phase(ambiguous) == Phase.UNKNOWN


# -----------------------------------------------------------------------------
# Classifier state
# -----------------------------------------------------------------------------

def test_history_records_changes_only():
    ticks = iter(range(0, 1000, 10))
    clf = PhaseClassifier(clock_ms=lambda: float(next(ticks)))
    assert clf.current == Phase.UNKNOWN
    clf.observe(_m(0.8, 0.5, 0.3), 0)   # speech
    clf.observe(_m(0.9, 0.6, 0.2), 1)   # speech again: no entry
    clf.observe(_m(0.4, 0.25, 0.3), 2)  # hybrid
    clf.observe(_m(0.2, 0.25, 0.45), 3) # ambiguous: stays hybrid
    clf.observe(_m(0.0, 0.01, 0.95), 4) # modal
    assert clf.current == Phase.MODAL
    history = clf.history
    assert [(e.iteration_index, e.phase) for e in history] == [
        (0, Phase.SPEECH),
        (2, Phase.HYBRID),
        (4, Phase.MODAL),
    ]
    assert [e.timestamp_ms for e in history] == [0.0, 10.0, 20.0]


def test_ambiguous_first_reading_stays_unknown_without_history():
    clf = PhaseClassifier()
    assert clf.observe(_m(0.2, 0.25, 0.45), 0) == Phase.UNKNOWN
    assert clf.history == ()


def test_reset():
    clf = PhaseClassifier()
    clf.observe(_m(0.8, 0.5, 0.3), 0)
    clf.reset()
    assert clf.current == Phase.UNKNOWN
    assert clf.history == ()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
