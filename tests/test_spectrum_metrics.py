"""
Tests for sittingroom/analysis: spectrum snapshot and spectral metrics.
Run from project root: python -m pytest tests/test_spectrum_metrics.py -v
"""
import sys
import os
import math

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest

from sittingroom.analysis import analyze, classify_phase, spectrum_snapshot
from sittingroom.analysis.metrics import (
    dominant_peaks,
    intelligibility,
    peak_ratio,
    spectral_centroid,
    spectral_flatness,
)
from sittingroom.analysis.thresholds import SPECTRUM_BINS, SPECTRUM_MAX
from sittingroom.core.types import Phase

SR = 44100
NYQUIST = SR / 2.0
BIN_HZ = NYQUIST / SPECTRUM_BINS


def _sine(freq: float, seconds: float = 0.5) -> np.ndarray:
    t = np.arange(int(SR * seconds)) / SR
    return (0.5 * np.sin(2 * math.pi * freq * t)).astype(np.float32)


# -----------------------------------------------------------------------------
# Snapshot
# -----------------------------------------------------------------------------

def test_snapshot_shape_and_scale():
    spec = spectrum_snapshot(_sine(1000.0))
    assert spec.shape == (SPECTRUM_BINS,)
    assert float(np.max(spec)) <= SPECTRUM_MAX + 1e-3
    assert float(np.min(spec)) >= 0.0


def test_snapshot_locates_tone():
    spec = spectrum_snapshot(_sine(1000.0))
    loudest_hz = int(np.argmax(spec)) * BIN_HZ
    assert abs(loudest_hz - 1000.0) < 6 * BIN_HZ
    assert abs(spectral_centroid(spec.astype(np.float64), NYQUIST) - 1000.0) < 100.0


def test_snapshot_of_silence_is_zero():
    spec = spectrum_snapshot(np.zeros(4096, dtype=np.float32))
    assert not np.any(spec)


def test_snapshot_of_short_buffer():
    spec = spectrum_snapshot(_sine(440.0, seconds=0.01))
    assert spec.shape == (SPECTRUM_BINS,)
    assert np.all(np.isfinite(spec))


# -----------------------------------------------------------------------------
# Metrics
# -----------------------------------------------------------------------------

def test_single_bin_spectrum():
    """All energy at one bin near 600 Hz: peaky, tonal, modal."""
    spec = np.zeros(SPECTRUM_BINS)
    spec[28] = 200.0
    m = analyze(spec, NYQUIST)
    assert m.peak_ratio > 0.8
    assert m.flatness < 0.01
    assert m.dominant_peaks, "expected a dominant peak"
    assert abs(m.dominant_peaks[0].freq_hz - 600.0) < BIN_HZ
    assert m.dominant_peaks[0].bin == 28
    assert m.intelligibility == 0.0
    assert classify_phase(m) == Phase.MODAL


def test_flat_spectrum():
    spec = np.full(SPECTRUM_BINS, 50.0)
    m = analyze(spec, NYQUIST)
    assert m.flatness == pytest.approx(1.0, abs=1e-6)
    assert m.peak_ratio == pytest.approx(10.0 / SPECTRUM_BINS)
    assert m.centroid_hz == pytest.approx(np.mean(np.arange(SPECTRUM_BINS) * BIN_HZ))
    assert m.intelligibility == 1.0
    assert m.dominant_peaks == ()


def test_metrics_stay_in_unit_range():
    rng = np.random.default_rng(0)
    for _ in range(20):
        spec = rng.random(SPECTRUM_BINS) ** rng.integers(1, 8) * 200.0
        m = analyze(spec, NYQUIST)
        assert 0.0 <= m.flatness <= 1.0
        assert 0.0 <= m.peak_ratio <= 1.0
        assert 0.0 <= m.intelligibility <= 1.0
        assert m.bandwidth_hz >= 0.0


def test_zero_spectrum():
    m = analyze(np.zeros(SPECTRUM_BINS), NYQUIST)
    assert m.centroid_hz == 0.0
    assert m.peak_ratio == 0.0
    assert m.bandwidth_hz == 0.0


def test_negative_or_nan_rejected():
    spec = np.ones(SPECTRUM_BINS)
    spec[3] = -1.0
    with pytest.raises(ValueError):
        analyze(spec, NYQUIST)
    spec[3] = np.nan
    with pytest.raises(ValueError):
        analyze(spec, NYQUIST)


def test_bandwidth_of_two_tones():
    spec = np.zeros(SPECTRUM_BINS)
    spec[100] = 100.0
    spec[300] = 100.0
    m = analyze(spec, NYQUIST)
    assert m.centroid_hz == pytest.approx(200 * BIN_HZ)
    assert m.bandwidth_hz == pytest.approx(100 * BIN_HZ)


def test_dominant_peaks_need_both_neighbours_each_side():
    spec = np.zeros(SPECTRUM_BINS)
    spec[50] = 100.0
    spec[52] = 100.0  # second-nearest neighbour equal: neither qualifies
    spec[200] = 80.0
    spec[400] = 20.0  # below the magnitude threshold
    spec[600] = 150.0
    peaks = dominant_peaks(spec, NYQUIST)
    assert [p.bin for p in peaks] == [600, 200]


def test_dominant_peaks_capped_at_five():
    spec = np.zeros(SPECTRUM_BINS)
    for k, i in enumerate(range(100, 900, 100)):
        spec[i] = 40.0 + k
    peaks = dominant_peaks(spec, NYQUIST)
    assert len(peaks) == 5
    amps = [p.amplitude for p in peaks]
    assert amps == sorted(amps, reverse=True)


def test_pure_functions_are_repeatable():
    spec = spectrum_snapshot(_sine(700.0)).astype(np.float64)
    assert analyze(spec, NYQUIST) == analyze(spec.copy(), NYQUIST)
    assert spectral_flatness(spec) == spectral_flatness(spec)
    assert peak_ratio(spec) == peak_ratio(spec)


def test_intelligibility_formula():
    assert intelligibility(0.5, 0.2) == pytest.approx(1.0)
    assert intelligibility(0.2, 0.6) == pytest.approx(0.4)
    assert intelligibility(0.0, 1.0) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
