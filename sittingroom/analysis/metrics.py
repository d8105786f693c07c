"""
Spectral metrics for a spectrum snapshot.
Pure functions of (spectrum, nyquist): no hidden state, so any stored snapshot can be
re-analyzed later and give the same numbers.
"""
from typing import List, Sequence

import numpy as np

from sittingroom.analysis.spectrum import bin_frequency
from sittingroom.analysis.thresholds import (
    FLATNESS_EPSILON,
    MAX_DOMINANT_PEAKS,
    PEAK_MAGNITUDE_MIN,
    TOP_BINS_FOR_PEAK_RATIO,
)
from sittingroom.core.types import Phase, SpectralMetrics, SpectralPeak


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def _frequencies(n: int, nyquist: float) -> np.ndarray:
    return np.arange(n, dtype=np.float64) * nyquist / n


def spectral_centroid(spectrum: np.ndarray, nyquist: float) -> float:
    """Energy-weighted mean frequency; 0 for an all-zero spectrum."""
    total = float(np.sum(spectrum))
    if total <= 0:
        return 0.0
    return float(np.sum(_frequencies(spectrum.shape[0], nyquist) * spectrum) / total)


def spectral_flatness(spectrum: np.ndarray) -> float:
    """
    Wiener entropy: geometric mean / arithmetic mean over bins 1..N-1 (DC excluded),
    each bin biased by a small epsilon. Near 0 for tonal spectra, near 1 for flat ones.
    """
    bins = spectrum[1:] + FLATNESS_EPSILON
    if bins.shape[0] == 0:
        return 0.0
    arithmetic = float(np.mean(bins))
    if arithmetic <= 0:
        return 0.0
    geometric = float(np.exp(np.mean(np.log(bins))))
    return _clamp01(geometric / arithmetic)


def peak_ratio(spectrum: np.ndarray) -> float:
    """Share of total energy held by the 10 largest bins."""
    total = float(np.sum(spectrum))
    if total <= 0:
        return 0.0
    top = np.sort(spectrum)[::-1][:TOP_BINS_FOR_PEAK_RATIO]
    return _clamp01(float(np.sum(top)) / total)


def spectral_bandwidth(spectrum: np.ndarray, nyquist: float, centroid: float) -> float:
    """Energy-weighted standard deviation of frequency around the centroid."""
    total = float(np.sum(spectrum))
    if total <= 0:
        return 0.0
    deviation = _frequencies(spectrum.shape[0], nyquist) - centroid
    return float(np.sqrt(np.sum(spectrum * deviation ** 2) / total))


def dominant_peaks(spectrum: np.ndarray, nyquist: float, max_peaks: int = MAX_DOMINANT_PEAKS) -> List[SpectralPeak]:
    """
    Local maxima strictly above both neighbors on each side (distance 1 and 2) and above
    PEAK_MAGNITUDE_MIN, loudest first.
    """
    n = spectrum.shape[0]
    peaks = []
    for i in range(2, n - 2):
        amp = spectrum[i]
        if (
            amp > PEAK_MAGNITUDE_MIN
            and amp > spectrum[i - 1] and amp > spectrum[i + 1]
            and amp > spectrum[i - 2] and amp > spectrum[i + 2]
        ):
            peaks.append(SpectralPeak(bin_frequency(i, n, nyquist), float(amp), i))
    peaks.sort(key=lambda p: p.amplitude, reverse=True)
    return peaks[:max_peaks]


def intelligibility(flatness: float, ratio: float) -> float:
    """Heuristic speech-likeness: clamp(2 * flatness - 0.5 * peak_ratio + 0.3, 0, 1)."""
    return _clamp01(flatness * 2.0 - ratio * 0.5 + 0.3)


def analyze(spectrum: Sequence[float], nyquist: float) -> SpectralMetrics:
    """
    Compute all metrics for one spectrum snapshot.
    The returned phase is UNKNOWN; PhaseClassifier assigns it.
    """
    spec = np.asarray(spectrum, dtype=np.float64).reshape(-1)
    if spec.shape[0] == 0:
        return SpectralMetrics(0.0, 0.0, 0.0, 0.0, intelligibility(0.0, 0.0), (), Phase.UNKNOWN)
    if np.any(spec < 0) or not np.all(np.isfinite(spec)):
        raise ValueError("Spectrum magnitudes must be finite and non-negative")

    centroid = spectral_centroid(spec, nyquist)
    flatness = spectral_flatness(spec)
    ratio = peak_ratio(spec)
    return SpectralMetrics(
        centroid_hz=centroid,
        flatness=flatness,
        peak_ratio=ratio,
        bandwidth_hz=spectral_bandwidth(spec, nyquist, centroid),
        intelligibility=intelligibility(flatness, ratio),
        dominant_peaks=tuple(dominant_peaks(spec, nyquist)),
        phase=Phase.UNKNOWN,
    )
