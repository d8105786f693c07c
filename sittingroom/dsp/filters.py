"""
Audio filters using torchaudio's IIR filtering (minimum-phase biquads).
Coefficients follow the RBJ audio-EQ cookbook, the same shapes a browser BiquadFilterNode uses.
Filtering runs in float64 and without output clamping: stages are chained in series
and intermediate levels may exceed full scale before the limiter.
"""
import math
from typing import Tuple

import torch
import torchaudio.functional as F

Coeffs = Tuple[Tuple[float, float, float], Tuple[float, float, float]]


def db_to_lin(db: float) -> float:
    """Convert decibels to linear gain. 0 dB -> 1.0."""
    return 10.0 ** (db / 20.0)


def _check_freq(freq: float, name: str) -> None:
    if not math.isfinite(freq) or freq <= 0:
        raise ValueError(f"{name} must be a positive finite frequency, got {freq}")


def peaking_coeffs(sample_rate: int, center_freq: float, gain_db: float, q: float) -> Coeffs:
    """RBJ peaking EQ: (b0, b1, b2), (a0, a1, a2)."""
    a = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * math.pi * center_freq / sample_rate
    alpha = math.sin(w0) / (2.0 * q)
    cos_w0 = math.cos(w0)
    b = (1.0 + alpha * a, -2.0 * cos_w0, 1.0 - alpha * a)
    a_coeffs = (1.0 + alpha / a, -2.0 * cos_w0, 1.0 - alpha / a)
    return b, a_coeffs


def lowpass_coeffs(sample_rate: int, cutoff_freq: float, q: float) -> Coeffs:
    """RBJ second-order low-pass: (b0, b1, b2), (a0, a1, a2)."""
    w0 = 2.0 * math.pi * cutoff_freq / sample_rate
    alpha = math.sin(w0) / (2.0 * q)
    cos_w0 = math.cos(w0)
    b = ((1.0 - cos_w0) / 2.0, 1.0 - cos_w0, (1.0 - cos_w0) / 2.0)
    a_coeffs = (1.0 + alpha, -2.0 * cos_w0, 1.0 - alpha)
    return b, a_coeffs


def _apply_biquad(waveform: torch.Tensor, coeffs: Coeffs) -> torch.Tensor:
    b, a = coeffs
    x = waveform.to(torch.float64)
    b_t = torch.tensor(b, dtype=torch.float64)
    a_t = torch.tensor(a, dtype=torch.float64)
    y = F.lfilter(x, a_t, b_t, clamp=False)
    return y.to(waveform.dtype)


class Filter:
    @staticmethod
    def lowpass(waveform: torch.Tensor, sample_rate: int, cutoff_freq: float, q: float = 0.707) -> torch.Tensor:
        """
        Apply a LowPass biquad.
        A cutoff at or above Nyquist passes the signal through unchanged.
        """
        _check_freq(cutoff_freq, "cutoff_freq")
        if cutoff_freq >= sample_rate / 2.0:
            return waveform.clone()
        return _apply_biquad(waveform, lowpass_coeffs(sample_rate, cutoff_freq, q))

    @staticmethod
    def peaking(
        waveform: torch.Tensor,
        sample_rate: int,
        center_freq: float,
        gain_db: float,
        q: float = 1.0,
    ) -> torch.Tensor:
        """
        Peaking EQ: boosts (gain_db > 0) or cuts a band around center_freq,
        leaves the rest of the spectrum at unity.
        Centers at or above Nyquist have no audible band and pass through.
        """
        _check_freq(center_freq, "center_freq")
        if q <= 0:
            raise ValueError(f"q must be positive, got {q}")
        if center_freq >= sample_rate / 2.0:
            return waveform.clone()
        return _apply_biquad(waveform, peaking_coeffs(sample_rate, center_freq, gain_db, q))
