"""
Offline post-processing: soft-knee + peak normalization to 0.85, then cosine boundary fades.
Deterministic; no randomness. Also used once to condition the captured recording.
"""
import logging
import math

import torch

from sittingroom.dsp.dynamics import Dynamics

logger = logging.getLogger(__name__)

TARGET_PEAK = 0.85
KNEE_THRESHOLD = 0.5
KNEE_RATIO = 4.0
SILENCE_PEAK = 0.001

# Boundary fades for rendered iterations
FADE_IN_MS = 30.0
FADE_OUT_MS = 120.0

# Boundary fades for the captured recording
CAPTURE_FADE_IN_MS = 50.0
CAPTURE_FADE_OUT_MS = 150.0


class PostChain:
    """
    normalize -> fades. Peak never exceeds TARGET_PEAK afterwards
    (fades only attenuate).
    """

    @staticmethod
    def _peak(buffer: torch.Tensor) -> float:
        if buffer.numel() == 0:
            return 0.0
        return float(torch.max(torch.abs(buffer)))

    @classmethod
    def normalize(cls, buffer: torch.Tensor, target: float = TARGET_PEAK, compress: bool = True) -> torch.Tensor:
        """
        Peak-normalize to target. Loud buffers (peak > 0.5) first go through a 4:1
        soft knee above 0.5 and the peak is re-measured. Near-silent buffers are left alone.
        """
        peak = cls._peak(buffer)
        if peak < SILENCE_PEAK:
            logger.info("Audio too quiet to normalize (peak %.6f)", peak)
            return buffer.clone()

        out = buffer
        if compress and peak > KNEE_THRESHOLD:
            out = Dynamics.soft_knee(out, KNEE_THRESHOLD, KNEE_RATIO)
            peak = cls._peak(out)

        out = torch.clamp(out * (target / peak), -1.0, 1.0)
        logger.debug("Normalized to %.0f%% (gain %.3f)", target * 100, target / peak)
        return out

    @staticmethod
    def cosine_fades(buffer: torch.Tensor, sample_rate: int, fade_in_ms: float, fade_out_ms: float) -> torch.Tensor:
        """Raised-cosine fade-in and fade-out; fades longer than the buffer are truncated."""
        n = buffer.shape[-1]
        if n == 0:
            return buffer.clone()
        out = buffer.clone()
        n_in = int(math.floor(fade_in_ms * 1e-3 * sample_rate))
        n_out = int(math.floor(fade_out_ms * 1e-3 * sample_rate))

        if n_in > 0:
            i = torch.arange(min(n_in, n), dtype=torch.float64)
            ramp = 0.5 * (1.0 - torch.cos(math.pi * i / n_in))
            out[..., : ramp.shape[-1]] *= ramp.to(out.dtype)

        if n_out > 0:
            start = n - n_out
            pos = torch.arange(max(start, 0), n, dtype=torch.float64) - start
            ramp = 0.5 * (1.0 + torch.cos(math.pi * pos / n_out))
            out[..., max(start, 0):] *= ramp.to(out.dtype)
        return out

    @classmethod
    def process(cls, buffer: torch.Tensor, sample_rate: int) -> torch.Tensor:
        """Post chain for a rendered iteration."""
        x = buffer.view(-1).float()
        x = cls.normalize(x)
        return cls.cosine_fades(x, sample_rate, FADE_IN_MS, FADE_OUT_MS)

    @classmethod
    def condition_capture(cls, buffer: torch.Tensor, sample_rate: int) -> torch.Tensor:
        """One-time conditioning of the raw recording before it becomes iteration 0."""
        x = buffer.view(-1).float()
        x = cls.normalize(x)
        return cls.cosine_fades(x, sample_rate, CAPTURE_FADE_IN_MS, CAPTURE_FADE_OUT_MS)
