"""
Dynamics processing: a feed-forward limiter/compressor and the static soft-knee
used by post-processing.
"""
import math

import torch
import torch.nn.functional as F

SILENCE_DB = -240.0


def _static_curve_db(level_db: torch.Tensor, threshold_db: float, knee_db: float, ratio: float) -> torch.Tensor:
    """
    Gain change (dB, <= 0) for each input level, quadratic soft knee of width knee_db
    centered on the threshold.
    """
    over = level_db - threshold_db
    slope = 1.0 / ratio - 1.0
    gain = torch.zeros_like(level_db)
    if knee_db > 0:
        in_knee = (2.0 * over.abs()) <= knee_db
        gain = torch.where(in_knee, slope * (over + knee_db / 2.0) ** 2 / (2.0 * knee_db), gain)
        above = (2.0 * over) > knee_db
    else:
        above = over > 0
    gain = torch.where(above, slope * over, gain)
    return gain


def _lookahead_max(level_db: torch.Tensor, window: int) -> torch.Tensor:
    """Running max over [i, i + window) for every sample; the tail is padded with silence."""
    padded = F.pad(level_db.view(1, 1, -1), (0, window - 1), value=SILENCE_DB)
    return F.max_pool1d(padded, kernel_size=window, stride=1).view(-1)


class Dynamics:
    @staticmethod
    def compressor(
        waveform: torch.Tensor,
        sample_rate: int,
        threshold_db: float = -3.0,
        knee_db: float = 6.0,
        ratio: float = 12.0,
        attack_ms: float = 1.0,
        release_ms: float = 100.0,
        lookahead_ms: float = 0.0,
    ) -> torch.Tensor:
        """
        Feed-forward peak compressor.
        The detector sees the loudest level over the next lookahead_ms, so gain reduction
        is already in place when a transient arrives. Gain reduction is computed per sample
        from the static curve, then smoothed: attack coefficient while reduction deepens,
        release coefficient while it recovers.
        """
        if ratio <= 1.0 or waveform.numel() == 0:
            return waveform.clone()

        level_db = 20.0 * torch.log10(waveform.abs().to(torch.float64) + 1e-12)
        lookahead = int(round(lookahead_ms * 1e-3 * sample_rate))
        if lookahead > 0:
            level_db = _lookahead_max(level_db, lookahead + 1)
        target_db = _static_curve_db(level_db, threshold_db, knee_db, ratio)

        attack_coeff = math.exp(-1.0 / (attack_ms * 1e-3 * sample_rate)) if attack_ms > 0 else 0.0
        release_coeff = math.exp(-1.0 / (release_ms * 1e-3 * sample_rate)) if release_ms > 0 else 0.0

        # Envelope smoothing is recursive; iterate over a plain list.
        targets = target_db.tolist()
        smoothed = [0.0] * len(targets)
        env = targets[0]
        for i, target in enumerate(targets):
            coeff = attack_coeff if target < env else release_coeff
            env = coeff * env + (1.0 - coeff) * target
            smoothed[i] = env

        gain = torch.pow(10.0, torch.tensor(smoothed, dtype=torch.float64) / 20.0)
        return (waveform.to(torch.float64) * gain).to(waveform.dtype)

    @staticmethod
    def soft_knee(waveform: torch.Tensor, threshold: float = 0.5, ratio: float = 4.0) -> torch.Tensor:
        """
        Sample-wise compression of the magnitude above a linear threshold:
        |x| -> threshold + (|x| - threshold) / ratio. Sign is kept.
        """
        magnitude = waveform.abs()
        compressed = torch.where(
            magnitude > threshold,
            threshold + (magnitude - threshold) / ratio,
            magnitude,
        )
        return torch.sign(waveform) * compressed
