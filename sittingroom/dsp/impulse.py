"""
Synthetic impulse responses for the optional convolution stage.
Noise-seeded: each generation differs unless a seed is supplied. Every response is
peak-normalized to 1.0. Responses are cached per (kind, duration, sample rate).
"""
import logging
import math
from typing import Dict, Optional, Sequence, Tuple

import torch

from sittingroom.core.types import ImpulseResponseKind

logger = logging.getLogger(__name__)

IR_DURATION_S = 2.0

# (reflection times in s, reflection length in samples, reflection decay in samples, gain)
_SMALL_REFLECTIONS = ((0.02, 0.035, 0.05, 0.07, 0.09), 100, 50.0, 0.4)
_LARGE_REFLECTIONS = ((0.03, 0.06, 0.1, 0.15, 0.22, 0.3), 200, 100.0, 0.3)


def _noise(n: int, generator: Optional[torch.Generator]) -> torch.Tensor:
    """Uniform noise in [-1, 1)."""
    return torch.rand(n, generator=generator, dtype=torch.float64) * 2.0 - 1.0


def _initial_impulse(buf: torch.Tensor, n_samples: int, generator: Optional[torch.Generator]) -> None:
    n_samples = min(n_samples, buf.shape[-1])
    ramp = 1.0 - torch.arange(n_samples, dtype=torch.float64) / n_samples
    buf[:n_samples] = _noise(n_samples, generator) * ramp


def _add_reflections(
    buf: torch.Tensor,
    sample_rate: int,
    spec: Tuple[Sequence[float], int, float, float],
    generator: Optional[torch.Generator],
) -> None:
    times, length, decay, gain = spec
    n = buf.shape[-1]
    offsets = torch.arange(length, dtype=torch.float64)
    envelope = torch.exp(-offsets / decay) * gain
    for r in times:
        start = int(math.floor(r * sample_rate))
        end = min(start + length, n)
        if start >= n:
            continue
        seg = end - start
        buf[start:end] += _noise(seg, generator) * envelope[:seg]


def _add_modes(buf: torch.Tensor, t: torch.Tensor, freqs: Sequence[float], decay_rate: float, gain: float) -> None:
    for f in freqs:
        buf += torch.sin(2.0 * math.pi * f * t) * torch.exp(-t * decay_rate) * gain


def _small_room(n: int, sample_rate: int, generator: Optional[torch.Generator]) -> torch.Tensor:
    """Short early reflections, fast tail (~12/s), faint modes at 200/400/600 Hz."""
    t = torch.arange(n, dtype=torch.float64) / sample_rate
    buf = torch.zeros(n, dtype=torch.float64)
    _initial_impulse(buf, 10, generator)
    _add_reflections(buf, sample_rate, _SMALL_REFLECTIONS, generator)
    buf += _noise(n, generator) * torch.exp(-t * 12.0) * 0.3
    _add_modes(buf, t, (200.0, 400.0, 600.0), 15.0, 0.05)
    return buf


def _large_hall(n: int, sample_rate: int, generator: Optional[torch.Generator]) -> torch.Tensor:
    """Sparse reflections, slow tail (~2.5/s), low modes at 60-180 Hz."""
    t = torch.arange(n, dtype=torch.float64) / sample_rate
    buf = torch.zeros(n, dtype=torch.float64)
    _initial_impulse(buf, 5, generator)
    _add_reflections(buf, sample_rate, _LARGE_REFLECTIONS, generator)
    buf += _noise(n, generator) * torch.exp(-t * 2.5) * 0.5
    _add_modes(buf, t, (60.0, 90.0, 120.0, 180.0), 3.0, 0.08)
    return buf


def _plate(n: int, sample_rate: int, generator: Optional[torch.Generator]) -> torch.Tensor:
    """Dense diffuse noise (~4/s) plus 12 metallic partials; higher partials die faster."""
    t = torch.arange(n, dtype=torch.float64) / sample_rate
    burst = t < 0.01
    buf = torch.where(burst, _noise(n, generator) * (1.0 - t / 0.01), torch.zeros_like(t))
    buf += _noise(n, generator) * torch.exp(-t * 4.0) * 0.6
    detune = torch.rand(12, generator=generator, dtype=torch.float64) - 0.5
    for j in range(1, 13):
        f = 300.0 * j + float(detune[j - 1]) * 50.0
        buf += torch.sin(2.0 * math.pi * f * t) * torch.exp(-t * (3.0 + j * 0.3)) * (0.04 / j)
    return buf


_BUILDERS = {
    ImpulseResponseKind.SMALL: _small_room,
    ImpulseResponseKind.LARGE: _large_hall,
    ImpulseResponseKind.PLATE: _plate,
}


def synthesize(
    kind: ImpulseResponseKind,
    sample_rate: int,
    duration: float = IR_DURATION_S,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """Build one peak-normalized response (float32, duration * sample_rate samples)."""
    kind = ImpulseResponseKind(kind)
    if kind == ImpulseResponseKind.NONE:
        raise ValueError("No impulse response for kind 'none'")
    n = int(math.floor(sample_rate * duration))
    buf = _BUILDERS[kind](n, sample_rate, generator)
    peak = float(torch.max(torch.abs(buf))) if n > 0 else 0.0
    if peak > 0:
        buf = buf / peak
    logger.debug("Synthesized %s impulse response: %d samples, raw peak %.3f", kind.value, n, peak)
    return buf.float()


class ImpulseResponseGenerator:
    """
    Caching front-end for synthesize().
    Pass a seed to make every response reproducible; without one each cache fill is fresh noise.
    """

    def __init__(self, seed: Optional[int] = None, duration: float = IR_DURATION_S):
        self.seed = seed
        self.duration = duration
        self._cache: Dict[Tuple[ImpulseResponseKind, float, int], torch.Tensor] = {}

    def get(self, kind: ImpulseResponseKind, sample_rate: int) -> torch.Tensor:
        kind = ImpulseResponseKind(kind)
        key = (kind, self.duration, int(sample_rate))
        cached = self._cache.get(key)
        if cached is None:
            generator = None
            if self.seed is not None:
                generator = torch.Generator().manual_seed(self.seed)
            cached = synthesize(kind, sample_rate, self.duration, generator)
            self._cache[key] = cached
        return cached

    def clear(self) -> None:
        self._cache.clear()
