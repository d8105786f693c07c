"""
Effect chain as data: a typed sequence of stage descriptors executed in order
against an owned buffer. build_chain() maps a ParameterSnapshot onto the room chain:

    dry:  input * (1 - mix)
    wet:  8 peaking stages in series -> air-absorption low-pass -> [convolution 50/50]
          then * mix
    sum -> * feedback_gain -> limiter

Series chaining of the resonances is intentional: repeated passes compound H(f)^n.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import torch

from sittingroom.core.types import ParameterSnapshot
from sittingroom.dsp.convolver import Convolver
from sittingroom.dsp.dynamics import Dynamics
from sittingroom.dsp.filters import Filter
from sittingroom.dsp.mixer import BusMixer

Q_MIN, Q_MAX = 5.0, 100.0
BOOST_DB_MIN, BOOST_DB_MAX = 6.0, 24.0
AIR_CUTOFF_MIN_HZ, AIR_CUTOFF_MAX_HZ = 8000.0, 16000.0
AIR_Q = 0.7
CONVOLVER_MIX = 0.5

LIMITER = {
    "threshold_db": -3.0,
    "knee_db": 6.0,
    "ratio": 12.0,
    "attack_ms": 1.0,
    "release_ms": 100.0,
    "lookahead_ms": 6.0,
}


@dataclass(frozen=True)
class PeakingStage:
    center_hz: float
    gain_db: float
    q: float


@dataclass(frozen=True)
class LowpassStage:
    cutoff_hz: float
    q: float


@dataclass(frozen=True)
class ConvolverStage:
    impulse_response: torch.Tensor
    mix: float = CONVOLVER_MIX


@dataclass(frozen=True)
class GainStage:
    gain: float


@dataclass(frozen=True)
class CompressorStage:
    threshold_db: float
    knee_db: float
    ratio: float
    attack_ms: float
    release_ms: float
    lookahead_ms: float = 0.0


Stage = Union[PeakingStage, LowpassStage, ConvolverStage, GainStage, CompressorStage]


def apply_stage(stage: Stage, x: torch.Tensor, sample_rate: int) -> torch.Tensor:
    if isinstance(stage, PeakingStage):
        return Filter.peaking(x, sample_rate, stage.center_hz, stage.gain_db, stage.q)
    if isinstance(stage, LowpassStage):
        return Filter.lowpass(x, sample_rate, stage.cutoff_hz, stage.q)
    if isinstance(stage, ConvolverStage):
        return Convolver.blend(x, stage.impulse_response, stage.mix)
    if isinstance(stage, GainStage):
        return x * stage.gain
    if isinstance(stage, CompressorStage):
        return Dynamics.compressor(
            x, sample_rate,
            threshold_db=stage.threshold_db,
            knee_db=stage.knee_db,
            ratio=stage.ratio,
            attack_ms=stage.attack_ms,
            release_ms=stage.release_ms,
            lookahead_ms=stage.lookahead_ms,
        )
    raise TypeError(f"Unknown stage: {stage!r}")


def run_stages(stages: Tuple[Stage, ...], x: torch.Tensor, sample_rate: int) -> torch.Tensor:
    for stage in stages:
        x = apply_stage(stage, x, sample_rate)
    return x


@dataclass(frozen=True)
class EffectChain:
    """Dry bus, wet bus (stages then gain), and master stages applied to their sum."""
    dry_gain: float
    wet_stages: Tuple[Stage, ...]
    wet_gain: float
    master_stages: Tuple[Stage, ...]

    def process(self, waveform: torch.Tensor, sample_rate: int) -> torch.Tensor:
        """Run the chain on a copy of waveform; the input is never modified."""
        x = waveform.view(-1).float().clone()
        wet = run_stages(self.wet_stages, x, sample_rate)

        mixer = BusMixer()
        mixer.add("dry", x, gain=self.dry_gain)
        mixer.add("wet", wet, gain=self.wet_gain)
        master = mixer.mix()

        return run_stages(self.master_stages, master, sample_rate)


def boost_db_for_q(filter_q: float) -> float:
    """Linear map of filter_q in [5, 100] onto a 6-24 dB boost."""
    return BOOST_DB_MIN + (filter_q - Q_MIN) * (BOOST_DB_MAX - BOOST_DB_MIN) / (Q_MAX - Q_MIN)


def air_cutoff_hz(dry_wet_mix: float) -> float:
    """Wetter mix -> darker room: 16 kHz at fully dry down to 8 kHz at fully wet."""
    return AIR_CUTOFF_MIN_HZ + (1.0 - dry_wet_mix) * (AIR_CUTOFF_MAX_HZ - AIR_CUTOFF_MIN_HZ)


def build_chain(snapshot: ParameterSnapshot, impulse_response: Optional[torch.Tensor] = None) -> EffectChain:
    """
    Translate a snapshot into stage descriptors.
    impulse_response is required when the snapshot enables convolution.
    Raises ValueError for parameters that cannot form a chain.
    """
    for freq in snapshot.room_resonances:
        if not math.isfinite(freq) or freq <= 0:
            raise ValueError(f"Invalid resonance frequency: {freq}")
    if not math.isfinite(snapshot.filter_q) or snapshot.filter_q <= 0:
        raise ValueError(f"Invalid filter_q: {snapshot.filter_q}")

    boost = boost_db_for_q(snapshot.filter_q)
    stage_q = snapshot.filter_q / 5.0
    wet = [PeakingStage(freq, boost, stage_q) for freq in snapshot.room_resonances]
    wet.append(LowpassStage(air_cutoff_hz(snapshot.dry_wet_mix), AIR_Q))

    if snapshot.convolution_active:
        if impulse_response is None:
            raise ValueError("Convolution enabled but no impulse response supplied")
        wet.append(ConvolverStage(impulse_response))

    master = (GainStage(snapshot.feedback_gain), CompressorStage(**LIMITER))
    return EffectChain(
        dry_gain=1.0 - snapshot.dry_wet_mix,
        wet_stages=tuple(wet),
        wet_gain=snapshot.dry_wet_mix,
        master_stages=master,
    )
