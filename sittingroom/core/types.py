"""
Value types shared across the engine: parameter snapshots, iterations, metrics, log records.
All of them are frozen; an iteration is produced once and never edited.
"""
import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from sittingroom.params.canonical_defaults import (
    DEFAULT_ROOM_PRESET,
    ENGINE_DEFAULTS,
    RESONANCE_COUNT,
    ROOM_PRESETS,
)


class Phase(str, Enum):
    """Acoustic character of a buffer. UNKNOWN is the pre-state before any analysis."""
    SPEECH = "speech"
    HYBRID = "hybrid"
    MODAL = "modal"
    UNKNOWN = "unknown"


class ImpulseResponseKind(str, Enum):
    NONE = "none"
    SMALL = "small"
    LARGE = "large"
    PLATE = "plate"


_NUMERIC_FIELDS = ("filter_q", "dry_wet_mix", "feedback_gain")


def _default_resonances() -> Tuple[float, ...]:
    return tuple(ROOM_PRESETS[DEFAULT_ROOM_PRESET])


@dataclass(frozen=True)
class ParameterSnapshot:
    """
    Immutable per-render configuration.
    room_resonances always holds exactly 8 frequencies; their order is the chaining order.
    room_preset names the catalogue entry the resonances came from (None once edited by hand).
    """
    filter_q: float = ENGINE_DEFAULTS["filter_q"]
    dry_wet_mix: float = ENGINE_DEFAULTS["dry_wet_mix"]
    feedback_gain: float = ENGINE_DEFAULTS["feedback_gain"]
    use_convolver: bool = ENGINE_DEFAULTS["use_convolver"]
    impulse_response_kind: ImpulseResponseKind = ImpulseResponseKind.NONE
    room_resonances: Tuple[float, ...] = field(default_factory=_default_resonances)
    room_preset: Optional[str] = DEFAULT_ROOM_PRESET

    def __post_init__(self):
        resonances = tuple(float(f) for f in self.room_resonances)
        if len(resonances) != RESONANCE_COUNT:
            raise ValueError(
                f"room_resonances must hold exactly {RESONANCE_COUNT} frequencies, got {len(resonances)}"
            )
        # frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "room_resonances", resonances)
        object.__setattr__(self, "impulse_response_kind", ImpulseResponseKind(self.impulse_response_kind))
        non_finite = [] if all(math.isfinite(f) for f in resonances) else ["room_resonances"]
        for name in _NUMERIC_FIELDS:
            value = float(getattr(self, name))
            if not math.isfinite(value):
                non_finite.append(name)
            object.__setattr__(self, name, value)
        if non_finite:
            raise ValueError(f"Parameters must be finite numbers: {non_finite}")
        object.__setattr__(self, "use_convolver", bool(self.use_convolver))

    @property
    def convolution_active(self) -> bool:
        return self.use_convolver and self.impulse_response_kind != ImpulseResponseKind.NONE

    def replace(self, **changes: Any) -> "ParameterSnapshot":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filter_q": self.filter_q,
            "dry_wet_mix": self.dry_wet_mix,
            "feedback_gain": self.feedback_gain,
            "use_convolver": self.use_convolver,
            "impulse_response_kind": self.impulse_response_kind.value,
            "room_resonances": list(self.room_resonances),
            "room_preset": self.room_preset,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterSnapshot":
        """Build a snapshot from a (possibly partial) dict; missing keys take defaults."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown parameter(s): {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True)
class SpectralPeak:
    freq_hz: float
    amplitude: float
    bin: int

    def to_dict(self) -> Dict[str, Any]:
        return {"freq_hz": self.freq_hz, "amplitude": self.amplitude, "bin": self.bin}


@dataclass(frozen=True)
class SpectralMetrics:
    centroid_hz: float
    flatness: float
    peak_ratio: float
    bandwidth_hz: float
    intelligibility: float
    dominant_peaks: Tuple[SpectralPeak, ...] = ()
    phase: Phase = Phase.UNKNOWN

    def with_phase(self, phase: Phase) -> "SpectralMetrics":
        return dataclasses.replace(self, phase=phase)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "centroid_hz": self.centroid_hz,
            "flatness": self.flatness,
            "peak_ratio": self.peak_ratio,
            "bandwidth_hz": self.bandwidth_hz,
            "intelligibility": self.intelligibility,
            "dominant_peaks": [p.to_dict() for p in self.dominant_peaks],
            "phase": self.phase.value,
        }


@dataclass(frozen=True)
class Iteration:
    """
    One pass of the recording through the room.
    samples and spectrum are read-only numpy arrays owned by the IterationStore.
    params is the snapshot that produced this buffer (None for the captured original).
    """
    index: int
    samples: np.ndarray
    sample_rate: int
    spectrum: np.ndarray
    metrics: SpectralMetrics
    params: Optional[ParameterSnapshot] = None

    @property
    def duration_seconds(self) -> float:
        return self.samples.shape[-1] / float(self.sample_rate)

    def summary(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "sample_rate": self.sample_rate,
            "duration_seconds": self.duration_seconds,
            "metrics": self.metrics.to_dict(),
            "params": self.params.to_dict() if self.params is not None else None,
        }


@dataclass(frozen=True)
class PhaseHistoryEntry:
    iteration_index: int
    phase: Phase
    timestamp_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration_index": self.iteration_index,
            "phase": self.phase.value,
            "timestamp_ms": self.timestamp_ms,
        }


@dataclass(frozen=True)
class ParameterLogEntry:
    """Record of a randomized snapshot and the iteration it was applied to."""
    iteration_index: int
    snapshot: ParameterSnapshot
    room_changed_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration_index": self.iteration_index,
            "room_changed_to": self.room_changed_to,
            **self.snapshot.to_dict(),
        }
