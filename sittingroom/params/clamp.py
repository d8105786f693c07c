"""
Parameter clamping: pulls UI-supplied values back into the schema bounds.
Returns a new snapshot (does not mutate input).
"""
import math
from typing import Optional

from sittingroom.core.types import ParameterSnapshot
from sittingroom.params.schema import PARAM_SCHEMA, RESONANCE_MAX_HZ, RESONANCE_MIN_HZ


def clamp_if_bounds(
    value: float,
    min: Optional[float] = None,
    max: Optional[float] = None,
) -> float:
    """
    Clamp value to [min, max] when bounds are not None.
    If both are None, returns value unchanged.
    """
    v = float(value)
    if math.isnan(v):
        raise ValueError("Cannot clamp NaN")
    if min is not None and v < min:
        return min
    if max is not None and v > max:
        return max
    return v


def _clamp_field(name: str, value: float) -> float:
    entry = PARAM_SCHEMA[name]
    return clamp_if_bounds(value, entry["min"], entry["max"])


def clamp_snapshot(snapshot: ParameterSnapshot) -> ParameterSnapshot:
    """
    Clamp numeric fields to PARAM_SCHEMA bounds and resonances to 20 Hz - 20 kHz.
    Resonance order is preserved.
    """
    resonances = tuple(
        clamp_if_bounds(f, RESONANCE_MIN_HZ, RESONANCE_MAX_HZ) for f in snapshot.room_resonances
    )
    return snapshot.replace(
        filter_q=_clamp_field("filter_q", snapshot.filter_q),
        dry_wet_mix=_clamp_field("dry_wet_mix", snapshot.dry_wet_mix),
        feedback_gain=_clamp_field("feedback_gain", snapshot.feedback_gain),
        room_resonances=resonances,
    )
