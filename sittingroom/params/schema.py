"""
Parameter schema for UI visibility: type, default, bounds and description per control.
Defaults come from canonical_defaults.ENGINE_DEFAULTS.
"""
from typing import Any, Dict, Literal

from sittingroom.params.canonical_defaults import ENGINE_DEFAULTS, SESSION_DEFAULTS

ParamType = Literal["float", "int", "bool", "enum"]

ParamSchemaEntry = Dict[str, Any]


def _make_param(
    param_type: ParamType,
    default: Any,
    min_val: Any,
    max_val: Any,
    description: str,
) -> ParamSchemaEntry:
    """Helper to create a schema entry."""
    return {
        "type": param_type,
        "default": default,
        "min": min_val,
        "max": max_val,
        "description": description,
    }


RESONANCE_MIN_HZ = 20.0
RESONANCE_MAX_HZ = 20000.0

PARAM_SCHEMA: Dict[str, ParamSchemaEntry] = {
    "filter_q": _make_param(
        "float", ENGINE_DEFAULTS["filter_q"], 5.0, 100.0,
        "Resonance sharpness; also drives the per-mode boost (6-24 dB)",
    ),
    "dry_wet_mix": _make_param(
        "float", ENGINE_DEFAULTS["dry_wet_mix"], 0.0, 1.0,
        "Blend between the unprocessed and the room-filtered signal",
    ),
    "feedback_gain": _make_param(
        "float", ENGINE_DEFAULTS["feedback_gain"], 0.5, 1.0,
        "Master gain applied to each pass before limiting",
    ),
    "use_convolver": _make_param(
        "bool", ENGINE_DEFAULTS["use_convolver"], None, None,
        "Mix in a synthetic impulse-response convolution",
    ),
    "impulse_response_kind": _make_param(
        "enum", ENGINE_DEFAULTS["impulse_response_kind"], None, None,
        "Synthetic impulse response: none, small, large or plate",
    ),
    "room_resonances": _make_param(
        "float", None, RESONANCE_MIN_HZ, RESONANCE_MAX_HZ,
        "Eight room-mode frequencies (Hz), applied in order",
    ),
}

# Session-level controls (not part of a ParameterSnapshot)
SESSION_SCHEMA: Dict[str, ParamSchemaEntry] = {
    "max_iterations": _make_param(
        "int", SESSION_DEFAULTS["max_iterations"], 4, 32,
        "Number of iterations (including the recording) a session may hold",
    ),
}
