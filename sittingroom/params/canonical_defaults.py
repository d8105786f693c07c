"""
Canonical engine defaults: single source for session initialization.
Mirrors the control-panel defaults so a fresh session sounds the same as the UI shows.
The session iteration cap can be overridden from the environment (SITTINGROOM_MAX_ITERATIONS).
"""
import os
from typing import Any, Dict, List


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Room preset catalogue. Order matters: it is the filter chaining order.
ROOM_PRESETS: Dict[str, List[float]] = {
    "small": [120.0, 240.0, 380.0, 520.0, 780.0, 1100.0, 1800.0, 2400.0],
    "large": [60.0, 120.0, 180.0, 280.0, 400.0, 600.0, 900.0, 1400.0],
    "bathroom": [200.0, 400.0, 800.0, 1200.0, 1600.0, 2000.0, 3000.0, 4000.0],
    "stairwell": [80.0, 160.0, 320.0, 480.0, 640.0, 960.0, 1280.0, 1920.0],
    "cathedral": [40.0, 80.0, 120.0, 200.0, 320.0, 500.0, 800.0, 1200.0],
}

DEFAULT_ROOM_PRESET = "small"

RESONANCE_COUNT = 8

ENGINE_DEFAULTS: Dict[str, Any] = {
    "filter_q": 30.0,
    "dry_wet_mix": 0.7,
    "feedback_gain": 0.95,
    "use_convolver": False,
    "impulse_response_kind": "none",
    "room_preset": DEFAULT_ROOM_PRESET,
}

SESSION_DEFAULTS: Dict[str, Any] = {
    "max_iterations": _env_int("SITTINGROOM_MAX_ITERATIONS", 12),
    "loop_gap_ms": 300.0,
    "realtime_gap_ms": 100.0,
    "batch_gap_ms": 500.0,
}

DEV = os.environ.get("ENV", "development").lower() in ("development", "dev", "test")
