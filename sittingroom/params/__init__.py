"""
Parameter schema, canonical defaults and the room preset catalogue.
The randomizer and clamp helpers live in their own modules (import them directly).
"""
from sittingroom.params.canonical_defaults import ENGINE_DEFAULTS, ROOM_PRESETS, SESSION_DEFAULTS
from sittingroom.params.schema import PARAM_SCHEMA, SESSION_SCHEMA

__all__ = ["ENGINE_DEFAULTS", "ROOM_PRESETS", "SESSION_DEFAULTS", "PARAM_SCHEMA", "SESSION_SCHEMA"]
