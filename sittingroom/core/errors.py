"""
Engine error taxonomy. None of these are retried by the engine itself.
"""


class SittingRoomError(Exception):
    """Base class for engine errors."""


class SequenceError(SittingRoomError):
    """Out-of-order or duplicate iteration store access (programming error)."""


class RenderError(SittingRoomError):
    """Input buffer is empty or malformed; the iteration is not advanced."""


class EngineError(SittingRoomError):
    """The processing chain could not be built or produced unusable output."""


class NoDataError(SittingRoomError):
    """An operation needs stored iterations and there are none."""


class RenderBusyError(SittingRoomError):
    """A render was requested while another render is in flight."""


class PlaybackError(SittingRoomError):
    """The audio output backend is unavailable."""
