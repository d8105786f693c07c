"""
Audio output sinks. A sink plays one buffer per call to play() and returns when it
has finished; stop() silences it immediately. play() must be cancellable.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import numpy as np

from sittingroom.core.errors import PlaybackError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AudioSink:
    def open(self) -> None:
        """Make sure the output is usable before playback starts. Raises PlaybackError if not."""

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class NullSink(AudioSink):
    """Outputs nothing; waits the buffer's duration so scheduling behaves as with a device."""

    def __init__(self, sleep: Optional[Sleep] = None):
        self._sleep = sleep or asyncio.sleep

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        await self._sleep(len(samples) / float(sample_rate))

    def stop(self) -> None:
        pass


def _load_sounddevice() -> Any:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except ImportError as exc:
        raise PlaybackError(
            "Playback requires sounddevice. Install the 'playback' extra (pip install sitting-room-engine[playback])."
        ) from exc
    return sd_module


class SoundDeviceSink(AudioSink):
    """Plays through the default output device with sounddevice."""

    def __init__(self):
        self._sd: Any = None

    def _backend(self) -> Any:
        if self._sd is None:
            self._sd = _load_sounddevice()
        return self._sd

    def open(self) -> None:
        sd = self._backend()
        try:
            sd.check_output_settings()
        except (sd.PortAudioError, ValueError) as exc:
            raise PlaybackError(f"No usable output device: {exc}") from exc

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        sd = self._backend()
        data = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
        sd.play(data, sample_rate)
        try:
            await asyncio.sleep(len(data) / float(sample_rate))
        except asyncio.CancelledError:
            sd.stop()
            raise

    def stop(self) -> None:
        if self._sd is not None:
            self._sd.stop()
