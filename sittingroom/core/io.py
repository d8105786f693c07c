import io
from typing import Tuple, Union

import numpy as np
import soundfile as sf
import torch

from sittingroom.core.errors import RenderError


def _to_numpy(waveform: Union[torch.Tensor, np.ndarray]) -> np.ndarray:
    if isinstance(waveform, torch.Tensor):
        return waveform.detach().cpu().numpy()
    return np.asarray(waveform)


class AudioIO:
    @staticmethod
    def save_wav(waveform: Union[torch.Tensor, np.ndarray], sample_rate: int, path, subtype: str = "PCM_16"):
        """Saves a mono buffer to a WAV file (path or file-like object)."""
        # Clamp to avoid wrap-around clipping
        data = np.clip(_to_numpy(waveform), -1.0, 1.0)
        sf.write(path, data, sample_rate, format="WAV", subtype=subtype)

    @staticmethod
    def to_bytes(waveform: Union[torch.Tensor, np.ndarray], sample_rate: int, format: str = "WAV") -> bytes:
        """Returns audio file as bytes (for API responses and archives)."""
        buffer = io.BytesIO()
        data = np.clip(_to_numpy(waveform), -1.0, 1.0)
        sf.write(buffer, data, sample_rate, format=format, subtype="PCM_16")
        return buffer.getvalue()

    @staticmethod
    def read(source) -> Tuple[np.ndarray, int]:
        """
        Decode a WAV (path, file-like object or raw bytes) to mono float32.
        Multi-channel input is averaged down to one channel.
        """
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        try:
            data, sample_rate = sf.read(source, dtype="float32", always_2d=True)
        except RuntimeError as exc:
            raise RenderError(f"Could not decode audio: {exc}") from exc
        mono = data.mean(axis=1).astype(np.float32)
        return mono, int(sample_rate)
