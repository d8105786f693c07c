"""
FFT convolution against an impulse response, trimmed to the input length
(the render is a fixed-length offline pass, the reverb tail past the end is dropped).
"""
import torch
import torchaudio.functional as F


def equal_power_scale(impulse_response: torch.Tensor) -> float:
    """Scale that gives the response unit energy, so a convolved signal keeps its loudness."""
    energy = float(torch.sum(impulse_response.to(torch.float64) ** 2))
    if energy <= 0.0:
        return 0.0
    return 1.0 / (energy ** 0.5)


class Convolver:
    @staticmethod
    def convolve(waveform: torch.Tensor, impulse_response: torch.Tensor, normalize: bool = True) -> torch.Tensor:
        """Convolve a 1-D buffer with a 1-D impulse response; output has the input's length."""
        n = waveform.shape[-1]
        if n == 0 or impulse_response.numel() == 0:
            return torch.zeros_like(waveform)
        ir = impulse_response.to(torch.float64)
        if normalize:
            ir = ir * equal_power_scale(ir)
        wet = F.fftconvolve(waveform.to(torch.float64), ir)
        return wet[..., :n].to(waveform.dtype)

    @staticmethod
    def blend(waveform: torch.Tensor, impulse_response: torch.Tensor, mix: float = 0.5) -> torch.Tensor:
        """Convolved signal mixed with the unconvolved input: mix * wet + (1 - mix) * direct."""
        wet = Convolver.convolve(waveform, impulse_response)
        return wet * mix + waveform * (1.0 - mix)
