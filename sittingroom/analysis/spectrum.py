"""
Spectrum snapshot of a buffer: averaged STFT magnitude, scaled and smoothed.
Fixed length (1024 bins spanning 0..Nyquist) so every iteration is comparable.
"""
import numpy as np
import torch

from sittingroom.analysis.thresholds import MAX_WINDOWS, SMOOTH_RADIUS, SPECTRUM_BINS, SPECTRUM_MAX


def spectrum_snapshot(samples, n_bins: int = SPECTRUM_BINS) -> np.ndarray:
    """
    Average the Hann-windowed magnitude spectrum of up to 10 evenly spaced frames
    of 2 * n_bins samples, keep the first n_bins bins, scale the loudest to 200,
    then smooth with an 11-bin moving average.
    """
    waveform = torch.as_tensor(np.asarray(samples, dtype=np.float32)).view(-1)
    n_fft = 2 * n_bins
    n = waveform.shape[-1]
    if n == 0:
        return np.zeros(n_bins, dtype=np.float32)

    n_windows = max(1, min(MAX_WINDOWS, n // n_fft))
    window = torch.hann_window(n_fft)
    frames = []
    for w in range(n_windows):
        start = (w * n) // n_windows
        frame = waveform[start:start + n_fft]
        if frame.shape[-1] < n_fft:
            frame = torch.nn.functional.pad(frame, (0, n_fft - frame.shape[-1]))
        frames.append(frame * window)

    magnitudes = torch.abs(torch.fft.rfft(torch.stack(frames), dim=-1))
    avg_mag = torch.sum(magnitudes, dim=0)[:n_bins]

    peak = float(torch.max(avg_mag))
    if peak > 1e-12:
        avg_mag = avg_mag / peak * SPECTRUM_MAX

    smoothed = torch.nn.functional.avg_pool1d(
        avg_mag.view(1, 1, -1),
        kernel_size=2 * SMOOTH_RADIUS + 1,
        stride=1,
        padding=SMOOTH_RADIUS,
        count_include_pad=False,
    ).view(-1)
    return smoothed.numpy().astype(np.float32)


def bin_frequency(index: int, n_bins: int, nyquist: float) -> float:
    """Frequency of bin index when n_bins span 0..nyquist."""
    return index * nyquist / n_bins
