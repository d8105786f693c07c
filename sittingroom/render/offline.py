"""
Offline renderer: one buffer + one ParameterSnapshot -> the next iteration's buffer.
The input is never modified. Order of the chain is fixed (see dsp.pipeline), followed
by the offline-only post chain (normalize + fades).
"""
import logging
from typing import Optional

import numpy as np
import torch

from sittingroom.core.errors import EngineError, RenderError
from sittingroom.core.types import ParameterSnapshot
from sittingroom.dsp.impulse import ImpulseResponseGenerator
from sittingroom.dsp.pipeline import EffectChain, build_chain
from sittingroom.dsp.postchain import PostChain

logger = logging.getLogger(__name__)


def as_tensor(samples) -> torch.Tensor:
    """Copy samples into a fresh 1-D float32 tensor, rejecting empty or malformed input."""
    if samples is None:
        raise RenderError("Invalid audio buffer: None")
    if isinstance(samples, torch.Tensor):
        x = samples.detach().to(torch.float32).clone()
    else:
        try:
            x = torch.tensor(np.asarray(samples, dtype=np.float32))
        except (TypeError, ValueError) as exc:
            raise RenderError(f"Invalid audio buffer: {exc}") from exc
    if x.dim() != 1:
        raise RenderError(f"Invalid audio buffer: expected mono 1-D samples, got shape {tuple(x.shape)}")
    if x.shape[-1] == 0:
        raise RenderError("Invalid audio buffer: zero length")
    if not bool(torch.isfinite(x).all()):
        raise RenderError("Invalid audio buffer: non-finite samples")
    return x


class OfflineRenderer:
    def __init__(self, impulse_responses: Optional[ImpulseResponseGenerator] = None):
        self.impulse_responses = impulse_responses or ImpulseResponseGenerator()

    def build_chain(self, snapshot: ParameterSnapshot, sample_rate: int) -> EffectChain:
        """
        Effect chain for one pass (no post-processing). A fresh chain is built on
        every call so parameter edits take effect on the next pass.
        """
        try:
            ir = None
            if snapshot.convolution_active:
                ir = self.impulse_responses.get(snapshot.impulse_response_kind, sample_rate)
            return build_chain(snapshot, ir)
        except (ValueError, TypeError, RuntimeError) as exc:
            raise EngineError(f"Could not build effect chain: {exc}") from exc

    def process_chain(self, samples, sample_rate: int, snapshot: ParameterSnapshot) -> np.ndarray:
        """Chain only (filters, mix, limiter), as heard in real-time monitoring."""
        if sample_rate <= 0:
            raise RenderError(f"Invalid sample rate: {sample_rate}")
        x = as_tensor(samples)
        y = self._run_chain(x, sample_rate, snapshot)
        return self._finite(y).numpy()

    def render(self, samples, sample_rate: int, snapshot: ParameterSnapshot) -> np.ndarray:
        """Full offline pass: chain then post chain. Returns a new float32 array of the input's length."""
        if sample_rate <= 0:
            raise RenderError(f"Invalid sample rate: {sample_rate}")
        x = as_tensor(samples)
        y = self._run_chain(x, sample_rate, snapshot)
        y = PostChain.process(self._finite(y), sample_rate)
        logger.info(
            "Iteration rendered: Q=%.1f, wet=%.2f, feedback=%.2f, convolver=%s",
            snapshot.filter_q,
            snapshot.dry_wet_mix,
            snapshot.feedback_gain,
            snapshot.impulse_response_kind.value if snapshot.convolution_active else "off",
        )
        return y.numpy().astype(np.float32)

    def _run_chain(self, x: torch.Tensor, sample_rate: int, snapshot: ParameterSnapshot) -> torch.Tensor:
        chain = self.build_chain(snapshot, sample_rate)
        try:
            return chain.process(x, sample_rate)
        except (ValueError, TypeError, RuntimeError) as exc:
            raise EngineError(f"Effect chain failed: {exc}") from exc

    @staticmethod
    def _finite(y: torch.Tensor) -> torch.Tensor:
        if not bool(torch.isfinite(y).all()):
            raise EngineError("Effect chain produced non-finite samples")
        return y.float()
