"""
Tests for sittingroom/dsp/impulse: synthetic impulse responses and their cache.
Run from project root: python -m pytest tests/test_impulse.py -v
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
import torch

from sittingroom.core.types import ImpulseResponseKind
from sittingroom.dsp.impulse import IR_DURATION_S, ImpulseResponseGenerator, synthesize

SR = 8000
KINDS = (ImpulseResponseKind.SMALL, ImpulseResponseKind.LARGE, ImpulseResponseKind.PLATE)


@pytest.mark.parametrize("kind", KINDS)
def test_length_and_unit_peak(kind):
    ir = synthesize(kind, SR)
    assert ir.shape == (int(SR * IR_DURATION_S),)
    assert ir.dtype == torch.float32
    assert float(ir.abs().max()) == pytest.approx(1.0, abs=1e-6), f"{kind.value} not peak-normalized"
    assert bool(torch.isfinite(ir).all())


@pytest.mark.parametrize("kind", KINDS)
def test_tail_decays(kind):
    ir = synthesize(kind, SR, generator=torch.Generator().manual_seed(3))
    head = float(ir[: SR // 10].abs().max())
    tail = float(ir[-SR // 10:].abs().max())
    assert tail < head, f"{kind.value}: tail ({tail:.3f}) should be quieter than head ({head:.3f})"


def test_small_room_decays_faster_than_large_hall():
    gen = lambda: torch.Generator().manual_seed(11)
    small = synthesize(ImpulseResponseKind.SMALL, SR, generator=gen())
    large = synthesize(ImpulseResponseKind.LARGE, SR, generator=gen())
    window = slice(SR, SR + SR // 4)  # 1.0-1.25 s
    assert float(small[window].abs().mean()) < float(large[window].abs().mean())


def test_none_has_no_response():
    with pytest.raises(ValueError):
        synthesize(ImpulseResponseKind.NONE, SR)


def test_seeded_generator_is_reproducible():
    a = ImpulseResponseGenerator(seed=7).get(ImpulseResponseKind.PLATE, SR)
    b = ImpulseResponseGenerator(seed=7).get(ImpulseResponseKind.PLATE, SR)
    torch.testing.assert_close(a, b)


def test_unseeded_responses_vary():
    a = ImpulseResponseGenerator().get(ImpulseResponseKind.SMALL, SR)
    b = ImpulseResponseGenerator().get(ImpulseResponseKind.SMALL, SR)
    assert not torch.equal(a, b)


def test_cache_per_kind_and_sample_rate():
    gen = ImpulseResponseGenerator(seed=1)
    first = gen.get(ImpulseResponseKind.SMALL, SR)
    assert gen.get(ImpulseResponseKind.SMALL, SR) is first
    assert gen.get("small", SR) is first
    assert gen.get(ImpulseResponseKind.SMALL, 16000).shape == (int(16000 * IR_DURATION_S),)
    gen.clear()
    assert gen.get(ImpulseResponseKind.SMALL, SR) is not first


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
