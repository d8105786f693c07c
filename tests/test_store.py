"""
Tests for sittingroom/session/store: write-once, no-gaps iteration storage.
Run from project root: python -m pytest tests/test_store.py -v
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest

from sittingroom.core.errors import SequenceError
from sittingroom.core.types import SpectralMetrics
from sittingroom.session.store import IterationStore


def _metrics() -> SpectralMetrics:
    return SpectralMetrics(1000.0, 0.1, 0.9, 200.0, 0.0)


def _append(store: IterationStore, value: float = 0.1, index=None):
    return store.append(np.full(64, value, dtype=np.float32), 8000, np.zeros(1024), _metrics(), index=index)


# -----------------------------------------------------------------------------
# Sequencing
# -----------------------------------------------------------------------------

def test_empty_store():
    store = IterationStore()
    assert store.latest_index() == -1
    assert store.latest() is None
    assert store.get(0) is None
    assert len(store) == 0


def test_append_is_sequential():
    store = IterationStore()
    first = _append(store)
    second = _append(store)
    assert (first.index, second.index) == (0, 1)
    assert store.latest_index() == 1
    assert store.get(1) is second


def test_each_index_absent_until_previous_exists():
    store = IterationStore()
    for i in range(4):
        assert store.get(i) is None, f"index {i} visible before it was appended"
        _append(store, index=i)
        assert store.get(i) is not None
        assert store.get(i + 1) is None


def test_first_append_must_be_index_zero():
    store = IterationStore()
    with pytest.raises(SequenceError):
        _append(store, index=1)
    assert len(store) == 0


def test_duplicate_index_rejected():
    store = IterationStore()
    _append(store, index=0)
    _append(store, index=1)
    with pytest.raises(SequenceError):
        _append(store, value=0.9, index=1)
    # Write-once: the original buffer is untouched
    assert float(store.get(1).samples[0]) == pytest.approx(0.1)


def test_out_of_order_append_rejected():
    store = IterationStore()
    _append(store, index=0)
    with pytest.raises(SequenceError):
        _append(store, index=2)
    assert store.latest_index() == 0


# -----------------------------------------------------------------------------
# Ownership
# -----------------------------------------------------------------------------

def test_stored_buffers_are_read_only_copies():
    store = IterationStore()
    source = np.full(64, 0.25, dtype=np.float32)
    it = store.append(source, 8000, np.ones(1024), _metrics())
    source[:] = 0.0
    assert float(it.samples[0]) == pytest.approx(0.25), "store must copy the input"
    with pytest.raises(ValueError):
        it.samples[0] = 1.0
    with pytest.raises(ValueError):
        it.spectrum[0] = 1.0


def test_reset_clears_everything():
    store = IterationStore()
    _append(store)
    _append(store)
    store.reset()
    assert store.latest_index() == -1
    assert list(store) == []
    # After a reset the sequence starts again at 0
    assert _append(store).index == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
