"""
Append-only, write-once store of iterations.
Index i+1 can only be stored after index i; nothing is ever replaced. reset() clears all.
"""
import threading
from typing import Iterator, List, Optional

import numpy as np

from sittingroom.core.errors import SequenceError
from sittingroom.core.types import Iteration, ParameterSnapshot, SpectralMetrics


def _frozen(array) -> np.ndarray:
    out = np.array(array, dtype=np.float32, copy=True).reshape(-1)
    out.flags.writeable = False
    return out


class IterationStore:
    def __init__(self):
        self._iterations: List[Iteration] = []
        self._lock = threading.Lock()

    def append(
        self,
        samples,
        sample_rate: int,
        spectrum,
        metrics: SpectralMetrics,
        params: Optional[ParameterSnapshot] = None,
        index: Optional[int] = None,
    ) -> Iteration:
        """
        Store the next sequential iteration and return it.
        If index is given it must be exactly latest_index() + 1 (0 on an empty store).
        """
        with self._lock:
            expected = len(self._iterations)
            if index is not None and index != expected:
                if expected == 0:
                    raise SequenceError(f"Store is empty: first iteration must be index 0, got {index}")
                if index < expected:
                    raise SequenceError(f"Iteration {index} already exists (write-once)")
                raise SequenceError(f"Out-of-order append: expected index {expected}, got {index}")
            iteration = Iteration(
                index=expected,
                samples=_frozen(samples),
                sample_rate=int(sample_rate),
                spectrum=_frozen(spectrum),
                metrics=metrics,
                params=params,
            )
            self._iterations.append(iteration)
            return iteration

    def get(self, index: int) -> Optional[Iteration]:
        with self._lock:
            if 0 <= index < len(self._iterations):
                return self._iterations[index]
            return None

    def latest_index(self) -> int:
        with self._lock:
            return len(self._iterations) - 1

    def latest(self) -> Optional[Iteration]:
        with self._lock:
            return self._iterations[-1] if self._iterations else None

    def reset(self) -> None:
        with self._lock:
            self._iterations = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._iterations)

    def __iter__(self) -> Iterator[Iteration]:
        with self._lock:
            return iter(list(self._iterations))
