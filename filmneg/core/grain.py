"""
Random source for film grain.
"""

import threading
import time

import numpy as np


class GrainSource:
    """
    Thread-safe wrapper around a numpy Generator.

    numpy Generators are not safe for concurrent use, so draws are
    serialized with a lock. Pass a seed for reproducible grain; without
    one the generator is seeded from the wall clock.
    """

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = time.time_ns()
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def draw(self, shape: tuple[int, int], intensity: int) -> np.ndarray:
        """Uniform integers in [-intensity, intensity], int16."""
        with self._lock:
            return self._rng.integers(
                -intensity, intensity + 1, size=shape, dtype=np.int16
            )
