"""
Injectable jitter for the scoring engine.

NoNoise is the default: uniform(low, high) returns the midpoint, so symmetric
jitter ranges contribute zero and value ranges collapse to their center.
RandomNoise reproduces demo-style variance from an optional seed.
"""

import random
from typing import Optional


class NoiseGenerator:
    def uniform(self, low: float, high: float) -> float:
        raise NotImplementedError


class NoNoise(NoiseGenerator):
    def uniform(self, low: float, high: float) -> float:
        return (low + high) / 2.0


class RandomNoise(NoiseGenerator):
    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)


def noise_from_settings(jitter: bool, seed: Optional[int] = None) -> NoiseGenerator:
    return RandomNoise(seed) if jitter else NoNoise()
