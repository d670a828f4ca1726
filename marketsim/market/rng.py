"""
Seeded random number generator for the simulators.

Mulberry32: a 32-bit state mixer with a full 2^32 period. Every draw made by
a simulator goes through one instance, so a given seed reproduces the same
tick sequence exactly. This is the determinism contract callers rely on for
regression tests and Monte Carlo "seed" mode.
"""

import math
from typing import Optional, Sequence

_MASK32 = 0xFFFFFFFF
_INV_2_32 = 1.0 / 4294967296.0


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply (low 32 bits of the product)."""
    return (a * b) & _MASK32


class Mulberry32:
    """
    Mulberry32 uniform generator with derived distributions.

    Usage:
        rng = Mulberry32(42)
        u = rng.next_float()       # [0, 1)
        z = rng.gaussian()         # N(0, 1), Box-Muller
        dt = rng.exponential(2.0)  # Exp(rate)
    """

    def __init__(self, seed: int = 42):
        self._state = int(seed) & _MASK32
        self._spare: Optional[float] = None

    @property
    def state(self) -> int:
        return self._state

    def next_uint32(self) -> int:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        a = self._state
        t = _imul(a ^ (a >> 15), a | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & _MASK32) ^ t
        return (t ^ (t >> 14)) & _MASK32

    def next_float(self) -> float:
        """Uniform float in [0, 1)."""
        return self.next_uint32() * _INV_2_32

    def uniform(self, lo: float, hi: float) -> float:
        return lo + (hi - lo) * self.next_float()

    def randint(self, lo: int, hi: int) -> int:
        """Uniform integer in [lo, hi] inclusive."""
        if hi <= lo:
            return lo
        return lo + min(int(self.next_float() * (hi - lo + 1)), hi - lo)

    def gaussian(self) -> float:
        """
        Standard normal draw via Box-Muller.

        Each transform yields two independent variates; the second is cached
        and returned by the next call.
        """
        if self._spare is not None:
            z, self._spare = self._spare, None
            return z
        u1 = max(self.next_float(), 1e-12)
        u2 = self.next_float()
        radius = math.sqrt(-2.0 * math.log(u1))
        theta = 2.0 * math.pi * u2
        self._spare = radius * math.sin(theta)
        return radius * math.cos(theta)

    def exponential(self, rate: float) -> float:
        """Inter-arrival time for a Poisson process with the given rate."""
        u = self.next_float()
        return -math.log(1.0 - u + 1e-12) / max(rate, 1e-6)

    def pareto(self, x_m: float, alpha: float) -> float:
        """Pareto(x_m, alpha) draw by inverse transform."""
        u = 1.0 - self.next_float()  # (0, 1]
        return x_m / (u ** (1.0 / alpha))

    def choice_index(self, weights: Sequence[float]) -> int:
        """
        Pick an index by cumulative-probability sampling.

        Weights need not sum to 1; the last index absorbs rounding.
        """
        total = sum(weights)
        if total <= 0:
            return len(weights) - 1
        target = self.next_float() * total
        cumulative = 0.0
        for i, weight in enumerate(weights):
            cumulative += weight
            if target < cumulative:
                return i
        return len(weights) - 1
