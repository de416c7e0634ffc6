"""
Seeded random number generator with a fully specified algorithm.

Rounds must be reproducible from their seed by any implementation, so the
generator does not depend on numpy's or Python's default bit generators:

- state: xoshiro256** (Blackman & Vigna), 4 x 64-bit words
- seeding: the seed (masked to 64 bits) feeds SplitMix64, whose first four
  outputs become the state
- random(): top 53 bits of the next output, scaled to [0, 1)
- normal(): Box-Muller from two consecutive random() draws,
  z = sqrt(-2 ln(1 - u1)) * cos(2 pi u2); the sine branch is discarded
"""

import math
from typing import List

MASK64 = (1 << 64) - 1


def _rotl(x: int, k: int) -> int:
    return ((x << k) | (x >> (64 - k))) & MASK64


def splitmix64(state: int):
    """Advance a SplitMix64 state. Returns (new_state, output)."""
    state = (state + 0x9E3779B97F4A7C15) & MASK64
    z = state
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
    return state, z ^ (z >> 31)


class PortableRandom:
    """xoshiro256** generator seeded through SplitMix64."""

    def __init__(self, seed: int):
        self.seed = seed
        sm = seed & MASK64
        state: List[int] = []
        for _ in range(4):
            sm, out = splitmix64(sm)
            state.append(out)
        self._s = state

    def next_uint64(self) -> int:
        s = self._s
        result = (_rotl((s[1] * 5) & MASK64, 7) * 9) & MASK64
        t = (s[1] << 17) & MASK64

        s[2] ^= s[0]
        s[3] ^= s[1]
        s[1] ^= s[2]
        s[0] ^= s[3]
        s[2] ^= t
        s[3] = _rotl(s[3], 45)

        return result

    def random(self) -> float:
        """Uniform double in [0, 1)."""
        return (self.next_uint64() >> 11) * (1.0 / (1 << 53))

    def normal(self, mean: float = 0.0, std: float = 1.0) -> float:
        u1 = self.random()
        u2 = self.random()
        z = math.sqrt(-2.0 * math.log(1.0 - u1)) * math.cos(2.0 * math.pi * u2)
        return mean + std * z
