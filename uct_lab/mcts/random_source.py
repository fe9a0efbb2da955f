"""
Deterministic random source for reproducible searches.

The search engine draws every random number it needs from a single
Mulberry32 stream that is reseeded at the start of each run. Given the same
seed, the same starting tree and the same parameters, two runs make exactly
the same draws in exactly the same order:

1. Selection: one draw per UCT tie, and only when a tie is detected
2. Expansion: one draw to pick the untried move
3. Simulation: one draw per random playout move

Mulberry32 keeps a single 32-bit word of state. Each draw adds the constant
0x6D2B79F5 to the state, mixes it with two multiply-xorshift rounds and
divides the resulting 32-bit word by 2**32, so draws lie in [0, 1).
"""
from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_SCALE = 4294967296.0  # 2**32


class Mulberry32:
    """
    Seedable 32-bit pseudo-random generator.

    The bit behaviour matches the common Mulberry32 reference, so a seed
    produces the same stream here as in any other faithful implementation.
    """

    def __init__(self, seed: int = 0):
        """
        Initialize the generator.

        Args:
            seed: Integer seed; reduced modulo 2**32
        """
        self._state = 0
        self.seed = 0
        self.reseed(seed)

    def reseed(self, seed: int) -> None:
        """Restart the stream from a seed."""
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise TypeError(f"seed must be an integer, got {type(seed).__name__}")
        self.seed = seed
        self._state = seed & _MASK32

    def next_uint32(self) -> int:
        """Advance the state and return the next raw 32-bit output."""
        self._state = (self._state + _INCREMENT) & _MASK32
        t = self._state
        x = ((t ^ (t >> 15)) * (t | 1)) & _MASK32
        x ^= (x + (((x ^ (x >> 7)) * (x | 61)) & _MASK32)) & _MASK32
        return (x ^ (x >> 14)) & _MASK32

    def random(self) -> float:
        """Return the next draw in [0, 1)."""
        return self.next_uint32() / _SCALE

    def randbelow(self, n: int) -> int:
        """Return an integer in [0, n) using a single draw."""
        if n <= 0:
            raise ValueError("n must be positive")
        return int(self.random() * n)

    def choice(self, seq: Sequence[T]) -> T:
        """
        Pick one element uniformly with a single draw.

        Args:
            seq: Non-empty sequence

        Returns:
            ``seq[floor(random() * len(seq))]``
        """
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.randbelow(len(seq))]

    def coin(self) -> bool:
        """Unbiased coin flip using a single draw."""
        return self.random() < 0.5

    def getstate(self) -> int:
        return self._state

    def setstate(self, state: int) -> None:
        self._state = state & _MASK32

    def __repr__(self) -> str:
        return f"Mulberry32(seed={self.seed}, state=0x{self._state:08x})"
