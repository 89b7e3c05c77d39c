"""
Python implementation of the Mulberry32 PRNG used by the scene generator.

Every arithmetic step is masked to 32 bits so that the sequence matches
JavaScript's ``Math.imul``/``>>>`` semantics exactly.
"""

_MASK = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & _MASK


def _imul(a, b):
    """32-bit wrapping multiply (JavaScript ``Math.imul`` on unsigned words)."""
    return (a * b) & _MASK


class MulberryPRNG:
    """
    Mulberry32 generator producing floats in [0, 1).

    The whole state is one 32-bit word. Each call to :meth:`random` advances
    it exactly once. Instances are not thread-safe and belong to a single
    generation run.
    """

    def __init__(self, seed):
        """Initialize with an integer seed (reduced modulo 2**32)."""
        self.call_count = 0
        self.seed = _uint32(seed)
        self.state = self.seed

    def next_uint32(self):
        """Advance the state and return the mixed 32-bit output word."""
        self.call_count += 1
        a = _uint32(self.state + _INCREMENT)
        self.state = a
        t = _imul(a ^ (a >> 15), a | 1)
        t = t ^ _uint32(t + _imul(t ^ (t >> 7), t | 61))
        return _uint32(t ^ (t >> 14))

    def random(self):
        """Generate next random number in [0, 1)."""
        return self.next_uint32() / _TWO_POW_32

    __call__ = random
