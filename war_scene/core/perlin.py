"""
Classic 2D Perlin gradient noise seeded from a MulberryPRNG stream.

The permutation table is built with a Fisher-Yates shuffle that consumes
exactly 255 draws from the stream, so constructing the field advances the
shared generator by a fixed amount before any layer draws.
"""

import math

import numpy as np
from typing import Callable, Union

ArrayOrFloat = Union[float, np.ndarray]


def _fade(t):
    return t * t * t * (t * (t * 6 - 15) + 10)


def _lerp(t, a, b):
    return a + t * (b - a)


def _grad(hash_value: int, x: float, y: float) -> float:
    h = hash_value & 3
    u = x if h < 2 else y
    v = y if h < 2 else x
    return (u if (h & 1) == 0 else -u) + (v if (h & 2) == 0 else -v)


def _grad_array(hash_values: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    h = hash_values & 3
    swap = h >= 2
    u = np.where(swap, y, x)
    v = np.where(swap, x, y)
    u = np.where((h & 1) == 0, u, -u)
    v = np.where((h & 2) == 0, v, -v)
    return u + v


class PerlinNoise:
    """
    Perlin noise field returning values in [0, 1).

    Each instance owns its permutation table; nothing is shared between
    fields, so independent scenes can be built side by side.

    Args:
        random: Zero-argument callable returning floats in [0, 1)
    """

    def __init__(self, random: Callable[[], float]):
        base = list(range(256))
        for i in range(255, 0, -1):
            j = int(random() * (i + 1))
            base[i], base[j] = base[j], base[i]

        self._base = np.array(base, dtype=np.int64)
        self._base.flags.writeable = False
        self._table = np.array([base[i & 255] for i in range(512)], dtype=np.int64)
        self._table.flags.writeable = False
        # Plain list for the scalar path; indexing numpy scalars is much slower
        self._perm = [base[i & 255] for i in range(512)]

    @property
    def permutation(self) -> np.ndarray:
        """The 256-entry base permutation (read-only)."""
        return self._base

    def __call__(self, x: ArrayOrFloat, y: ArrayOrFloat) -> ArrayOrFloat:
        if isinstance(x, np.ndarray) or isinstance(y, np.ndarray):
            return self.sample(x, y)
        return self.noise(x, y)

    def noise(self, x: float, y: float) -> float:
        """Evaluate the field at a single point."""
        p = self._perm
        fx = math.floor(x)
        fy = math.floor(y)
        xi = fx & 255
        yi = fy & 255
        xf = x - fx
        yf = y - fy

        u = _fade(xf)
        v = _fade(yf)

        aa = p[xi + p[yi]]
        ab = p[xi + p[yi + 1]]
        ba = p[xi + 1 + p[yi]]
        bb = p[xi + 1 + p[yi + 1]]

        x1 = _lerp(u, _grad(aa, xf, yf), _grad(ba, xf - 1, yf))
        x2 = _lerp(u, _grad(ab, xf, yf - 1), _grad(bb, xf - 1, yf - 1))

        return (_lerp(v, x1, x2) + 1) / 2

    def sample(self, x: ArrayOrFloat, y: ArrayOrFloat) -> np.ndarray:
        """
        Evaluate the field element-wise over broadcast arrays.

        Produces the same values as calling :meth:`noise` point by point.
        """
        x, y = np.broadcast_arrays(
            np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)
        )
        p = self._table
        fx = np.floor(x)
        fy = np.floor(y)
        xi = fx.astype(np.int64) & 255
        yi = fy.astype(np.int64) & 255
        xf = x - fx
        yf = y - fy

        u = _fade(xf)
        v = _fade(yf)

        aa = p[xi + p[yi]]
        ab = p[xi + p[yi + 1]]
        ba = p[xi + 1 + p[yi]]
        bb = p[xi + 1 + p[yi + 1]]

        x1 = _lerp(u, _grad_array(aa, xf, yf), _grad_array(ba, xf - 1, yf))
        x2 = _lerp(u, _grad_array(ab, xf, yf - 1), _grad_array(bb, xf - 1, yf - 1))

        return (_lerp(v, x1, x2) + 1) / 2
