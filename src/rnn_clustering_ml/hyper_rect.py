"""
Axis-aligned hyper-rectangles used to prune KD-tree searches.
"""

from typing import Optional, Sequence

import numpy as np

__all__ = ["HyperRect"]


class HyperRect:
    """
    Axis-aligned box in tuple space described by a minimum and a maximum corner.

    HyperRect(dim) builds a zero-volume box at the origin.
    HyperRect(min_corner, max_corner) reorders coordinates per dimension so
    that min_corner <= max_corner everywhere.
    """

    def __init__(self, min_corner, max_corner: Optional[Sequence[float]] = None):
        if max_corner is None:
            dim = int(min_corner)
            if dim <= 0:
                raise ValueError("dimension must be > 0")
            self._min = np.zeros(dim)
            self._max = np.zeros(dim)
        else:
            lo = np.asarray(min_corner, dtype=float)
            hi = np.asarray(max_corner, dtype=float)
            if lo.shape != hi.shape or lo.ndim != 1:
                raise ValueError(f"inconsistent dimensions: {lo.size} != {hi.size}")
            self._min = np.minimum(lo, hi)
            self._max = np.maximum(lo, hi)

    @classmethod
    def infinite(cls, dim: int) -> "HyperRect":
        """Box spanning all of space in every dimension."""
        rect = cls(dim)
        rect._min.fill(-np.inf)
        rect._max.fill(np.inf)
        return rect

    @property
    def dimension(self) -> int:
        return self._min.size

    @property
    def min_corner(self) -> np.ndarray:
        return self._min.copy()

    @min_corner.setter
    def min_corner(self, corner) -> None:
        lo = self._check(corner)
        if np.any(lo > self._max):
            raise ValueError(f"exceeds max corner: {lo.tolist()} > {self._max.tolist()}")
        self._min = lo.copy()

    @property
    def max_corner(self) -> np.ndarray:
        return self._max.copy()

    @max_corner.setter
    def max_corner(self, corner) -> None:
        hi = self._check(corner)
        if np.any(hi < self._min):
            raise ValueError(f"less than min corner: {hi.tolist()} < {self._min.tolist()}")
        self._max = hi.copy()

    def is_point(self) -> bool:
        return bool(np.array_equal(self._min, self._max))

    def closest_point(self, point) -> np.ndarray:
        """Point inside the box nearest to `point` (the point itself if contained)."""
        p = self._check(point)
        return np.clip(p, self._min, self._max)

    def contains(self, point) -> bool:
        p = self._check(point)
        return bool(np.all((p >= self._min) & (p <= self._max)))

    def intersection_with(self, other: "HyperRect") -> Optional["HyperRect"]:
        """Overlapping box, or None when the boxes only touch or are disjoint."""
        self._check(other._min)
        lo = np.maximum(self._min, other._min)
        hi = np.minimum(self._max, other._max)
        if np.any(lo >= hi):
            return None
        return HyperRect(lo, hi)

    def intersects_with(self, other: "HyperRect") -> bool:
        self._check(other._min)
        return bool(np.all(np.maximum(self._min, other._min) < np.minimum(self._max, other._max)))

    def dimension_of_max_width(self) -> int:
        return int(np.argmax(self._max - self._min))

    def dimension_of_min_width(self) -> int:
        return int(np.argmin(self._max - self._min))

    def copy(self) -> "HyperRect":
        return HyperRect(self._min, self._max)

    def _check(self, point) -> np.ndarray:
        p = np.asarray(point, dtype=float)
        if p.shape != self._min.shape:
            raise ValueError(f"wrong number of dimensions: {p.size} != {self._min.size}")
        return p

    def __eq__(self, other):
        if not isinstance(other, HyperRect):
            return NotImplemented
        return np.array_equal(self._min, other._min) and np.array_equal(self._max, other._max)

    def __repr__(self):
        return f"HyperRect(min={self._min.tolist()}, max={self._max.tolist()})"
