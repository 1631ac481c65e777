"""
Distance metrics over equal-length numeric vectors.

Every metric is a stateless value object. Worker threads still take their own
instance through duplicate() so that a metric which does carry state can be
plugged in without adding locks.
"""

import copy
from abc import ABC, abstractmethod

import numpy as np

__all__ = [
    "DistanceMetric",
    "EuclideanDistanceMetric",
    "ManhattanDistanceMetric",
    "ChebyshevDistanceMetric",
    "CanberraDistanceMetric",
    "BrayCurtisDistanceMetric",
    "CosineDistanceMetric",
    "TanimotoDistanceMetric",
]


def _pair(tuple1, tuple2):
    a = np.asarray(tuple1, dtype=float)
    b = np.asarray(tuple2, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"tuple lengths differ: {a.size} != {b.size}")
    return a, b


class DistanceMetric(ABC):
    """
    Symmetric, non-negative distance between two tuples of the same length.
    """

    @abstractmethod
    def distance(self, tuple1, tuple2) -> float:
        """
        @param tuple1: first vector
        @param tuple2: second vector, same length as tuple1
        @return: the distance
        @raises ValueError: on a length mismatch
        """

    def duplicate(self) -> "DistanceMetric":
        """Independent instance safe to use from another thread."""
        return copy.copy(self)

    def __call__(self, tuple1, tuple2) -> float:
        return self.distance(tuple1, tuple2)

    def __eq__(self, other):
        return type(self) is type(other)

    def __hash__(self):
        return hash(type(self).__name__)

    def __repr__(self):
        return f"{type(self).__name__}()"


class EuclideanDistanceMetric(DistanceMetric):

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        d = a - b
        return float(np.sqrt(np.dot(d, d)))


class ManhattanDistanceMetric(DistanceMetric):

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        return float(np.sum(np.abs(a - b)))


class ChebyshevDistanceMetric(DistanceMetric):

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        if a.size == 0:
            return 0.0
        return float(np.max(np.abs(a - b)))


class CanberraDistanceMetric(DistanceMetric):
    """Sum of |a-b| / (|a|+|b|); dimensions where both are zero contribute nothing."""

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        denom = np.abs(a) + np.abs(b)
        nz = denom != 0.0
        return float(np.sum(np.abs(a[nz] - b[nz]) / denom[nz]))


class BrayCurtisDistanceMetric(DistanceMetric):
    """sum|a-b| / sum|a+b|; 0 for identical tuples, inf if the denominator vanishes."""

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        s1 = float(np.sum(np.abs(a - b)))
        if s1 == 0.0:
            return 0.0
        s2 = float(np.sum(np.abs(a + b)))
        return s1 / s2 if s2 != 0.0 else float("inf")


class CosineDistanceMetric(DistanceMetric):
    """
    1 - cos(angle between the tuples).

    Two zero tuples are at distance 0. A zero tuple against a non-zero tuple
    has no defined angle and raises ValueError.
    """

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        norm_a = float(np.sqrt(np.dot(a, a)))
        norm_b = float(np.sqrt(np.dot(b, b)))
        denom = norm_a * norm_b
        if denom == 0.0:
            if norm_a == 0.0 and norm_b == 0.0:
                return 0.0
            raise ValueError(
                "cosine distance cannot be computed between a zero tuple and a nonzero tuple")
        return 1.0 - float(np.dot(a, b)) / denom


class TanimotoDistanceMetric(DistanceMetric):

    def distance(self, tuple1, tuple2):
        a, b = _pair(tuple1, tuple2)
        xy = float(np.dot(a, b))
        denom = float(np.dot(a, a) + np.dot(b, b)) - xy
        return 1.0 - xy / denom if denom != 0.0 else 0.0
