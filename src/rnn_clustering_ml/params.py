"""
Parameters for hierarchical clustering runs.
"""

import math
import os
import time
from dataclasses import dataclass, field, fields
from enum import Enum

from .distance import DistanceMetric, EuclideanDistanceMetric

__all__ = ["Criterion", "Linkage", "HierarchicalParams", "HierarchicalParamsBuilder"]


class _NamedEnum(Enum):

    @classmethod
    def from_name(cls, name: str):
        """Case-insensitive lookup by member name."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown {cls.__name__.lower()}: {name!r}") from None


class Criterion(_NamedEnum):
    """How the finished dendrogram is cut into clusters."""
    CLUSTERS = "clusters"
    COHERENCE = "coherence"


class Linkage(_NamedEnum):
    """Inter-cluster distance rule for exhaustive agglomeration."""
    SINGLE = "single"
    COMPLETE = "complete"
    MEAN = "mean"


def _default_thread_count() -> int:
    return os.cpu_count() or 1


def _default_seed() -> int:
    return time.time_ns() & 0x7FFFFFFFFFFFFFFF


@dataclass
class HierarchicalParams:
    """
    Hierarchical clustering configuration.

    Values are checked when the object is built and on every later assignment.

    @param criterion: cut by a fixed cluster count or by a coherence target
    @param cluster_count: clusters wanted under Criterion.CLUSTERS (> 0)
    @param coherence_desired: coherence target under Criterion.COHERENCE, in (0, 1]
    @param min_coherence_threshold: distance mapped to coherence 1
    @param max_coherence_threshold: distance mapped to coherence 0; NaN means the largest merge distance
    @param linkage: linkage rule; only the exhaustive clusterer uses it
    @param distance_metric: metric between tuples and centroids
    @param worker_thread_count: threads used for distance computations (> 0)
    @param random_seed: seed for the shuffled merge order
    """
    criterion: Criterion = Criterion.CLUSTERS
    cluster_count: int = 1
    coherence_desired: float = 0.8
    min_coherence_threshold: float = 0.0
    max_coherence_threshold: float = float("nan")
    linkage: Linkage = Linkage.COMPLETE
    distance_metric: DistanceMetric = field(default_factory=EuclideanDistanceMetric)
    worker_thread_count: int = field(default_factory=_default_thread_count)
    random_seed: int = field(default_factory=_default_seed)

    def __post_init__(self):
        for f in fields(self):
            _check(f.name, getattr(self, f.name))

    def __setattr__(self, name, value):
        _check(name, value)
        super().__setattr__(name, value)

    @staticmethod
    def builder() -> "HierarchicalParamsBuilder":
        return HierarchicalParamsBuilder()


def _check(name, value) -> None:
    if name == "criterion":
        if value is None:
            raise TypeError("criterion is required")
        if not isinstance(value, Criterion):
            raise ValueError(f"not a Criterion: {value!r}")
    elif name == "linkage":
        if value is None:
            raise TypeError("linkage is required")
        if not isinstance(value, Linkage):
            raise ValueError(f"not a Linkage: {value!r}")
    elif name == "distance_metric":
        if value is None:
            raise TypeError("distance_metric is required")
        if not isinstance(value, DistanceMetric):
            raise ValueError(f"not a DistanceMetric: {value!r}")
    elif name == "cluster_count":
        if value <= 0:
            raise ValueError(f"cluster count must be > 0: {value}")
    elif name == "coherence_desired":
        if not (0.0 < value <= 1.0):
            raise ValueError(f"coherence desired not in (0.0 - 1.0]: {value}")
    elif name == "worker_thread_count":
        if value <= 0:
            raise ValueError(f"worker thread count must be > 0: {value}")
    elif name in ("min_coherence_threshold", "max_coherence_threshold"):
        if not isinstance(value, (int, float)) or math.isinf(value):
            raise ValueError(f"{name} must be a finite number or NaN: {value!r}")


class HierarchicalParamsBuilder:
    """Fluent builder; each setter validates immediately."""

    def __init__(self):
        self._params = HierarchicalParams()

    def _set(self, name, value) -> "HierarchicalParamsBuilder":
        setattr(self._params, name, value)
        return self

    def criterion(self, criterion: Criterion):
        return self._set("criterion", criterion)

    def cluster_count(self, n: int):
        return self._set("cluster_count", n)

    def coherence_desired(self, c: float):
        return self._set("coherence_desired", c)

    def min_coherence_threshold(self, d: float):
        return self._set("min_coherence_threshold", d)

    def max_coherence_threshold(self, d: float):
        return self._set("max_coherence_threshold", d)

    def linkage(self, linkage: Linkage):
        return self._set("linkage", linkage)

    def distance_metric(self, metric: DistanceMetric):
        return self._set("distance_metric", metric)

    def worker_thread_count(self, n: int):
        return self._set("worker_thread_count", n)

    def random_seed(self, seed: int):
        return self._set("random_seed", seed)

    def build(self) -> HierarchicalParams:
        p = self._params
        return HierarchicalParams(**{f.name: getattr(p, f.name) for f in fields(p)})
