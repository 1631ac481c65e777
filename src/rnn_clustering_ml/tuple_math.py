"""
Vectorized helpers over the rows of a TupleList.

@param ids arguments select the tuples to use; None means every tuple.
"""

from typing import Iterable, Optional, Tuple

import numpy as np

from .tuples import ArrayTupleList, TupleList

__all__ = [
    "average",
    "min_corner",
    "max_corner",
    "median",
    "norm1",
    "mean_and_variance",
    "generate_random_gaussian_tuples",
]


def _rows(tuples: TupleList, ids: Optional[Iterable[int]]) -> np.ndarray:
    data = tuples.as_array()
    if ids is None:
        return data
    idx = np.fromiter((int(i) for i in ids), dtype=np.int64)
    return data[idx]


def average(tuples: TupleList, ids: Optional[Iterable[int]] = None) -> np.ndarray:
    """
    Compute the element-wise mean of the selected tuples.

    @param tuples: source tuple list
    @param ids: iterable of tuple indices, or None for all
    @return: array of length tuple_length (all zeros if nothing is selected)
    """
    rows = _rows(tuples, ids)
    if rows.shape[0] == 0:
        return np.zeros(tuples.tuple_length)
    return rows.mean(axis=0)


def min_corner(tuples: TupleList, ids: Optional[Iterable[int]] = None) -> np.ndarray:
    """Element-wise minimum of the selected tuples (+inf when none are selected)."""
    rows = _rows(tuples, ids)
    if rows.shape[0] == 0:
        return np.full(tuples.tuple_length, np.inf)
    return rows.min(axis=0)


def max_corner(tuples: TupleList, ids: Optional[Iterable[int]] = None) -> np.ndarray:
    """Element-wise maximum of the selected tuples (-inf when none are selected)."""
    rows = _rows(tuples, ids)
    if rows.shape[0] == 0:
        return np.full(tuples.tuple_length, -np.inf)
    return rows.max(axis=0)


def median(tuples: TupleList, column: int, ids: Optional[Iterable[int]] = None) -> float:
    """Median of one column over the selected tuples."""
    tuples.check_column(column)
    rows = _rows(tuples, ids)
    if rows.shape[0] == 0:
        return float("nan")
    return float(np.median(rows[:, column]))


def norm1(values) -> float:
    """Sum of absolute values."""
    return float(np.sum(np.abs(np.asarray(values, dtype=float))))


def mean_and_variance(values) -> Tuple[float, float]:
    """
    Mean and population variance of a 1D sequence, ignoring NaNs.

    @return: (mean, variance); both NaN for an empty or all-NaN input
    """
    arr = np.asarray(values, dtype=float)
    arr = arr[~np.isnan(arr)]
    if arr.size == 0:
        return float("nan"), float("nan")
    return float(arr.mean()), float(arr.var())


def generate_random_gaussian_tuples(tuple_count: int, tuple_length: int,
                                    cluster_count: int,
                                    seed: Optional[int] = None,
                                    standard_dev: float = 0.1,
                                    spread: float = 1.0) -> ArrayTupleList:
    """
    Generate tuples scattered normally around randomly placed centers.

    Centers are drawn uniformly from [0, spread) in every dimension, and each
    tuple is assigned to a center round-robin before Gaussian noise is added.

    @param tuple_count: number of tuples to generate
    @param tuple_length: dimensionality
    @param cluster_count: number of centers (>= 1)
    @param seed: seed for numpy.random.default_rng
    @param standard_dev: standard deviation of the noise around each center
    @param spread: extent of the cube the centers are drawn from
    @return: a new ArrayTupleList
    """
    if tuple_count < 0 or tuple_length <= 0:
        raise ValueError("tuple count must be >= 0 and tuple length > 0")
    if cluster_count <= 0:
        raise ValueError("cluster count must be > 0")
    rng = np.random.default_rng(seed)
    centers = rng.uniform(0.0, spread, size=(cluster_count, tuple_length))
    assignment = np.arange(tuple_count) % cluster_count
    data = centers[assignment] + rng.normal(0.0, standard_dev, size=(tuple_count, tuple_length))
    return ArrayTupleList(tuple_length, data=data)
