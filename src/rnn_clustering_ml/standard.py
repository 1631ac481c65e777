"""
Exhaustive agglomerative clustering over a full pairwise distance matrix.

This clusterer stores the full pairwise distance matrix (O(n^2) memory),
uses a heap (lazy deletion) to choose merges, and updates inter-cluster
distances via Lance-Williams updates (vectorized). Supported linkages:
    - SINGLE, COMPLETE, MEAN

Cluster slot i always carries dendrogram id i: a merge keeps the smaller slot,
which is also the id the dendrogram assigns to the merged node.

Doxygen-style docstrings are used (with @param / @return tags).
"""

import heapq
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from .dendrogram import Dendrogram
from .distance import DistanceMetric, EuclideanDistanceMetric
from .errors import IllegalStateError
from .hierarchical import AbstractHierarchicalClusterer, split_ranges
from .params import Linkage
from .task import ProgressHandler
from .tuples import TupleList

__all__ = [
    "compute_pairwise_distances",
    "init_clusters",
    "pair_to_heap_entries",
    "lance_williams_update",
    "extract_min_pair",
    "merge_clusters",
    "StandardHierarchicalClusterer",
]

logger = logging.getLogger(__name__)


def _euclidean_distances(X: np.ndarray) -> np.ndarray:
    sq = np.sum(X * X, axis=1, keepdims=True)  # (n,1)
    D2 = sq + sq.T - 2.0 * (X @ X.T)
    # Numerical safety: clip small negatives to zero
    D2[D2 < 0] = 0.0
    D = np.sqrt(D2, dtype=float)
    np.fill_diagonal(D, 0.0)
    return D


def _fill_rows(X: np.ndarray, D: np.ndarray, start: int, end: int,
               metric: DistanceMetric) -> None:
    n = X.shape[0]
    for i in range(start, end):
        for j in range(i + 1, n):
            D[i, j] = metric.distance(X[i], X[j])


def compute_pairwise_distances(tuples: TupleList, metric: DistanceMetric,
                               executor: Optional[ThreadPoolExecutor] = None,
                               parts: int = 1) -> np.ndarray:
    """
    Compute the full pairwise distance matrix for the rows of a TupleList.

    The Euclidean metric is evaluated in one vectorized pass. Any other
    metric is evaluated pair by pair over row blocks, one block per
    worker when an executor is given; each worker uses its own duplicate of
    the metric and fills only its own rows.

    @param tuples: source tuples
    @param metric: distance metric
    @param executor: optional thread pool for the row blocks
    @param parts: number of row blocks
    @return: symmetric array D shape (n, n) with a zero diagonal
    """
    X = np.asarray(tuples.as_array(), dtype=float)
    n = X.shape[0]
    if isinstance(metric, EuclideanDistanceMetric):
        return _euclidean_distances(X)

    D = np.zeros((n, n), dtype=float)
    ranges = split_ranges(n, max(1, min(parts, n))) if n else []
    if executor is None:
        for start, end in ranges:
            _fill_rows(X, D, start, end, metric)
    else:
        futures = [executor.submit(_fill_rows, X, D, start, end, metric.duplicate())
                   for start, end in ranges]
        for f in futures:
            f.result()
    D = np.triu(D, 1)
    return D + D.T


def init_clusters(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Initialize cluster bookkeeping structures.

    @param n: Number of initial clusters (the number of tuples).

    @return: A tuple (active, sizes)
        - active: boolean array length n (True indicates cluster is active)
        - sizes: integer array length n (cluster sizes)
    """
    active = np.ones(n, dtype=bool)
    sizes = np.ones(n, dtype=int)
    return active, sizes


def pair_to_heap_entries(D: np.ndarray) -> List[Tuple[float, int, int]]:
    """
    Create heap entries (distance, i, j) for the upper triangle of D (i < j),
    and heapify them for efficient pop-min.

    @param D: symmetric distance matrix (n, n) with floats.
    @return: list suitable for heapq operations (heapified).
    """
    iu, ju = np.triu_indices(D.shape[0], k=1)
    entries = [(float(d), int(i), int(j)) for d, i, j in zip(D[iu, ju], iu, ju)]
    heapq.heapify(entries)
    return entries


def lance_williams_update(linkage: Linkage, d_ik, d_jk, size_i: int, size_j: int):
    """
    Lance-Williams update for the single/complete/mean linkages.

    @param linkage: Linkage.SINGLE | Linkage.COMPLETE | Linkage.MEAN
    @param d_ik: distance(s) between cluster i and k
    @param d_jk: distance(s) between cluster j and k
    @param size_i: size of cluster i (int)
    @param size_j: size of cluster j (int)
    @return: updated distance(s) d(i u j, k)
    """
    if linkage == Linkage.SINGLE:
        return np.minimum(d_ik, d_jk)
    elif linkage == Linkage.COMPLETE:
        return np.maximum(d_ik, d_jk)
    elif linkage == Linkage.MEAN:
        return (size_i * d_ik + size_j * d_jk) / (size_i + size_j)
    else:
        raise ValueError(f"Unsupported linkage for lance_williams_update: {linkage}")


def extract_min_pair(heap: List[Tuple[float, int, int]], D: np.ndarray,
                     active: np.ndarray, tol: float = 1e-12) -> Tuple[int, int, float]:
    """
    Pop from heap until a valid active pair (i, j) with up-to-date distance is found.

    Lazy deletion: many heap entries can be stale after merges; this function skips
    them until it finds an active pair matching the current D[i, j].

    @param heap: heap list managed with heapq
    @param D: current inter-cluster distance matrix (n, n)
    @param active: boolean mask of active clusters
    @param tol: absolute tolerance for considering a popped distance equal to D[i,j]
    @return: tuple (i, j, distance) with i < j
    @raises IllegalStateError: if the heap runs out of valid pairs
    """
    while heap:
        dist, i, j = heapq.heappop(heap)
        if not (active[i] and active[j]):
            continue
        current = D[i, j]
        if dist == current or abs(dist - current) <= max(tol, 1e-12 * (1.0 + abs(current))):
            return i, j, float(current)
        # else stale -> skip
    raise IllegalStateError("Heap exhausted without finding a valid pair.")


def merge_clusters(i: int, j: int,
                   active: np.ndarray,
                   sizes: np.ndarray,
                   D: np.ndarray,
                   linkage: Linkage,
                   heap: List[Tuple[float, int, int]]) -> None:
    """
    Merge cluster j into cluster i. Update active mask, sizes and D,
    and push updated heap entries (i, k) for all remaining active k.

    @param i: index of cluster to keep (int)
    @param j: index of cluster to deactivate (int). j != i.
    @param active: boolean mask of active clusters; modified in-place
    @param sizes: integer array of cluster sizes; modified in-place
    @param D: inter-cluster distance matrix (n, n); modified in-place
    @param linkage: linkage rule
    @param heap: heap list to push updated pairs into (heapq used); modified in-place
    """
    if i == j:
        raise ValueError("Cannot merge a cluster with itself.")
    if not (active[i] and active[j]):
        raise ValueError("Both clusters must be active to merge.")

    size_i = int(sizes[i])
    size_j = int(sizes[j])

    act_idx = np.flatnonzero(active)
    others = act_idx[(act_idx != i) & (act_idx != j)]

    d_new = lance_williams_update(linkage, D[i, others], D[j, others], size_i, size_j)

    D[i, others] = d_new
    D[others, i] = d_new

    # deactivate j: set its distances to +inf and update active/sizes
    D[j, :] = np.inf
    D[:, j] = np.inf
    active[j] = False
    sizes[i] = size_i + size_j
    sizes[j] = 0

    for k in others:
        a, b = min(i, int(k)), max(i, int(k))
        heapq.heappush(heap, (float(D[a, b]), a, b))


class StandardHierarchicalClusterer(AbstractHierarchicalClusterer):
    """
    Hierarchical clusterer that always merges the globally closest pair.

    Distances between merged clusters follow params.linkage. Ties go to the
    pair with the smallest (i, j).
    """

    def task_name(self) -> str:
        return f"{self.params.linkage.name.lower()} linkage hierarchical clustering"

    def _build_dendrogram(self) -> Dendrogram:
        tuples = self.tuples
        params = self.params
        n = tuples.tuple_count
        dendrogram = Dendrogram(n)

        ph = ProgressHandler(self, steps=n)
        ph.post_begin()

        thread_count = min(params.worker_thread_count, n)
        executor = ThreadPoolExecutor(max_workers=thread_count) if thread_count > 1 else None
        try:
            D = compute_pairwise_distances(tuples, params.distance_metric, executor, thread_count)
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
        self.post_message("computed pairwise distances")
        ph.post_step()

        # diagonal set to +inf so it is never picked
        np.fill_diagonal(D, np.inf)
        active, sizes = init_clusters(n)
        heap = pair_to_heap_entries(D)

        while not dendrogram.is_finished():
            self._check_for_cancel()
            i, j, dist = extract_min_pair(heap, D, active)
            dendrogram.merge_nodes(i, j, dist)
            logger.debug("merged %d and %d at %g", i, j, dist)
            merge_clusters(i, j, active, sizes, D, params.linkage, heap)
            ph.post_step()

        ph.post_end()
        return dendrogram
