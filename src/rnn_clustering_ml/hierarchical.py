"""
Hierarchical clustering driven by reciprocal nearest neighbors.

AbstractHierarchicalClusterer owns the run: it checks the input, has the
subclass build a dendrogram (unless a finished one is supplied for reuse),
then cuts it by cluster count or by coherence.

ReverseNNHierarchicalClusterer follows nearest-neighbor chains until it finds
two live nodes that are each other's nearest neighbor and merges them. Node
distances are size weighted,

    a * b / (a + b) * distance(centroid_a, centroid_b),

which gives Ward's method with the Euclidean metric and group average with the
cosine metric. Other metrics are accepted; the result is then not a textbook
linkage. The distance recorded in the dendrogram for a merge is the plain
metric distance between the two centroids.

The distances from one node to every live node are computed by a pool of
worker threads, each filling a disjoint slice of a shared buffer.
"""

import logging
from abc import abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, NamedTuple, Optional

import numpy as np

from .cluster import Cluster
from .dendrogram import Dendrogram
from .distance import CosineDistanceMetric, DistanceMetric, EuclideanDistanceMetric
from .params import Criterion, HierarchicalParams
from .task import ProgressHandler, Task
from .tuples import TupleList

__all__ = [
    "AbstractHierarchicalClusterer",
    "ReverseNNHierarchicalClusterer",
    "NearestNeighborCache",
    "DistanceJob",
    "split_ranges",
]

logger = logging.getLogger(__name__)

MergeCallback = Callable[[int, int, float], None]


class AbstractHierarchicalClusterer(Task):
    """
    Common driver for hierarchical clusterers.

    @param tuples: the tuples to cluster
    @param params: clustering parameters
    @param dendrogram: optional finished dendrogram to re-cut instead of building one
    """

    def __init__(self, tuples: TupleList, params: HierarchicalParams,
                 dendrogram: Optional[Dendrogram] = None):
        super().__init__()
        if tuples is None or params is None:
            raise TypeError("tuples and params are required")
        self.tuples = tuples
        self.params = params
        self._dendrogram = dendrogram
        self._clusters: Optional[List[Cluster]] = None

    @property
    def dendrogram(self) -> Optional[Dendrogram]:
        return self._dendrogram

    @property
    def clusters(self) -> Optional[List[Cluster]]:
        return self._clusters

    @abstractmethod
    def _build_dendrogram(self) -> Dendrogram:
        """Build a finished dendrogram over self.tuples."""

    def _do_task(self) -> List[Cluster]:
        tuple_count = self.tuples.tuple_count
        if tuple_count == 0:
            self._finish_with_error("zero tuples to cluster")

        dendrogram = self._dendrogram
        if dendrogram is not None:
            if dendrogram.leaf_count != tuple_count:
                self._finish_with_error(
                    f"invalid dendrogram: leaf count = {dendrogram.leaf_count}, "
                    f"tuple count = {tuple_count}")
            if not dendrogram.is_finished():
                self._finish_with_error("invalid dendrogram: not finished")
            self.post_message("reclustering from existing dendrogram")
        else:
            dendrogram = self._build_dendrogram()
            self._dendrogram = dendrogram

        params = self.params
        if params.criterion == Criterion.CLUSTERS:
            cluster_count = params.cluster_count
            if cluster_count > tuple_count:
                self.post_message(
                    f"reducing number of clusters to the number of tuples: {tuple_count}")
                cluster_count = tuple_count
        else:
            dendrogram.min_coherence_threshold = params.min_coherence_threshold
            dendrogram.max_coherence_threshold = params.max_coherence_threshold
            cluster_count = dendrogram.clusters_with_coherence_exceeding(params.coherence_desired)

        self._clusters = dendrogram.generate_clusters(cluster_count, self.tuples)
        self.post_message(f"generated {len(self._clusters)} clusters")
        return self._clusters


class NearestNeighborCache:
    """
    Per-node nearest neighbor and the (weighted) distance to it.

    An entry is either valid or invalid; invalid entries are recomputed by a
    full search the next time they are needed.
    """

    def __init__(self, size: int):
        self._nearest = np.full(size, -1, dtype=np.int64)
        self._distances = np.full(size, np.inf)

    def __len__(self):
        return self._nearest.size

    def is_valid(self, index: int) -> bool:
        return self._nearest[index] >= 0

    def get(self, index: int) -> int:
        """Cached nearest neighbor of index, or -1 when invalid."""
        return int(self._nearest[index])

    def distance(self, index: int) -> float:
        return float(self._distances[index])

    def set(self, index: int, neighbor: int, distance: float) -> None:
        self._nearest[index] = neighbor
        self._distances[index] = distance

    def invalidate(self, index: int) -> None:
        self._nearest[index] = -1

    def valid_indices(self) -> np.ndarray:
        return np.flatnonzero(self._nearest >= 0)


class DistanceJob(NamedTuple):
    """
    One worker's share of a nearest-neighbor search.

    Distances from the target to every live node in [start, end) go into
    out[start:end]. Slots of the target itself and of dead nodes are left as
    +inf.
    """
    target: int
    center: np.ndarray
    size: int
    start: int
    end: int
    out: np.ndarray
    metric: DistanceMetric


def split_ranges(count: int, parts: int) -> List[tuple]:
    """Split [0, count) into parts contiguous, nearly equal ranges."""
    bounds = [(count * i) // parts for i in range(parts + 1)]
    return [(bounds[i], bounds[i + 1]) for i in range(parts)]


class ReverseNNHierarchicalClusterer(AbstractHierarchicalClusterer):
    """
    Reciprocal-nearest-neighbor agglomerative clusterer.

    The linkage in params is ignored; the merge rule is fixed by the
    size-weighted centroid distance.

    @param tuples: the tuples to cluster
    @param params: clustering parameters
    @param dendrogram: optional finished dendrogram to re-cut
    @param on_merge: optional callback(id1, id2, distance) invoked after each merge
    """

    def __init__(self, tuples: TupleList, params: HierarchicalParams,
                 dendrogram: Optional[Dendrogram] = None,
                 on_merge: Optional[MergeCallback] = None):
        super().__init__(tuples, params, dendrogram)
        self.on_merge = on_merge
        self._cache: Optional[NearestNeighborCache] = None
        self._available: Optional[np.ndarray] = None
        self._sizes: Optional[np.ndarray] = None
        self._centers = {}

    def task_name(self) -> str:
        metric = self.params.distance_metric
        if isinstance(metric, EuclideanDistanceMetric):
            return "Ward's clustering"
        if isinstance(metric, CosineDistanceMetric):
            return "group average clustering"
        return ("reverse nearest neighbor hierarchical clustering using distance metric "
                + type(metric).__name__)

    # ------------------------------------------------------------- node state

    def _center(self, index: int) -> np.ndarray:
        """Centroid of a live node; a leaf's centroid is its tuple."""
        if self._sizes[index] > 1:
            return self._centers[index]
        return self.tuples.get_tuple(index)

    def _run_job(self, job: DistanceJob) -> None:
        available = self._available
        sizes = self._sizes
        centers = self._centers
        buf = np.empty(self.tuples.tuple_length)
        for i in range(job.start, job.end):
            if i == job.target or not available[i]:
                continue
            sz = int(sizes[i])
            other = centers[i] if sz > 1 else self.tuples.get_tuple(i, buf)
            m = (job.size * sz) / (job.size + sz)
            job.out[i] = m * job.metric.distance(job.center, other)

    def _nearest_neighbor(self, index: int, executor: Optional[ThreadPoolExecutor],
                          metrics: List[DistanceMetric], ranges: List[tuple],
                          out: np.ndarray) -> int:
        cache = self._cache
        if cache.is_valid(index):
            return cache.get(index)

        center = self._center(index)
        size = int(self._sizes[index])
        out.fill(np.inf)
        jobs = [DistanceJob(index, center, size, start, end, out, metric)
                for (start, end), metric in zip(ranges, metrics)]
        if executor is None:
            for job in jobs:
                self._run_job(job)
        else:
            # result() re-raises any worker exception
            for future in [executor.submit(self._run_job, job) for job in jobs]:
                future.result()

        # first minimum in index order, whatever the thread count
        nn = int(np.argmin(out))
        cache.set(index, nn, float(out[nn]))
        return nn

    # -------------------------------------------------------------- building

    def _build_dendrogram(self) -> Dendrogram:
        tuples = self.tuples
        params = self.params
        tuple_count = tuples.tuple_count
        tuple_length = tuples.tuple_length

        dendrogram = Dendrogram(tuple_count)
        ph = ProgressHandler(self, steps=tuple_count - 1)
        if self.end_progress > self.begin_progress:
            ph.min_progress_increment = (self.end_progress - self.begin_progress) / 100
        ph.post_begin()

        # default_rng needs a non-negative seed
        rng = np.random.default_rng(params.random_seed & 0xFFFFFFFFFFFFFFFF)
        shuffled = rng.permutation(tuple_count)

        thread_count = params.worker_thread_count
        if thread_count > tuple_count:
            logger.info("reducing worker thread count from %d to %d", thread_count, tuple_count)
            thread_count = tuple_count
        ranges = split_ranges(tuple_count, thread_count)
        metric = params.distance_metric
        metrics = [metric.duplicate() for _ in range(thread_count)]

        self._cache = NearestNeighborCache(tuple_count)
        self._available = np.ones(tuple_count, dtype=bool)
        self._sizes = np.ones(tuple_count, dtype=np.int64)
        self._centers = {}
        out = np.full(tuple_count, np.inf)
        cache = self._cache

        executor = ThreadPoolExecutor(max_workers=thread_count) if thread_count > 1 else None
        try:
            position = 0
            current = int(shuffled[position])
            while not dendrogram.is_finished():
                self._check_for_cancel()
                nn = self._nearest_neighbor(current, executor, metrics, ranges, out)
                if self._nearest_neighbor(nn, executor, metrics, ranges, out) != current:
                    current = nn
                    continue

                sz1 = int(self._sizes[current])
                sz2 = int(self._sizes[nn])
                center1 = self._center(current)
                center2 = self._center(nn)
                distance = metric.distance(center1, center2)
                merge_id = dendrogram.merge_nodes(current, nn, distance)
                gone = nn if merge_id == current else current
                logger.debug("merged %d and %d at %g (level %d)",
                             current, nn, distance, dendrogram.current_level)

                self._available[gone] = False
                self._centers.pop(gone, None)
                total = sz1 + sz2
                center = (sz1 * center1 + sz2 * center2) / total
                self._centers[merge_id] = center
                self._sizes[merge_id] = total
                self._sizes[gone] = 0
                cache.invalidate(merge_id)
                cache.invalidate(gone)

                self._update_neighbors(merge_id, gone, center, total, metric)

                if self.on_merge is not None:
                    self.on_merge(current, nn, distance)

                if not dendrogram.is_finished():
                    # next chain starts just below nn, skipping dead nodes
                    current = nn - 1 if nn > 0 else tuple_count - 1
                    while not self._available[current]:
                        position = (position + 1) % tuple_count
                        current = int(shuffled[position])
                ph.post_step()
            ph.post_end()
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
            self._cache = None
            self._available = None
            self._sizes = None
            self._centers = {}

        return dendrogram

    def _update_neighbors(self, merge_id: int, gone: int, center: np.ndarray,
                          total: int, metric: DistanceMetric) -> None:
        """
        Repair cached nearest neighbors after merge_id absorbed gone.

        Nodes whose neighbor was one of the pair keep the merged node if it is
        no farther than before, otherwise their entry is invalidated. Other
        nodes adopt the merged node if it is strictly closer.
        """
        cache = self._cache
        buf = np.empty(self.tuples.tuple_length)
        for i in cache.valid_indices():
            i = int(i)
            nni = cache.get(i)
            nsz = int(self._sizes[i])
            other = self._centers[i] if nsz > 1 else self.tuples.get_tuple(i, buf)
            d = (nsz * total) / (nsz + total) * metric.distance(center, other)
            if nni == merge_id or nni == gone:
                if d <= cache.distance(i):
                    cache.set(i, merge_id, d)
                else:
                    cache.invalidate(i)
            elif d < cache.distance(i):
                cache.set(i, merge_id, d)
