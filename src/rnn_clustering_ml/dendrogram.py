"""
Flat-array binary merge tree recording a full agglomeration history.

Every node occupies a *level* slot in a set of parallel arrays. The
leaf_count leaves start at levels [leaf_count - 1, 2 * leaf_count - 2] with ids
0..leaf_count-1. Each merge writes a new non-leaf node at the next lower level,
so the current level counts down from leaf_count - 1 to 0 and the root ends up
at level 0. A merged node takes the smaller of its two children's ids.

All walks over the tree are iterative (explicit stacks), so a completely
skewed tree of any depth is handled.
"""

import logging
import struct
from typing import BinaryIO, List, Optional

import numpy as np

from .cluster import Cluster
from .cluster_stats import compute_bic
from .errors import DendrogramFormatError, IllegalStateError
from .tuple_math import average
from .tuples import TupleList

__all__ = ["Dendrogram", "DendrogramNode"]

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1
_INT = struct.Struct(">i")
_READ_CHUNK = 1 << 20


class DendrogramNode:
    """
    Lightweight view of one node of a finished dendrogram.

    All leaves report the leaf level (leaf_count - 1); use id to tell them
    apart.
    """

    def __init__(self, dendrogram: "Dendrogram", level: int, node_id: int):
        self._dendrogram = dendrogram
        self.level = level
        self.id = node_id

    def is_root(self) -> bool:
        return self.level == 0

    def is_leaf(self) -> bool:
        return self.level == self._dendrogram.leaf_level

    def left_child(self) -> Optional["DendrogramNode"]:
        if self.is_leaf():
            return None
        d = self._dendrogram
        return DendrogramNode(d, d.left_child_level(self.level),
                              d.level_id(d.left_child_index(self.level)))

    def right_child(self) -> Optional["DendrogramNode"]:
        if self.is_leaf():
            return None
        d = self._dendrogram
        return DendrogramNode(d, d.right_child_level(self.level),
                              d.level_id(d.right_child_index(self.level)))

    @property
    def distance(self) -> float:
        """Merge distance, NaN for a leaf."""
        if self.is_leaf():
            return float("nan")
        return float(self._dendrogram._distances[self.level])

    @property
    def coherence(self) -> float:
        """Coherence, NaN for a leaf."""
        if self.is_leaf():
            return float("nan")
        return float(self._dendrogram.coherences[self.level])

    @property
    def size(self) -> int:
        """Number of leaves under this node."""
        if self.is_leaf():
            return 1
        return int(self._dendrogram._sizes[self.level])

    def __repr__(self):
        return f"DendrogramNode(level={self.level}, id={self.id})"


class Dendrogram:
    """
    Merge history of leaf_count leaves.

    @param leaf_count: number of leaves (tuples being clustered), > 0
    """

    def __init__(self, leaf_count: int):
        if leaf_count <= 0:
            raise ValueError("number of leaves must be > 0")
        n = int(leaf_count)
        node_count = 2 * n - 1
        non_leaf_count = n - 1

        self._leaf_count = n
        # ids of every node; leaves are numbered sequentially at the bottom
        self._node_ids = np.zeros(node_count, dtype=np.int64)
        self._node_ids[non_leaf_count:] = np.arange(n)
        # -1 until a parent exists; stays -1 for the root
        self._parent_indices = np.full(node_count, -1, dtype=np.int64)
        self._left_indices = np.zeros(non_leaf_count, dtype=np.int64)
        self._right_indices = np.zeros(non_leaf_count, dtype=np.int64)
        self._sizes = np.zeros(non_leaf_count, dtype=np.int64)
        # id -> level of the node currently carrying that id
        self._indices_for_ids = np.arange(non_leaf_count, node_count, dtype=np.int64)
        self._distances = np.zeros(non_leaf_count, dtype=float)
        self._coherences = np.zeros(non_leaf_count, dtype=float)
        self._coherences_computed = False
        self._min_coherence_threshold = 0.0
        self._max_coherence_threshold = float("nan")
        self._current_level = non_leaf_count

    # ---------------------------------------------------------------- state

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def leaf_level(self) -> int:
        """Level reported for leaves; also the number of non-leaf nodes."""
        return self._leaf_count - 1

    @property
    def current_level(self) -> int:
        """Level of the most recent merge; leaf_level before any merge."""
        return self._current_level

    def is_finished(self) -> bool:
        return self._current_level == 0

    def _check_finished(self) -> None:
        if not self.is_finished():
            raise IllegalStateError("dendrogram is not finished")

    def _check_id(self, node_id: int) -> None:
        if not (0 <= node_id < self._leaf_count):
            raise IndexError(f"id not in [0, {self._leaf_count}): {node_id}")

    @property
    def min_coherence_threshold(self) -> float:
        return self._min_coherence_threshold

    @min_coherence_threshold.setter
    def min_coherence_threshold(self, value: float) -> None:
        self._min_coherence_threshold = float(value)
        self._coherences_computed = False

    @property
    def max_coherence_threshold(self) -> float:
        """Upper bound used when normalising coherences; NaN means the largest merge distance."""
        return self._max_coherence_threshold

    @max_coherence_threshold.setter
    def max_coherence_threshold(self, value: float) -> None:
        self._max_coherence_threshold = float(value)
        self._coherences_computed = False

    @property
    def merge_distances(self) -> np.ndarray:
        """Merge distance of every non-leaf level (copy)."""
        return self._distances.copy()

    @property
    def coherences(self) -> np.ndarray:
        """Coherence of every non-leaf level (copy), computed on first use."""
        if not self._coherences_computed:
            self.compute_coherences()
        return self._coherences.copy()

    # -------------------------------------------------------------- merging

    def merge_nodes(self, id1: int, id2: int, distance: float) -> int:
        """
        Record the merge of two live nodes.

        @param id1: id of the node placed on the left
        @param id2: id of the node placed on the right
        @param distance: merge distance
        @return: id of the merged node, min(id1, id2)
        @raises IllegalStateError: if the dendrogram is already finished
        @raises IndexError: if either id is not in [0, leaf_count)
        @raises ValueError: if either id is not a live (unmerged) node, or id1 == id2
        """
        if self._current_level == 0:
            raise IllegalStateError("dendrogram is already finished")
        self._check_id(id1)
        self._check_id(id2)
        if id1 == id2:
            raise ValueError(f"cannot merge a node with itself: {id1}")
        left_index = int(self._indices_for_ids[id1])
        right_index = int(self._indices_for_ids[id2])
        for node_id, index in ((id1, left_index), (id2, right_index)):
            if self._parent_indices[index] >= 0:
                raise ValueError(f"node {node_id} has already been merged")

        merge_id = min(id1, id2)
        size = self.node_size(id1) + self.node_size(id2)
        self._current_level -= 1
        level = self._current_level
        self._node_ids[level] = merge_id
        self._left_indices[level] = left_index
        self._right_indices[level] = right_index
        self._parent_indices[left_index] = level
        self._parent_indices[right_index] = level
        self._distances[level] = distance
        self._sizes[level] = size
        self._indices_for_ids[merge_id] = level
        self._coherences_computed = False
        return merge_id

    def node_size(self, node_id: int) -> int:
        """Number of leaves under the node currently carrying node_id."""
        self._check_id(node_id)
        index = int(self._indices_for_ids[node_id])
        return int(self._sizes[index]) if index < self._sizes.size else 1

    # ------------------------------------------------------------ navigation

    def root_id(self) -> int:
        self._check_finished()
        return int(self._node_ids[0])

    def level_id(self, level: int) -> int:
        """Id at any level index (leaf or non-leaf) that has been filled, else -1."""
        if self._current_level <= level < self._node_ids.size:
            return int(self._node_ids[level])
        return -1

    def _non_leaf(self, level: int) -> bool:
        return self._current_level <= level < self._left_indices.size

    def left_child_index(self, parent_level: int) -> int:
        """Level index of the left child of a non-leaf level, or -1."""
        return int(self._left_indices[parent_level]) if self._non_leaf(parent_level) else -1

    def right_child_index(self, parent_level: int) -> int:
        """Level index of the right child of a non-leaf level, or -1."""
        return int(self._right_indices[parent_level]) if self._non_leaf(parent_level) else -1

    def left_child_level(self, parent_level: int) -> int:
        """Like left_child_index, but every leaf reports the leaf level."""
        index = self.left_child_index(parent_level)
        return min(index, self.leaf_level) if index >= 0 else -1

    def right_child_level(self, parent_level: int) -> int:
        """Like right_child_index, but every leaf reports the leaf level."""
        index = self.right_child_index(parent_level)
        return min(index, self.leaf_level) if index >= 0 else -1

    def left_child_id(self, parent_id: int) -> int:
        """Id of the left child of the node carrying parent_id, or -1 for a leaf."""
        self._check_id(parent_id)
        index = int(self._indices_for_ids[parent_id])
        if index >= self._left_indices.size:
            return -1
        return int(self._node_ids[self._left_indices[index]])

    def right_child_id(self, parent_id: int) -> int:
        """Id of the right child of the node carrying parent_id, or -1 for a leaf."""
        self._check_id(parent_id)
        index = int(self._indices_for_ids[parent_id])
        if index >= self._right_indices.size:
            return -1
        return int(self._node_ids[self._right_indices[index]])

    def left_most_leaf_id(self, level: int) -> int:
        while level < self._left_indices.size:
            level = int(self._left_indices[level])
        return int(self._node_ids[level])

    def right_most_leaf_id(self, level: int) -> int:
        while level < self._right_indices.size:
            level = int(self._right_indices[level])
        return int(self._node_ids[level])

    def left_neighbor_leaf_id(self, leaf_id: int) -> int:
        """Id of the leaf just left of leaf_id in dendrogram order, or -1."""
        return self._neighbor_id(leaf_id, self._left_indices, self._right_indices)

    def right_neighbor_leaf_id(self, leaf_id: int) -> int:
        """Id of the leaf just right of leaf_id in dendrogram order, or -1."""
        return self._neighbor_id(leaf_id, self._right_indices, self._left_indices)

    def _neighbor_id(self, leaf_id, toward, away) -> int:
        if not (0 <= leaf_id < self._leaf_count):
            return -1
        # climb while we are the child on the requested side
        last = self._leaf_count - 1 + leaf_id
        index = int(self._parent_indices[last])
        while index >= 0 and toward[index] == last:
            last = index
            index = int(self._parent_indices[index])
        if index < 0 or index < self._current_level:
            return -1
        # one step toward the requested side, then all the way back the other way
        index = int(toward[index])
        while index < away.size:
            index = int(away[index])
        return int(self._node_ids[index])

    def get_ordered_leaf_ids(self, level: int = 0) -> np.ndarray:
        """
        Leaf ids under a non-leaf level, left to right.

        @param level: non-leaf level in [current_level, leaf_level)
        @return: int array of leaf ids
        """
        if self._leaf_count == 1 and level == 0:
            return np.zeros(1, dtype=np.int64)
        if level == 0:
            self._check_finished()
        if not self._non_leaf(level):
            raise IndexError(
                f"level not in [{self._current_level} - {self.leaf_level}): {level}")
        return self._leaves_under(level)

    def node_ids(self, index: int) -> np.ndarray:
        """
        Leaf ids under any level index (a leaf index yields just that leaf).

        @param index: level index in [0, 2 * leaf_count - 2]
        """
        if not (0 <= index < self._node_ids.size):
            raise IndexError(f"index not in [0, {self._node_ids.size}): {index}")
        return self._leaves_under(index)

    def _leaves_under(self, index: int) -> np.ndarray:
        non_leaf_count = self._left_indices.size
        if index >= non_leaf_count:
            return np.array([self._node_ids[index]], dtype=np.int64)
        out = np.empty(int(self._sizes[index]), dtype=np.int64)
        count = 0
        pending = [index]
        while pending:
            cur = pending.pop()
            if cur >= non_leaf_count:
                out[count] = self._node_ids[cur]
                count += 1
            else:
                pending.append(int(self._right_indices[cur]))
                pending.append(int(self._left_indices[cur]))
        return out

    def child_non_leaf_levels(self, level: int) -> List[int]:
        """All non-leaf levels strictly below level, depth first."""
        if not self._non_leaf(level):
            raise IndexError(
                f"level not in [{self._current_level} - {self.leaf_level}): {level}")
        non_leaf_count = self._left_indices.size
        found = []
        pending = [level]
        while pending:
            cur = pending.pop()
            if cur != level:
                found.append(cur)
            for child in (int(self._right_indices[cur]), int(self._left_indices[cur])):
                if child < non_leaf_count:
                    pending.append(child)
        return found

    def leaf_id_mapping(self, level: int) -> np.ndarray:
        """
        Map each leaf id to a display position, collapsing every subtree hanging
        at or below level onto a single position.

        Position values are indices into get_ordered_leaf_ids(). All leaves of a
        collapsed subtree share the position of the subtree's smallest leaf id.

        @param level: level in [0, leaf_level]; leaf_level collapses nothing
        @return: int array of length leaf_count
        """
        self._check_finished()
        leaf_level = self.leaf_level
        if not (0 <= level <= leaf_level):
            raise IndexError(f"level not in [0 - {leaf_level}]: {level}")
        ordered = self.get_ordered_leaf_ids()
        mapping = np.empty(self._leaf_count, dtype=np.int64)
        mapping[ordered] = np.arange(ordered.size)
        handled = np.zeros(max(leaf_level - level, 0), dtype=bool)
        for lvl in range(level, leaf_level):
            if handled[lvl - level]:
                continue
            ids = self._leaves_under(lvl)
            # ids are the min of their subtree, so the node id is the smallest leaf
            mapping[ids] = mapping[self._node_ids[lvl]]
            for child in self.child_non_leaf_levels(lvl):
                handled[child - level] = True
        return mapping

    def root(self) -> DendrogramNode:
        self._check_finished()
        return DendrogramNode(self, 0, int(self._node_ids[0]))

    def node(self, level: int) -> DendrogramNode:
        self._check_finished()
        if not (self._current_level <= level < self.leaf_level):
            raise IndexError(
                f"level not in [{self._current_level} - {self.leaf_level}): {level}")
        return DendrogramNode(self, level, int(self._node_ids[level]))

    # ------------------------------------------------------------- coherence

    def compute_coherences(self) -> None:
        """
        Normalise merge distances into coherences in [0, 1].

        mind is the min threshold (0 when NaN); maxd is the max threshold, or
        the largest merge distance when that threshold is NaN. Distances map
        linearly from mind -> 1 to maxd -> 0 and are clipped to [0, 1]. When
        maxd <= mind every coherence is 1.
        """
        self._check_finished()
        if np.isnan(self._max_coherence_threshold):
            maxd = float(self._distances.max()) if self._distances.size else 0.0
            maxd = max(maxd, 0.0)
        else:
            maxd = self._max_coherence_threshold
        mind = 0.0 if np.isnan(self._min_coherence_threshold) else self._min_coherence_threshold
        if maxd > mind:
            coh = 1.0 - (self._distances - mind) / (maxd - mind)
            np.clip(coh, 0.0, 1.0, out=self._coherences)
        else:
            self._coherences.fill(1.0)
        self._coherences_computed = True

    def clusters_with_coherence_exceeding(self, coherence: float) -> int:
        """
        Cluster count for a coherence cut.

        Non-leaf levels are scanned from the root (level 0) down. The first
        level whose coherence is >= coherence yields level + 1 clusters; if no
        level qualifies every leaf is its own cluster.
        The root always meets a target of 0.0, which therefore gives one
        cluster; higher targets give finer cuts.

        @param coherence: target in [0, 1]
        @return: cluster count in [1, leaf_count]
        """
        self._check_finished()
        if not (0.0 <= coherence <= 1.0):
            raise ValueError(f"coherence not in [0.0 - 1.0]: {coherence}")
        if not self._coherences_computed:
            self.compute_coherences()
        hits = np.flatnonzero(self._coherences >= coherence)
        return int(hits[0]) + 1 if hits.size else self._leaf_count

    # ------------------------------------------------------------ clustering

    def generate_cluster_groupings(self, clusters_desired: int) -> List[np.ndarray]:
        """
        Cut the tree into a number of leaf groups.

        Every level index from clusters_desired - 1 on whose ancestors were not
        already taken becomes one group.

        @param clusters_desired: group count in [1, leaf_count]
        @return: list of clusters_desired int arrays of leaf ids
        """
        self._check_finished()
        if not (1 <= clusters_desired <= self._leaf_count):
            raise ValueError(
                f"clusters desired not in [1 - {self._leaf_count}]: {clusters_desired}")
        non_leaf_count = self._left_indices.size
        taken = np.zeros(self._node_ids.size, dtype=bool)
        groups = []
        for i in range(clusters_desired - 1, self._node_ids.size):
            if taken[i]:
                continue
            groups.append(self._leaves_under(i))
            pending = [i]
            while pending:
                cur = pending.pop()
                if cur < non_leaf_count:
                    left, right = int(self._left_indices[cur]), int(self._right_indices[cur])
                    taken[left] = taken[right] = True
                    pending.append(right)
                    pending.append(left)
        return groups

    def _check_tuples(self, tuples: TupleList) -> None:
        if tuples.tuple_count != self._leaf_count:
            raise ValueError(
                f"dendrogram does not match tuples: leaf node count = {self._leaf_count}, "
                f"tuple count = {tuples.tuple_count}")

    def generate_clusters(self, clusters_desired: int, tuples: TupleList) -> List[Cluster]:
        """
        Cut the tree and build Cluster objects centred on their members' mean.

        @param clusters_desired: cluster count in [1, leaf_count]
        @param tuples: the clustered tuples; tuple_count must equal leaf_count
        """
        self._check_finished()
        self._check_tuples(tuples)
        return [Cluster(members, average(tuples, members))
                for members in self.generate_cluster_groupings(clusters_desired)]

    def generate_optimal_clusters(self, tuples: TupleList) -> List[Cluster]:
        """
        Sweep cluster counts 1, 2, ... and keep the cut with the best BIC.

        The sweep stops once a score fails to beat the best so far and is
        either negative or no more than half of the best.

        @param tuples: the clustered tuples; tuple_count must equal leaf_count
        """
        self._check_finished()
        self._check_tuples(tuples)
        max_bic = np.float64(-np.finfo(float).max)
        best: Optional[List[Cluster]] = None
        for num_clusters in range(1, tuples.tuple_count + 1):
            clusters = self.generate_clusters(num_clusters, tuples)
            bic = np.float64(compute_bic(tuples, clusters))
            logger.debug("BIC for %d clusters: %s", num_clusters, bic)
            if bic > max_bic:
                max_bic = bic
                best = clusters
            else:
                with np.errstate(divide="ignore", invalid="ignore"):
                    ratio = max_bic / bic
                if bic < 0.0 or ratio >= 2.0:
                    break
        if best is None:
            best = self.generate_clusters(1, tuples)
        logger.info("optimal cut has %d clusters", len(best))
        return best

    # ----------------------------------------------------------- persistence

    def write(self, stream: BinaryIO) -> None:
        """
        Write the dendrogram in its versioned big-endian binary form.

        Layout: int32 version, six int32 arrays (node ids, parent indices,
        left indices, right indices, sizes, indices for ids), two float64 arrays
        (distances, coherences), each array prefixed by its int32 length, then
        int32 leaf_count and int32 current_level.
        """
        stream.write(_INT.pack(_FORMAT_VERSION))
        for arr in (self._node_ids, self._parent_indices, self._left_indices,
                    self._right_indices, self._sizes, self._indices_for_ids):
            stream.write(_INT.pack(arr.size))
            stream.write(arr.astype(">i4").tobytes())
        for arr in (self._distances, self._coherences):
            stream.write(_INT.pack(arr.size))
            stream.write(arr.astype(">f8").tobytes())
        stream.write(_INT.pack(self._leaf_count))
        stream.write(_INT.pack(self._current_level))

    @classmethod
    def read(cls, stream: BinaryIO) -> "Dendrogram":
        """
        Read a dendrogram written by write().

        The node count comes from the first array; every later length prefix
        must agree with it before its data is read. The merge structure is
        checked before the dendrogram is returned.

        @raises DendrogramFormatError: unknown version, truncated or inconsistent data
        """
        version = _read_int(stream)
        if version != _FORMAT_VERSION:
            raise DendrogramFormatError(f"invalid version: {version}")
        node_ids = _read_array(stream, ">i4", np.int64)
        node_count = node_ids.size
        if node_count % 2 == 0:
            raise DendrogramFormatError(f"invalid node count: {node_count}")
        n = (node_count + 1) // 2
        parents, lefts, rights, sizes, indices_for_ids = [
            _read_array(stream, ">i4", np.int64, expected)
            for expected in (node_count, n - 1, n - 1, n - 1, n)]
        distances, coherences = [
            _read_array(stream, ">f8", float, n - 1) for _ in range(2)]
        leaf_count = _read_int(stream)
        current_level = _read_int(stream)

        if leaf_count != n:
            raise DendrogramFormatError(
                f"leaf count {leaf_count} does not match node count {node_count}")
        if not (0 <= current_level <= n - 1):
            raise DendrogramFormatError(f"invalid current level: {current_level}")
        _check_structure(current_level, node_ids, parents, lefts, rights, sizes,
                         indices_for_ids)

        d = cls.__new__(cls)
        d._leaf_count = n
        d._node_ids = node_ids
        d._parent_indices = parents
        d._left_indices = lefts
        d._right_indices = rights
        d._sizes = sizes
        d._indices_for_ids = indices_for_ids
        d._distances = distances
        d._coherences = coherences
        d._coherences_computed = False
        d._min_coherence_threshold = 0.0
        d._max_coherence_threshold = float("nan")
        d._current_level = current_level
        return d

    def save(self, path) -> None:
        with open(path, "wb") as f:
            self.write(f)

    @classmethod
    def load(cls, path) -> "Dendrogram":
        with open(path, "rb") as f:
            return cls.read(f)

    # ----------------------------------------------------------------- export

    def to_linkage_matrix(self) -> np.ndarray:
        """
        Export the merge history as a SciPy-style linkage matrix.

        Row i describes the i-th merge: [child_a, child_b, distance, size].
        Leaves keep their ids; the node formed by row i is n + i.

        @return: array of shape (leaf_count - 1, 4)
        """
        self._check_finished()
        n = self._leaf_count
        non_leaf_count = n - 1
        Z = np.zeros((non_leaf_count, 4), dtype=float)

        def scipy_id(index):
            if index >= non_leaf_count:
                return int(self._node_ids[index])
            return n + (non_leaf_count - 1 - index)

        for row in range(non_leaf_count):
            level = non_leaf_count - 1 - row
            Z[row, 0] = scipy_id(int(self._left_indices[level]))
            Z[row, 1] = scipy_id(int(self._right_indices[level]))
            Z[row, 2] = self._distances[level]
            Z[row, 3] = self._sizes[level]
        return Z

    def __eq__(self, other):
        if not isinstance(other, Dendrogram):
            return NotImplemented
        return (self._leaf_count == other._leaf_count
                and self._current_level == other._current_level
                and np.array_equal(self._node_ids, other._node_ids)
                and np.array_equal(self._left_indices, other._left_indices)
                and np.array_equal(self._right_indices, other._right_indices)
                and np.array_equal(self._sizes, other._sizes)
                and np.array_equal(self._distances, other._distances))

    __hash__ = None

    def __repr__(self):
        return (f"Dendrogram(leaf_count={self._leaf_count}, "
                f"current_level={self._current_level})")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        data = stream.read(min(remaining, _READ_CHUNK))
        if not data:
            raise DendrogramFormatError("unexpected end of dendrogram data")
        chunks.append(data)
        remaining -= len(data)
    return b"".join(chunks)


def _read_int(stream: BinaryIO) -> int:
    return _INT.unpack(_read_exact(stream, _INT.size))[0]


def _read_array(stream: BinaryIO, dtype: str, out_dtype,
                expected: Optional[int] = None) -> np.ndarray:
    n = _read_int(stream)
    if n < 0:
        raise DendrogramFormatError(f"negative array length: {n}")
    if expected is not None and n != expected:
        raise DendrogramFormatError(f"array length {n} != {expected}")
    itemsize = np.dtype(dtype).itemsize
    return np.frombuffer(_read_exact(stream, n * itemsize), dtype=dtype).astype(out_dtype)


def _check_structure(current_level, node_ids, parents, lefts, rights, sizes,
                     indices_for_ids) -> None:
    """
    Verify that decoded arrays describe a proper merge tree.

    Each filled non-leaf level must point at two distinct children below it
    that no other level claims, carry the smaller child id and the summed
    size, and parent_indices must mirror the child links.
    """
    n = indices_for_ids.size
    non_leaf_count = n - 1
    node_count = node_ids.size
    if not np.array_equal(node_ids[non_leaf_count:], np.arange(n)):
        raise DendrogramFormatError("leaf ids are not 0..leaf_count-1")
    expected_parents = np.full(node_count, -1, dtype=np.int64)
    node_sizes = np.ones(node_count, dtype=np.int64)
    for level in range(non_leaf_count - 1, current_level - 1, -1):
        left, right = int(lefts[level]), int(rights[level])
        for child in (left, right):
            if not (level < child < node_count):
                raise DendrogramFormatError(
                    f"child index {child} of level {level} not in ({level}, {node_count - 1}]")
            if expected_parents[child] >= 0:
                raise DendrogramFormatError(f"index {child} has more than one parent")
            expected_parents[child] = level
        node_sizes[level] = node_sizes[left] + node_sizes[right]
        if sizes[level] != node_sizes[level]:
            raise DendrogramFormatError(f"wrong size at level {level}: {sizes[level]}")
        if node_ids[level] != min(node_ids[left], node_ids[right]):
            raise DendrogramFormatError(f"wrong id at level {level}: {node_ids[level]}")
    if not np.array_equal(parents, expected_parents):
        raise DendrogramFormatError("parent indices disagree with child indices")
    if np.any(indices_for_ids < current_level) or np.any(indices_for_ids >= node_count):
        raise DendrogramFormatError(
            f"indices for ids not in [{current_level}, {node_count - 1}]")
    if not np.array_equal(node_ids[indices_for_ids], np.arange(n)):
        raise DendrogramFormatError("indices for ids do not point at their ids")
