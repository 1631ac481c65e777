"""
KD-tree index over the tuples of a TupleList.

Nodes live in three parallel integer arrays (`nodes`, `lefts`, `rights`)
addressed by slot number, with -1 meaning "absent". The splitting dimension of
a node is its depth modulo the tuple length. Coordinates less than or equal to
a node's coordinate go left, strictly greater go right.

Searches are depth-first with hyper-rectangle pruning. The traversal is
iterative: each frame records the rectangle coordinate it overwrote and puts
it back when the frame is popped, so very deep (unbalanced) trees cannot
overflow the interpreter stack.

The tree reads the TupleList but does not own it. Mutating a tuple that is
already indexed invalidates the tree.
"""

import bisect
from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np

from .distance import DistanceMetric
from .hyper_rect import HyperRect
from .sorting import partition_indices
from .tuples import TupleList

__all__ = ["TupleKDTree", "KDNode", "DistanceEntry"]

_INITIAL_CAPACITY = 100


class DistanceEntry(NamedTuple):
    """Search hit. Entries order by distance, then by tuple index."""
    distance: float
    index: int


class KDNode:
    """
    Read-only view of one tree node, mainly for inspection.

    @param tree: owning tree
    @param slot: slot number of the node in the tree's arrays
    @param level: depth of the node (root is 0)
    """

    def __init__(self, tree: "TupleKDTree", slot: int, level: int):
        self._tree = tree
        self._slot = slot
        self._level = level

    @property
    def index(self) -> int:
        """Tuple index stored at this node."""
        return int(self._tree._nodes[self._slot])

    @property
    def level(self) -> int:
        return self._level

    @property
    def split_dimension(self) -> int:
        return self._level % self._tree.tuples.tuple_length

    @property
    def deleted(self) -> bool:
        return bool(self._tree._deleted[self._slot])

    def left(self) -> Optional["KDNode"]:
        slot = int(self._tree._lefts[self._slot])
        return KDNode(self._tree, slot, self._level + 1) if slot >= 0 else None

    def right(self) -> Optional["KDNode"]:
        slot = int(self._tree._rights[self._slot])
        return KDNode(self._tree, slot, self._level + 1) if slot >= 0 else None

    def is_leaf(self) -> bool:
        return self._tree._lefts[self._slot] < 0 and self._tree._rights[self._slot] < 0

    def descendant_count(self) -> int:
        """Number of nodes below this one (not counting itself)."""
        return self._tree._subtree_size(int(self._tree._lefts[self._slot])) + \
            self._tree._subtree_size(int(self._tree._rights[self._slot]))

    def balance_factor(self) -> float:
        """
        Ratio of left to right subtree sizes.

        Positive when the left side is at least as large (left/right),
        negative when the right side is larger (-right/left). The magnitude is
        always >= 1; a missing side counts as 1 in the denominator. NaN for a
        leaf.
        """
        nl = self._tree._subtree_size(int(self._tree._lefts[self._slot]))
        nr = self._tree._subtree_size(int(self._tree._rights[self._slot]))
        if nl == 0 and nr == 0:
            return float("nan")
        if nl >= nr:
            return nl / max(nr, 1)
        return -nr / max(nl, 1)

    def __repr__(self):
        return f"KDNode(index={self.index}, level={self._level})"


class TupleKDTree:
    """
    Binary spatial index over tuple row indices.

    @param tuples: the tuples being indexed
    @param distance_metric: metric used for nearest-neighbor and range queries
    """

    def __init__(self, tuples: TupleList, distance_metric: DistanceMetric):
        if tuples is None or distance_metric is None:
            raise TypeError("tuples and distance_metric are required")
        if tuples.tuple_length <= 0:
            raise ValueError("tuple length must be > 0")
        self.tuples = tuples
        self.distance_metric = distance_metric
        self._max_ndx = tuples.tuple_count - 1
        self._nodes = np.empty(0, dtype=np.int64)
        self._lefts = np.empty(0, dtype=np.int64)
        self._rights = np.empty(0, dtype=np.int64)
        self._deleted = np.empty(0, dtype=bool)
        self._count = 0
        self._ensure_capacity(_INITIAL_CAPACITY)

    @classmethod
    def for_tuple_list(cls, tuples: TupleList, distance_metric: DistanceMetric) -> "TupleKDTree":
        """Index every tuple, inserting in index order."""
        tree = cls(tuples, distance_metric)
        for i in range(tuples.tuple_count):
            tree.insert(i)
        return tree

    @classmethod
    def for_tuple_list_balanced(cls, tuples: TupleList,
                                distance_metric: DistanceMetric) -> "TupleKDTree":
        """
        Index every tuple, inserting medians first so the depth is O(log n).

        For each index range the median along the current dimension is chosen
        with partition_indices and inserted before the two halves, which are
        then handled with the next dimension.
        """
        tree = cls(tuples, distance_metric)
        n = tuples.tuple_count
        if n == 0:
            return tree
        dim = tuples.tuple_length
        indices = list(range(n))
        # (left, right, level) ranges still to insert; inclusive bounds
        pending = [(0, n - 1, 0)]
        while pending:
            left, right, level = pending.pop()
            d = level % dim

            def compare(i, j, _d=d):
                a = tuples.get_tuple_value(i, _d)
                b = tuples.get_tuple_value(j, _d)
                return -1 if a < b else (1 if a > b else 0)

            k = (right - left) // 2 + 1
            pos = partition_indices(indices, k, left, right, compare)
            tree.insert(indices[pos])
            if pos + 1 <= right:
                pending.append((pos + 1, right, level + 1))
            if left <= pos - 1:
                pending.append((left, pos - 1, level + 1))
        return tree

    # ------------------------------------------------------------------ storage

    def _ensure_capacity(self, min_cap: int) -> None:
        cur = self._nodes.size
        if cur >= min_cap:
            return
        new_cap = max(cur * 2, min_cap)
        nodes = np.full(new_cap, -1, dtype=np.int64)
        lefts = np.full(new_cap, -1, dtype=np.int64)
        rights = np.full(new_cap, -1, dtype=np.int64)
        deleted = np.zeros(new_cap, dtype=bool)
        nodes[:cur] = self._nodes
        lefts[:cur] = self._lefts
        rights[:cur] = self._rights
        deleted[:cur] = self._deleted
        self._nodes, self._lefts, self._rights, self._deleted = nodes, lefts, rights, deleted

    def _new_node(self, ndx: int) -> int:
        slot = self._count
        self._count += 1
        self._ensure_capacity(self._count)
        self._nodes[slot] = ndx
        return slot

    def _check_ndx(self, ndx: int) -> None:
        if ndx < 0 or ndx > self._max_ndx:
            raise IndexError(f"out of bounds: {ndx}")

    def _subtree_size(self, slot: int) -> int:
        size = 0
        stack = [slot] if slot >= 0 else []
        while stack:
            s = stack.pop()
            size += 1
            if self._lefts[s] >= 0:
                stack.append(int(self._lefts[s]))
            if self._rights[s] >= 0:
                stack.append(int(self._rights[s]))
        return size

    # ----------------------------------------------------------------- mutation

    def insert(self, ndx: int) -> None:
        """
        Add a tuple index to the tree.

        Inserting an index that is already present does nothing, except that a
        previously deleted index becomes visible again.

        @raises IndexError: if ndx is not a valid tuple index
        """
        self._check_ndx(ndx)
        if self._count == 0:
            self._new_node(ndx)
            return

        dim = self.tuples.tuple_length
        n = 0
        level = 0
        while True:
            cur = int(self._nodes[n])
            if cur == ndx:
                self._deleted[n] = False
                return
            d = level % dim
            coord = self.tuples.get_tuple_value(ndx, d)
            node_coord = self.tuples.get_tuple_value(cur, d)
            if coord > node_coord:
                if self._rights[n] < 0:
                    self._rights[n] = self._new_node(ndx)
                    return
                n = int(self._rights[n])
            else:
                if self._lefts[n] < 0:
                    self._lefts[n] = self._new_node(ndx)
                    return
                n = int(self._lefts[n])
            level += 1

    def delete(self, ndx: int) -> bool:
        """
        Hide a tuple index from query results.

        The node keeps its place in the structure so the tree stays valid.

        @return: True if the index was found
        """
        self._check_ndx(ndx)
        slot = self._find_slot(ndx)
        if slot < 0:
            return False
        self._deleted[slot] = True
        return True

    def _find_slot(self, ndx: int) -> int:
        if self._count == 0:
            return -1
        dim = self.tuples.tuple_length
        n = 0
        level = 0
        while n >= 0:
            cur = int(self._nodes[n])
            if cur == ndx:
                return n
            d = level % dim
            if self.tuples.get_tuple_value(ndx, d) > self.tuples.get_tuple_value(cur, d):
                n = int(self._rights[n])
            else:
                n = int(self._lefts[n])
            level += 1
        return -1

    # ------------------------------------------------------------------ queries

    @property
    def node_count(self) -> int:
        """Number of nodes, including deleted ones."""
        return self._count

    @property
    def size(self) -> int:
        """Number of indices visible to queries."""
        return self._count - int(np.count_nonzero(self._deleted[:self._count]))

    def __len__(self) -> int:
        return self.size

    def __contains__(self, ndx) -> bool:
        if not (0 <= ndx <= self._max_ndx):
            return False
        slot = self._find_slot(ndx)
        return slot >= 0 and not self._deleted[slot]

    @property
    def root(self) -> Optional[KDNode]:
        return KDNode(self, 0, 0) if self._count > 0 else None

    def depth(self) -> int:
        """Number of levels in the tree (0 when empty)."""
        if self._count == 0:
            return 0
        deepest = 0
        stack = [(0, 1)]
        while stack:
            slot, d = stack.pop()
            deepest = max(deepest, d)
            if self._lefts[slot] >= 0:
                stack.append((int(self._lefts[slot]), d + 1))
            if self._rights[slot] >= 0:
                stack.append((int(self._rights[slot]), d + 1))
        return deepest

    def search(self, coords) -> int:
        """
        Find a tuple whose values equal coords exactly.

        @return: its index, or -1 if there is none
        """
        target = self._coords(coords)
        dim = self.tuples.tuple_length
        buf = np.empty(dim)
        n = 0 if self._count > 0 else -1
        level = 0
        while n >= 0:
            cur = int(self._nodes[n])
            self.tuples.get_tuple(cur, buf)
            if not self._deleted[n] and np.array_equal(buf, target):
                return cur
            d = level % dim
            n = int(self._rights[n]) if target[d] > buf[d] else int(self._lefts[n])
            level += 1
        return -1

    def nearest(self, target: Union[int, Sequence[float]], num: int) -> List[int]:
        """
        The num tuples nearest to a point or to an indexed tuple.

        When target is a tuple index, that index is left out of the result.
        Results are ordered by distance, ties broken by tuple index.

        @param target: coordinates, or the index of a tuple
        @param num: number of neighbors wanted, 0 <= num <= size
        @return: list of up to num tuple indices
        """
        return [e.index for e in self.nearest_entries(target, num)]

    def nearest_entries(self, target: Union[int, Sequence[float]], num: int) -> List[DistanceEntry]:
        """Like nearest(), but returns DistanceEntry values."""
        if num < 0 or num > self.size:
            raise ValueError(
                f"number of neighbors negative or greater than number of nodes: {num}")
        coords, exclude = self._target(target)
        if num == 0 or self._count == 0:
            return []
        return self._search(coords, exclude, num=num)

    def nearest_neighbor(self, ndx: int) -> int:
        """Index of the tuple nearest to tuple ndx, or -1 if there is none."""
        hits = self.nearest(ndx, min(1, self.size))
        return hits[0] if hits else -1

    def close_to(self, target: Union[int, Sequence[float]], max_distance: float) -> List[int]:
        """
        All tuples within max_distance (inclusive) of a point or indexed tuple.

        When target is a tuple index, that index is left out of the result.
        Results are ordered by distance, ties broken by tuple index.
        """
        return [e.index for e in self.close_to_entries(target, max_distance)]

    def close_to_entries(self, target, max_distance: float) -> List[DistanceEntry]:
        coords, exclude = self._target(target)
        if self._count == 0:
            return []
        return self._search(coords, exclude, max_distance=float(max_distance))

    def inside(self, rect: HyperRect) -> List[int]:
        """
        Indices of all tuples lying inside rect (boundaries included), in
        traversal order.
        """
        dim = self.tuples.tuple_length
        if rect.dimension != dim:
            raise ValueError(f"dimension mismatch: {rect.dimension} != {dim}")
        found: List[int] = []
        if self._count == 0:
            return found
        lo = rect.min_corner
        hi = rect.max_corner
        hr = HyperRect.infinite(dim)

        def overlaps() -> bool:
            return bool(np.all(hr._min <= hi) and np.all(hr._max >= lo))

        def visit(slot, coords):
            if not self._deleted[slot] and np.all(coords >= lo) and np.all(coords <= hi):
                found.append(int(self._nodes[slot]))

        self._traverse(None, hr, overlaps, visit)
        return found

    # ---------------------------------------------------------------- internals

    def _coords(self, coords) -> np.ndarray:
        arr = np.asarray(coords, dtype=float)
        if arr.shape != (self.tuples.tuple_length,):
            raise ValueError(
                f"coordinate length mismatch: {arr.size} != {self.tuples.tuple_length}")
        return arr

    def _target(self, target):
        if isinstance(target, (int, np.integer)):
            ndx = int(target)
            self._check_ndx(ndx)
            return self.tuples.get_tuple(ndx), ndx
        return self._coords(target), -1

    def _search(self, target: np.ndarray, exclude: int, num: Optional[int] = None,
                max_distance: float = float("inf")) -> List[DistanceEntry]:
        """
        Shared k-nearest / range search.

        With num set, keeps the num best entries and prunes against the worst
        of them once the list is full. Without it, keeps every entry within
        max_distance.
        """
        metric = self.distance_metric
        hits: List[DistanceEntry] = []
        hr = HyperRect.infinite(self.tuples.tuple_length)

        def bound() -> float:
            if num is not None and len(hits) == num:
                return hits[-1].distance
            return max_distance

        def worth_visiting() -> bool:
            return metric.distance(hr.closest_point(target), target) <= bound()

        def visit(slot, coords):
            ndx = int(self._nodes[slot])
            if self._deleted[slot] or ndx == exclude:
                return
            entry = DistanceEntry(metric.distance(coords, target), ndx)
            if num is None:
                if entry.distance <= max_distance:
                    bisect.insort(hits, entry)
            elif len(hits) < num or entry < hits[-1]:
                bisect.insort(hits, entry)
                if len(hits) > num:
                    hits.pop()

        self._traverse(target, hr, worth_visiting, visit)
        return hits

    def _traverse(self, target, hr: HyperRect, worth_visiting, visit) -> None:
        """
        Iterative depth-first walk with hyper-rectangle bookkeeping.

        Each node is visited first. Its child on the target's side is walked
        next with hr narrowed to that half-space, then the other child if
        worth_visiting() holds for the other half-space. Each narrowing is
        undone before the next one, so hr is back to its original state when
        the walk ends. Without a target both children are subject to
        worth_visiting(), left first.
        """
        dim = self.tuples.tuple_length
        lo, hi = hr._min, hr._max
        lefts, rights = self._lefts, self._rights

        # frame: [slot, level, phase, split, near_is_left, saved]
        stack = [[0, 0, 0, 0.0, True, None]]
        while stack:
            frame = stack[-1]
            slot, level, phase = frame[0], frame[1], frame[2]
            s = level % dim

            if phase == 0:
                coords = self.tuples.get_tuple(int(self._nodes[slot]))
                visit(slot, coords)
                split = coords[s]
                near_is_left = True if target is None else bool(target[s] <= split)
                frame[3] = split
                frame[4] = near_is_left
                frame[2] = 1
                child = lefts[slot] if near_is_left else rights[slot]
                if child >= 0:
                    frame[5] = self._narrow(lo, hi, s, split, near_is_left)
                    if target is not None or worth_visiting():
                        stack.append([int(child), level + 1, 0, 0.0, True, None])
                continue

            split, near_is_left, saved = frame[3], frame[4], frame[5]
            if saved is not None:
                # undo whichever narrowing this frame last applied
                if (phase == 1) == near_is_left:
                    hi[s] = saved
                else:
                    lo[s] = saved
                frame[5] = None

            if phase == 1:
                frame[2] = 2
                child = rights[slot] if near_is_left else lefts[slot]
                if child >= 0:
                    frame[5] = self._narrow(lo, hi, s, split, not near_is_left)
                    if worth_visiting():
                        stack.append([int(child), level + 1, 0, 0.0, True, None])
                continue

            stack.pop()

    @staticmethod
    def _narrow(lo, hi, s, split, to_left) -> float:
        """Clip dimension s of the rectangle to one side of split; return the old bound."""
        if to_left:
            saved = hi[s]
            hi[s] = split
        else:
            saved = lo[s]
            lo[s] = split
        return saved
