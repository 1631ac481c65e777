"""
Immutable cluster value: sorted member ids plus a center.
"""

from typing import Iterator, Sequence

import numpy as np

__all__ = ["Cluster"]


class Cluster:
    """
    A group of tuple ids and their geometric center.

    @param members: 0-based tuple ids; copied and sorted
    @param center: center coordinates; copied
    """

    def __init__(self, members: Sequence[int], center: Sequence[float]):
        if members is None or center is None:
            raise TypeError("members and center are required")
        self._members = np.sort(np.asarray(members, dtype=np.int64).ravel())
        self._center = np.array(center, dtype=float).ravel()
        self._members.flags.writeable = False

    @property
    def member_count(self) -> int:
        return int(self._members.size)

    def member(self, n: int) -> int:
        return int(self._members[n])

    @property
    def members(self) -> np.ndarray:
        return self._members.copy()

    @property
    def center(self) -> np.ndarray:
        return self._center.copy()

    @property
    def center_length(self) -> int:
        return int(self._center.size)

    def __iter__(self) -> Iterator[int]:
        return (int(m) for m in self._members)

    def __len__(self) -> int:
        return self.member_count

    def __contains__(self, ndx) -> bool:
        i = np.searchsorted(self._members, ndx)
        return bool(i < self._members.size and self._members[i] == ndx)

    def __eq__(self, other):
        if other is self:
            return True
        if not isinstance(other, Cluster):
            return NotImplemented
        return (np.array_equal(self._members, other._members)
                and np.array_equal(self._center, other._center))

    def __hash__(self):
        return hash((self._members.tobytes(), self._center.tobytes()))

    def __repr__(self):
        return f"Cluster(members={self._members.tolist()}, center={self._center.tolist()})"
