"""
Selection over index permutations.

The routines here never move the values being compared. They rearrange an
array of indices, and a comparator decides the order of two indices by
looking the values up wherever they live (e.g. one column of a TupleList).
"""

from typing import Callable, MutableSequence

__all__ = ["median_of_3", "select_pivot_index", "partition_indices"]

IndexComparator = Callable[[int, int], int]


def median_of_3(indices: MutableSequence[int], x: int, y: int, z: int,
                compare: IndexComparator) -> int:
    """
    Return whichever of the positions x, y, z holds the median element.
    """
    a, b, c = indices[x], indices[y], indices[z]
    if compare(a, b) < 0:
        if compare(b, c) < 0:
            return y
        return z if compare(a, c) < 0 else x
    # b <= a
    if compare(b, c) > 0:
        return y
    return z if compare(a, c) > 0 else x


def select_pivot_index(indices: MutableSequence[int], left: int, right: int,
                       compare: IndexComparator) -> int:
    """
    Pick a position in [left, right] likely to hold a value near the median.

    Median of 3 for short ranges, pseudo-median of 9 above 40 elements.
    """
    length = right - left + 1
    mid = left + (length >> 1)
    if length > 40:
        eighth = length // 8
        left = median_of_3(indices, left, left + eighth, left + 2 * eighth, compare)
        mid = median_of_3(indices, mid - eighth, mid, mid + eighth, compare)
        right = median_of_3(indices, right - 2 * eighth, right - eighth, right, compare)
    return median_of_3(indices, left, mid, right, compare)


def _partition(indices: MutableSequence[int], left: int, right: int,
               pivot_index: int, compare: IndexComparator) -> int:
    pivot = indices[pivot_index]
    indices[right], indices[pivot_index] = indices[pivot_index], indices[right]
    store = left
    for i in range(left, right):
        if compare(indices[i], pivot) <= 0:
            indices[i], indices[store] = indices[store], indices[i]
            store += 1
    indices[right], indices[store] = indices[store], indices[right]
    return store


def partition_indices(indices: MutableSequence[int], k: int, left: int, right: int,
                      compare: IndexComparator) -> int:
    """
    Quickselect the k-th smallest element of indices[left:right + 1].

    On return the selected element sits at position p, everything in
    [left, p) compares <= to it and everything in (p, right] compares >= to it.
    Elements comparing equal to the selected one are gathered directly after
    it, and p is the position of the last of them, so everything in (p, right]
    compares strictly greater.

    @param indices: index permutation, rearranged in place
    @param k: 1-based rank within the slice, 1 <= k <= right - left + 1
    @param left: first position of the slice
    @param right: last position of the slice (inclusive)
    @param compare: compare(i, j) < 0, == 0, > 0 like a classic comparator
    @return: the final position p
    """
    if not (left <= right):
        raise ValueError(f"empty range: [{left}, {right}]")
    if not (1 <= k <= right - left + 1):
        raise ValueError(f"rank not in [1, {right - left + 1}]: {k}")

    right0 = right
    while True:
        idx = select_pivot_index(indices, left, right, compare)
        pivot_index = _partition(indices, left, right, idx, compare)

        if left + k - 1 == pivot_index:
            i = right0
            while i > pivot_index:
                if compare(indices[i], indices[pivot_index]) == 0:
                    pivot_index += 1
                    if i > pivot_index:
                        indices[i], indices[pivot_index] = indices[pivot_index], indices[i]
                else:
                    i -= 1
            return pivot_index

        if left + k - 1 < pivot_index:
            right = pivot_index - 1
        else:
            k -= pivot_index - left + 1
            left = pivot_index + 1
