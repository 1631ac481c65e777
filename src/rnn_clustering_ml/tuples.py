"""
Fixed-length numeric vector storage.

A TupleList is a rectangular matrix of `tuple_count` rows by `tuple_length`
columns. Clustering code only sees the TupleList contract, so the storage
behind it may be memory resident or backed by something else entirely.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

__all__ = ["TupleList", "ArrayTupleList", "FilteredTupleList"]


class TupleList(ABC):
    """
    Contract for random-access numeric tuple storage.

    Row indices are in [0, tuple_count) and columns in [0, tuple_length).
    Out-of-range access raises IndexError.
    """

    @property
    @abstractmethod
    def tuple_count(self) -> int:
        """Number of tuples (rows)."""

    @property
    @abstractmethod
    def tuple_length(self) -> int:
        """Number of values in every tuple (columns)."""

    @abstractmethod
    def get_tuple(self, index: int, reuse_buffer: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Copy a tuple's values out of the list.

        @param index: row index
        @param reuse_buffer: optional float array of length tuple_length to fill
        @return: the buffer holding the tuple values (a new array if none was given)
        """

    @abstractmethod
    def get_tuple_value(self, index: int, col: int) -> float:
        """Return a single value of a tuple."""

    @abstractmethod
    def set_tuple(self, index: int, values: Sequence[float]) -> None:
        """
        Overwrite a tuple's values.

        @raises ValueError: if len(values) != tuple_length
        """

    @abstractmethod
    def get_column(self, col: int, reuse_buffer: Optional[np.ndarray] = None) -> np.ndarray:
        """Copy one column (the col-th value of every tuple) out of the list."""

    def as_array(self) -> np.ndarray:
        """
        Return the values as a (tuple_count, tuple_length) array.

        The base implementation gathers the rows one by one; memory-backed
        subclasses return a read-only view instead.
        """
        out = np.empty((self.tuple_count, self.tuple_length), dtype=float)
        for i in range(self.tuple_count):
            self.get_tuple(i, out[i])
        return out

    def check_index(self, index: int) -> None:
        if not (0 <= index < self.tuple_count):
            raise IndexError(f"tuple index not in [0, {self.tuple_count}): {index}")

    def check_column(self, col: int) -> None:
        if not (0 <= col < self.tuple_length):
            raise IndexError(f"column not in [0, {self.tuple_length}): {col}")

    def __len__(self) -> int:
        return self.tuple_count


class ArrayTupleList(TupleList):
    """
    TupleList held in a float64 NumPy matrix.

    @param tuple_length: number of columns
    @param tuple_count: number of rows, all initialised to 0.0
    @param data: optional initial (tuple_count, tuple_length) values; copied
    """

    def __init__(self, tuple_length: int, tuple_count: int = 0,
                 data: Optional[np.ndarray] = None):
        if tuple_length < 0 or tuple_count < 0:
            raise ValueError("tuple length and count must be >= 0")
        if data is None:
            self._data = np.zeros((tuple_count, tuple_length), dtype=float)
        else:
            arr = np.array(data, dtype=float)
            if arr.ndim != 2 or arr.shape[1] != tuple_length:
                raise ValueError(
                    f"data must have shape (n, {tuple_length}), got {arr.shape}")
            self._data = arr

    @classmethod
    def from_array(cls, X) -> "ArrayTupleList":
        """Build a list from a 2D array-like (rows are tuples)."""
        arr = np.asarray(X, dtype=float)
        if arr.ndim != 2:
            raise ValueError("X must be a 2D array (n_tuples, tuple_length).")
        return cls(arr.shape[1], data=arr)

    @property
    def tuple_count(self) -> int:
        return self._data.shape[0]

    @property
    def tuple_length(self) -> int:
        return self._data.shape[1]

    def get_tuple(self, index, reuse_buffer=None):
        self.check_index(index)
        if reuse_buffer is None:
            return self._data[index].copy()
        reuse_buffer[:] = self._data[index]
        return reuse_buffer

    def get_tuple_value(self, index, col):
        self.check_index(index)
        self.check_column(col)
        return float(self._data[index, col])

    def set_tuple(self, index, values):
        self.check_index(index)
        values = np.asarray(values, dtype=float)
        if values.shape != (self.tuple_length,):
            raise ValueError(
                f"tuple length mismatch: {values.size} != {self.tuple_length}")
        self._data[index] = values

    def get_column(self, col, reuse_buffer=None):
        self.check_column(col)
        if reuse_buffer is None:
            return self._data[:, col].copy()
        reuse_buffer[:] = self._data[:, col]
        return reuse_buffer

    def as_array(self):
        view = self._data.view()
        view.flags.writeable = False
        return view


class FilteredTupleList(TupleList):
    """
    View exposing a subset of another list's tuples.

    Tuple n of the view is tuple filter_indices[n] of the wrapped list.
    Writes go through to the wrapped list.
    """

    def __init__(self, filter_indices: Sequence[int], wrapped: TupleList):
        indices = np.asarray(filter_indices, dtype=np.int64)
        if indices.ndim != 1:
            raise ValueError("filter indices must be one-dimensional")
        if indices.size and (indices.min() < 0 or indices.max() >= wrapped.tuple_count):
            raise IndexError("filter index out of range of the wrapped tuple list")
        self._indices = indices
        self._wrapped = wrapped

    @property
    def tuple_count(self):
        return int(self._indices.size)

    @property
    def tuple_length(self):
        return self._wrapped.tuple_length

    @property
    def filter_indices(self) -> np.ndarray:
        return self._indices.copy()

    def get_tuple(self, index, reuse_buffer=None):
        self.check_index(index)
        return self._wrapped.get_tuple(int(self._indices[index]), reuse_buffer)

    def get_tuple_value(self, index, col):
        self.check_index(index)
        return self._wrapped.get_tuple_value(int(self._indices[index]), col)

    def set_tuple(self, index, values):
        self.check_index(index)
        self._wrapped.set_tuple(int(self._indices[index]), values)

    def get_column(self, col, reuse_buffer=None):
        self.check_column(col)
        if reuse_buffer is None:
            reuse_buffer = np.empty(self.tuple_count, dtype=float)
        for i, j in enumerate(self._indices):
            reuse_buffer[i] = self._wrapped.get_tuple_value(int(j), col)
        return reuse_buffer
