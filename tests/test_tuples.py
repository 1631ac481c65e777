import numpy as np
import pytest
from rnn_clustering_ml.tuple_math import (
    average,
    generate_random_gaussian_tuples,
    max_corner,
    mean_and_variance,
    median,
    min_corner,
    norm1,
)
from rnn_clustering_ml.tuples import ArrayTupleList, FilteredTupleList


@pytest.fixture
def small():
    return ArrayTupleList.from_array([[1.0, 2.0], [3.0, 4.0], [5.0, 0.0]])


def test_array_tuple_list_shape_and_access(small):
    assert small.tuple_count == 3
    assert small.tuple_length == 2
    assert len(small) == 3
    assert np.array_equal(small.get_tuple(1), [3.0, 4.0])
    assert small.get_tuple_value(2, 0) == 5.0
    assert np.array_equal(small.get_column(1), [2.0, 4.0, 0.0])


def test_get_tuple_fills_reuse_buffer(small):
    buf = np.empty(2)
    out = small.get_tuple(0, buf)
    assert out is buf
    assert np.array_equal(buf, [1.0, 2.0])


def test_get_tuple_returns_copy(small):
    t = small.get_tuple(0)
    t[0] = 99.0
    assert small.get_tuple_value(0, 0) == 1.0


def test_set_tuple(small):
    small.set_tuple(1, [7.0, 8.0])
    assert np.array_equal(small.get_tuple(1), [7.0, 8.0])


def test_set_tuple_length_mismatch(small):
    with pytest.raises(ValueError):
        small.set_tuple(0, [1.0, 2.0, 3.0])


@pytest.mark.parametrize("index", [-1, 3, 100])
def test_index_out_of_range(small, index):
    with pytest.raises(IndexError):
        small.get_tuple(index)
    with pytest.raises(IndexError):
        small.get_tuple_value(index, 0)


def test_column_out_of_range(small):
    with pytest.raises(IndexError):
        small.get_tuple_value(0, 2)
    with pytest.raises(IndexError):
        small.get_column(-1)


def test_as_array_is_read_only(small):
    view = small.as_array()
    assert view.shape == (3, 2)
    with pytest.raises(ValueError):
        view[0, 0] = 1.0


def test_zero_initialised_list():
    tl = ArrayTupleList(4, 2)
    assert tl.tuple_count == 2
    assert tl.tuple_length == 4
    assert np.all(tl.as_array() == 0.0)


def test_bad_construction():
    with pytest.raises(ValueError):
        ArrayTupleList(-1)
    with pytest.raises(ValueError):
        ArrayTupleList(3, data=np.zeros((2, 2)))
    with pytest.raises(ValueError):
        ArrayTupleList.from_array([1.0, 2.0])


def test_filtered_tuple_list_reads_and_writes_through(small):
    f = FilteredTupleList([2, 0], small)
    assert f.tuple_count == 2
    assert np.array_equal(f.get_tuple(0), [5.0, 0.0])
    assert np.array_equal(f.get_column(0), [5.0, 1.0])
    assert np.array_equal(f.as_array(), [[5.0, 0.0], [1.0, 2.0]])

    f.set_tuple(1, [9.0, 9.0])
    assert np.array_equal(small.get_tuple(0), [9.0, 9.0])

    with pytest.raises(IndexError):
        f.get_tuple(2)
    with pytest.raises(IndexError):
        FilteredTupleList([3], small)


def test_average_and_corners(small):
    assert np.allclose(average(small), [3.0, 2.0])
    assert np.allclose(average(small, [0, 1]), [2.0, 3.0])
    assert np.array_equal(average(small, []), [0.0, 0.0])
    assert np.array_equal(min_corner(small), [1.0, 0.0])
    assert np.array_equal(max_corner(small), [5.0, 4.0])


def test_median_norm1_mean_and_variance(small):
    assert median(small, 0) == 3.0
    assert median(small, 1, [0, 2]) == 1.0
    assert norm1([-1.0, 2.0, -3.0]) == 6.0
    mean, var = mean_and_variance([1.0, np.nan, 3.0])
    assert mean == pytest.approx(2.0)
    assert var == pytest.approx(1.0)


def test_generate_random_gaussian_tuples_is_seeded():
    a = generate_random_gaussian_tuples(50, 3, 4, seed=7)
    b = generate_random_gaussian_tuples(50, 3, 4, seed=7)
    assert a.tuple_count == 50
    assert a.tuple_length == 3
    assert np.array_equal(a.as_array(), b.as_array())

    with pytest.raises(ValueError):
        generate_random_gaussian_tuples(10, 2, 0)
