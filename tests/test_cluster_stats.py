import math

import numpy as np
import pytest
from rnn_clustering_ml.cluster import Cluster
from rnn_clustering_ml.cluster_stats import LOG2PI, compute_bic, compute_distortion, compute_variance
from rnn_clustering_ml.tuples import ArrayTupleList


def test_cluster_sorts_and_copies_members():
    members = [3, 1, 2]
    c = Cluster(members, [0.5, 0.5])
    members[0] = 99
    assert c.members.tolist() == [1, 2, 3]
    assert list(c) == [1, 2, 3]
    assert len(c) == 3
    assert c.member(0) == 1
    assert 2 in c
    assert 5 not in c
    assert c.center_length == 2

    m = c.members
    m[0] = 42
    assert c.member(0) == 1


def test_cluster_equality_and_hash():
    a = Cluster([1, 2], [0.0, 1.0])
    b = Cluster([2, 1], [0.0, 1.0])
    c = Cluster([1, 2], [0.0, 2.0])
    assert a == b
    assert hash(a) == hash(b)
    assert a != c
    assert len({a, b, c}) == 2
    with pytest.raises(TypeError):
        Cluster(None, [0.0])


def test_compute_variance_and_distortion():
    tuples = ArrayTupleList.from_array([[0.0, 0.0], [0.0, 2.0], [9.0, 9.0]])
    c = Cluster([0, 1], [0.0, 1.0])
    assert compute_variance(tuples, c).tolist() == pytest.approx([0.0, 1.0])
    assert compute_distortion(tuples, c) == pytest.approx(2.0)


def test_compute_variance_skips_nan():
    tuples = ArrayTupleList.from_array([[1.0, np.nan], [3.0, 4.0], [np.nan, 6.0]])
    c = Cluster([0, 1, 2], [2.0, 5.0])
    assert compute_variance(tuples, c).tolist() == pytest.approx([1.0, 1.0])


def test_compute_variance_of_empty_cluster():
    tuples = ArrayTupleList.from_array([[1.0, 2.0]])
    assert compute_variance(tuples, Cluster([], [0.0, 0.0])).tolist() == [0.0, 0.0]


def test_bic_of_nothing_is_zero():
    tuples = ArrayTupleList.from_array([[1.0]])
    assert compute_bic(tuples, []) == 0.0


def test_bic_single_cluster_by_hand():
    tuples = ArrayTupleList.from_array([[0.0], [1.0], [2.0], [3.0]])
    c = Cluster([0, 1, 2, 3], [1.5])
    # variance 1.25, distortion 5, sigma^2 = 5 / (4 - 1)
    sigma2 = 5.0 / 3.0
    l_sum = -2 * LOG2PI - 2 * math.log(sigma2) - 1 + 4 * math.log(4) - 4 * math.log(4)
    expected = (l_sum - 2 / 2 * math.log(4)) / 4
    assert compute_bic(tuples, [c]) == pytest.approx(expected)


def test_bic_ignores_clusters_not_larger_than_cluster_count():
    tuples = ArrayTupleList.from_array([[0.0], [1.0], [5.0], [6.0]])
    clusters = [Cluster([0, 1], [0.5]), Cluster([2, 3], [5.5])]
    # only the parameter penalty remains: p = 2 * (1 + 1)
    assert compute_bic(tuples, clusters) == pytest.approx(-2.0 * math.log(4) / 4)


def test_bic_of_tight_clusters_is_infinite():
    tuples = ArrayTupleList.from_array([[0.0], [0.0], [0.0], [7.0], [7.0], [7.0]])
    clusters = [Cluster([0, 1, 2], [0.0]), Cluster([3, 4, 5], [7.0])]
    bic = compute_bic(tuples, clusters)
    assert math.isinf(bic)
    assert bic > 0


def test_bic_prefers_the_true_split():
    rng = np.random.default_rng(0)
    a = rng.normal(0.0, 0.1, size=(20, 2))
    b = rng.normal(5.0, 0.1, size=(20, 2))
    tuples = ArrayTupleList.from_array(np.vstack([a, b]))
    one = [Cluster(range(40), tuples.as_array().mean(axis=0))]
    two = [Cluster(range(20), a.mean(axis=0)), Cluster(range(20, 40), b.mean(axis=0))]
    assert compute_bic(tuples, two) > compute_bic(tuples, one)
