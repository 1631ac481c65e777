import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402
from rnn_clustering_ml.cluster import Cluster  # noqa: E402
from rnn_clustering_ml.dendrogram import Dendrogram  # noqa: E402
from rnn_clustering_ml.plotting import plot_clusters, plot_dendrogram  # noqa: E402
from rnn_clustering_ml.tuples import ArrayTupleList  # noqa: E402


@pytest.fixture
def four():
    d = Dendrogram(4)
    d.merge_nodes(0, 1, 1.0)
    d.merge_nodes(2, 3, 1.0)
    d.merge_nodes(0, 2, 5.0)
    return d


def test_plot_clusters_draws_points_and_centers():
    tuples = ArrayTupleList.from_array([[0.0, 0.0], [0.0, 1.0], [5.0, 0.0], [5.0, 1.0]])
    clusters = [Cluster([0, 1], [0.0, 0.5]), Cluster([2, 3], [5.0, 0.5])]
    fig, ax = plt.subplots()
    plot_clusters(ax, tuples, clusters)
    # one scatter for the members and one for the center per cluster
    assert len(ax.collections) == 4
    assert ax.get_title() == 'Hierarchical Clustering Results'
    plt.close(fig)


def test_plot_clusters_needs_two_columns():
    tuples = ArrayTupleList.from_array([[0.0], [1.0]])
    fig, ax = plt.subplots()
    with pytest.raises(ValueError):
        plot_clusters(ax, tuples, [Cluster([0, 1], [0.5])])
    plt.close(fig)


def test_plot_dendrogram(four):
    ax = plot_dendrogram(four)
    assert ax.get_title() == 'Dendrogram'
    assert len(ax.collections) + len(ax.lines) > 0
    plt.close(ax.figure)


def test_plot_dendrogram_on_given_axis(four):
    fig, ax = plt.subplots()
    assert plot_dendrogram(four, ax) is ax
    plt.close(fig)
