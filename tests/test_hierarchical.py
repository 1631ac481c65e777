import numpy as np
import pytest
from rnn_clustering_ml.dendrogram import Dendrogram
from rnn_clustering_ml.distance import (
    CosineDistanceMetric,
    DistanceMetric,
    EuclideanDistanceMetric,
    ManhattanDistanceMetric,
)
from rnn_clustering_ml.hierarchical import (
    AbstractHierarchicalClusterer,
    NearestNeighborCache,
    ReverseNNHierarchicalClusterer,
    split_ranges,
)
from rnn_clustering_ml.params import Criterion, HierarchicalParams
from rnn_clustering_ml.task import TaskCancelledError, TaskError, TaskOutcome
from rnn_clustering_ml.tuple_math import generate_random_gaussian_tuples
from rnn_clustering_ml.tuples import ArrayTupleList


def _line(*xs):
    return ArrayTupleList.from_array([[float(x)] for x in xs])


def _run(tuples, **kwargs):
    kwargs.setdefault("worker_thread_count", 1)
    kwargs.setdefault("random_seed", 1)
    clusterer = ReverseNNHierarchicalClusterer(tuples, HierarchicalParams(**kwargs))
    clusterer.run()
    return clusterer


def _member_sets(clusters):
    return sorted(sorted(c.members.tolist()) for c in clusters)


class _FailingMetric(DistanceMetric):

    def distance(self, tuple1, tuple2):
        raise RuntimeError("metric failure")


def test_split_ranges():
    assert split_ranges(10, 3) == [(0, 3), (3, 6), (6, 10)]
    assert split_ranges(4, 4) == [(0, 1), (1, 2), (2, 3), (3, 4)]
    assert split_ranges(5, 1) == [(0, 5)]


def test_nearest_neighbor_cache():
    cache = NearestNeighborCache(3)
    assert len(cache) == 3
    assert not cache.is_valid(0)
    assert cache.get(0) == -1
    cache.set(1, 2, 0.5)
    assert cache.is_valid(1)
    assert cache.get(1) == 2
    assert cache.distance(1) == 0.5
    assert cache.valid_indices().tolist() == [1]
    cache.invalidate(1)
    assert cache.valid_indices().tolist() == []


def test_four_points_on_a_line():
    """
    Pairs (0, 1) and (5, 6) merge first at distance 1, then the two
    centroids 0.5 and 5.5 merge at distance 5.
    """
    clusterer = _run(_line(0, 1, 5, 6), cluster_count=2)
    d = clusterer.dendrogram

    assert clusterer.outcome == TaskOutcome.SUCCESS
    assert d.is_finished()
    assert sorted(d.merge_distances.tolist()) == pytest.approx([1.0, 1.0, 5.0])
    assert d.merge_distances[0] == pytest.approx(5.0)
    assert _member_sets(clusterer.get()) == [[0, 1], [2, 3]]
    centers = sorted(c.center[0] for c in clusterer.clusters)
    assert centers == pytest.approx([0.5, 5.5])


def test_merges_are_reciprocal_nearest_neighbors():
    """
    Replay every merge and check the merged pair was mutually nearest under
    the size-weighted centroid distance.
    """
    tuples = generate_random_gaussian_tuples(60, 3, 4, seed=3)
    metric = EuclideanDistanceMetric()
    centers = {i: tuples.get_tuple(i) for i in range(tuples.tuple_count)}
    sizes = {i: 1 for i in range(tuples.tuple_count)}
    merges = []

    def weighted(a, b):
        return sizes[a] * sizes[b] / (sizes[a] + sizes[b]) * metric.distance(centers[a], centers[b])

    def on_merge(a, b, distance):
        pair = weighted(a, b)
        for k in centers:
            if k not in (a, b):
                assert pair <= weighted(a, k) + 1e-9
                assert pair <= weighted(b, k) + 1e-9
        assert distance == pytest.approx(metric.distance(centers[a], centers[b]))
        keep, gone = min(a, b), max(a, b)
        total = sizes[a] + sizes[b]
        centers[keep] = (sizes[a] * centers[a] + sizes[b] * centers[b]) / total
        sizes[keep] = total
        del centers[gone]
        del sizes[gone]
        merges.append((a, b))

    params = HierarchicalParams(worker_thread_count=3, random_seed=42)
    clusterer = ReverseNNHierarchicalClusterer(tuples, params, on_merge=on_merge)
    clusterer.run()

    assert clusterer.outcome == TaskOutcome.SUCCESS, clusterer.error_message
    assert len(merges) == tuples.tuple_count - 1
    assert list(centers) == [0]


@pytest.mark.parametrize("seed", [7, 8, 9])
def test_result_does_not_depend_on_thread_count(seed):
    tuples = generate_random_gaussian_tuples(80, 4, 5, seed=seed)
    dendrograms = [
        _run(tuples, worker_thread_count=t, random_seed=seed).dendrogram
        for t in (1, 4, 8)
    ]
    assert dendrograms[0] == dendrograms[1]
    assert dendrograms[0] == dendrograms[2]


def test_same_seed_same_dendrogram():
    tuples = generate_random_gaussian_tuples(40, 2, 3, seed=2)
    a = _run(tuples, random_seed=123).dendrogram
    b = _run(tuples, random_seed=123).dendrogram
    assert a == b


def test_negative_seed_is_accepted():
    clusterer = _run(_line(0, 1, 5, 6), random_seed=-5)
    assert clusterer.outcome == TaskOutcome.SUCCESS


def test_separates_gaussian_blobs():
    rng = np.random.default_rng(0)
    A = rng.normal(loc=0.0, scale=0.2, size=(15, 2))
    B = rng.normal(loc=4.0, scale=0.2, size=(15, 2))
    tuples = ArrayTupleList.from_array(np.vstack([A, B]))
    clusterer = _run(tuples, cluster_count=2, worker_thread_count=2)
    assert _member_sets(clusterer.get()) == [list(range(15)), list(range(15, 30))]


def test_optimal_clusters_keep_blobs_apart():
    rng = np.random.default_rng(1)
    A = rng.normal(loc=0.0, scale=0.1, size=(20, 2))
    B = rng.normal(loc=5.0, scale=0.1, size=(20, 2))
    tuples = ArrayTupleList.from_array(np.vstack([A, B]))
    d = _run(tuples).dendrogram

    best = d.generate_optimal_clusters(tuples)
    assert len(best) >= 2
    assert sorted(m for c in best for m in c.members.tolist()) == list(range(40))
    for c in best:
        members = c.members
        assert np.all(members < 20) or np.all(members >= 20)


def test_coherence_criterion():
    tuples = _line(0, 1, 5, 6)
    two = _run(tuples, criterion=Criterion.COHERENCE, coherence_desired=0.5)
    assert _member_sets(two.get()) == [[0, 1], [2, 3]]

    four = _run(tuples, criterion=Criterion.COHERENCE, coherence_desired=0.9)
    assert len(four.get()) == 4

    capped = _run(tuples, criterion=Criterion.COHERENCE, coherence_desired=0.5,
                  max_coherence_threshold=2.0)
    # level 0 merged at 5 clips to coherence 0, levels 1 and 2 sit at 0.5
    assert len(capped.get()) == 2


def test_reuses_a_finished_dendrogram():
    tuples = _line(0, 1, 5, 6, 20)
    first = _run(tuples, cluster_count=2)
    messages = []

    params = HierarchicalParams(cluster_count=3, worker_thread_count=1, random_seed=1)
    again = ReverseNNHierarchicalClusterer(tuples, params, dendrogram=first.dendrogram)
    again.add_message_listener(lambda task, msg: messages.append(msg))
    again.run()

    assert again.outcome == TaskOutcome.SUCCESS
    assert again.dendrogram is first.dendrogram
    assert "reclustering from existing dendrogram" in messages
    assert _member_sets(again.get()) == [[0, 1], [2, 3], [4]]


def test_rejects_mismatched_dendrogram():
    d = Dendrogram(3)
    d.merge_nodes(0, 1, 1.0)
    d.merge_nodes(0, 2, 2.0)
    params = HierarchicalParams(worker_thread_count=1)
    clusterer = ReverseNNHierarchicalClusterer(_line(0, 1, 2, 3), params, dendrogram=d)
    clusterer.run()
    assert clusterer.outcome == TaskOutcome.ERROR
    assert "leaf count" in clusterer.error_message
    with pytest.raises(TaskError):
        clusterer.get()


def test_rejects_unfinished_dendrogram():
    d = Dendrogram(3)
    d.merge_nodes(0, 1, 1.0)
    params = HierarchicalParams(worker_thread_count=1)
    clusterer = ReverseNNHierarchicalClusterer(_line(0, 1, 2), params, dendrogram=d)
    clusterer.run()
    assert clusterer.outcome == TaskOutcome.ERROR
    assert "not finished" in clusterer.error_message


def test_zero_tuples_is_an_error():
    clusterer = _run(ArrayTupleList(2, 0))
    assert clusterer.outcome == TaskOutcome.ERROR
    assert isinstance(clusterer.error, TaskError)
    assert clusterer.error_message == "zero tuples to cluster"
    assert clusterer.dendrogram is None


def test_single_tuple():
    clusterer = _run(_line(3.0), worker_thread_count=4, cluster_count=1)
    assert clusterer.outcome == TaskOutcome.SUCCESS
    assert clusterer.dendrogram.leaf_count == 1
    assert _member_sets(clusterer.get()) == [[0]]


def test_cluster_count_is_clamped_to_tuple_count():
    messages = []
    params = HierarchicalParams(cluster_count=10, worker_thread_count=1, random_seed=0)
    clusterer = ReverseNNHierarchicalClusterer(_line(0, 1, 5), params)
    clusterer.add_message_listener(lambda task, msg: messages.append(msg))
    clusterer.run()
    assert len(clusterer.get()) == 3
    assert any("reducing number of clusters" in m for m in messages)


def test_cancel_before_run():
    params = HierarchicalParams(worker_thread_count=1)
    clusterer = ReverseNNHierarchicalClusterer(_line(0, 1, 5, 6), params)
    assert clusterer.cancel()
    clusterer.run()
    assert clusterer.outcome == TaskOutcome.CANCELLED
    with pytest.raises(TaskCancelledError):
        clusterer.get()


def test_cancel_while_merging():
    tuples = generate_random_gaussian_tuples(30, 2, 2, seed=5)
    merges = []
    params = HierarchicalParams(worker_thread_count=2, random_seed=0)

    def on_merge(a, b, distance):
        merges.append((a, b))
        clusterer.cancel()

    clusterer = ReverseNNHierarchicalClusterer(tuples, params, on_merge=on_merge)
    clusterer.run()
    assert clusterer.outcome == TaskOutcome.CANCELLED
    assert len(merges) == 1
    assert not clusterer.cancel()


def test_worker_failure_ends_in_error():
    tuples = generate_random_gaussian_tuples(10, 2, 2, seed=5)
    for threads in (1, 3):
        params = HierarchicalParams(distance_metric=_FailingMetric(),
                                    worker_thread_count=threads, random_seed=0)
        clusterer = ReverseNNHierarchicalClusterer(tuples, params)
        clusterer.run()
        assert clusterer.outcome == TaskOutcome.ERROR
        assert isinstance(clusterer.error, RuntimeError)
        assert clusterer.error_message == "metric failure"


def test_progress_reaches_the_end():
    values = []
    params = HierarchicalParams(worker_thread_count=1, random_seed=0)
    clusterer = ReverseNNHierarchicalClusterer(_line(*[i * i for i in range(12)]), params)
    clusterer.add_progress_listener(lambda task, value: values.append(value))
    clusterer.run()
    assert values[0] == 0.0
    assert values[-1] == 1.0
    assert values == sorted(values)


def test_task_names():
    tuples = _line(0, 1)
    assert ReverseNNHierarchicalClusterer(
        tuples, HierarchicalParams()).task_name() == "Ward's clustering"
    assert ReverseNNHierarchicalClusterer(
        tuples, HierarchicalParams(distance_metric=CosineDistanceMetric())
    ).task_name() == "group average clustering"
    assert "ManhattanDistanceMetric" in ReverseNNHierarchicalClusterer(
        tuples, HierarchicalParams(distance_metric=ManhattanDistanceMetric())).task_name()


def test_requires_tuples_and_params():
    with pytest.raises(TypeError):
        ReverseNNHierarchicalClusterer(None, HierarchicalParams())
    with pytest.raises(TypeError):
        ReverseNNHierarchicalClusterer(_line(0), None)


def test_base_clusterer_needs_a_dendrogram_builder():
    with pytest.raises(TypeError):
        AbstractHierarchicalClusterer(_line(0, 1), HierarchicalParams())
