import logging

import matplotlib.pyplot as plt

from rnn_clustering_ml.hierarchical import ReverseNNHierarchicalClusterer
from rnn_clustering_ml.params import Criterion, HierarchicalParams
from rnn_clustering_ml.plotting import plot_clusters, plot_dendrogram
from rnn_clustering_ml.tuple_math import generate_random_gaussian_tuples

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Example dataset: 200 points around 4 centers
    tuples = generate_random_gaussian_tuples(200, 2, 4, seed=0, standard_dev=0.05)

    params = (HierarchicalParams.builder()
              .criterion(Criterion.CLUSTERS)
              .cluster_count(4)
              .worker_thread_count(4)
              .random_seed(1234)
              .build())

    clusterer = ReverseNNHierarchicalClusterer(tuples, params)
    clusterer.add_progress_listener(lambda task, p: print(f"progress: {p:.0%}", end="\r"))
    clusterer.run()
    clusters = clusterer.get()

    for i, cluster in enumerate(clusters):
        print(f"Cluster {i}: {cluster.member_count} members, center {cluster.center}")

    # Re-cut the same dendrogram by coherence instead of rebuilding it
    params.criterion = Criterion.COHERENCE
    params.coherence_desired = 0.9
    recut = ReverseNNHierarchicalClusterer(tuples, params, clusterer.dendrogram)
    recut.run()
    print(f"Coherence >= 0.9 gives {len(recut.get())} clusters")

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))
    plot_clusters(ax1, tuples, clusters)
    plot_dendrogram(clusterer.dendrogram, ax2)
    plt.show()
