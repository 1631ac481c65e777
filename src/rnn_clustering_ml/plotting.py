from typing import Optional, Sequence

import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from scipy.cluster.hierarchy import dendrogram as scipy_dendrogram

from .cluster import Cluster
from .dendrogram import Dendrogram
from .tuples import TupleList


def plot_clusters(axis: Axes, tuples: TupleList, clusters: Sequence[Cluster]) -> None:
    """
    Plots the clustered tuples in 2D, one color per cluster.

    Args:
        axis (Axes): Axes to draw on.
        tuples (TupleList): Clustered tuples; the first two columns are plotted.
        clusters (Sequence[Cluster]): Clusters whose members index into tuples.
    """
    if tuples.tuple_length < 2:
        raise ValueError("plot_clusters needs tuples with at least 2 columns")
    X = tuples.as_array()
    for label, cluster in enumerate(clusters):
        cluster_points = X[cluster.members]
        axis.scatter(cluster_points[:, 0], cluster_points[:, 1], label=f'Cluster {label}')
        center = cluster.center
        axis.scatter([center[0]], [center[1]], marker='x', color='black')

    axis.set_title('Hierarchical Clustering Results')
    axis.set_xlabel('Feature 1')
    axis.set_ylabel('Feature 2')
    axis.legend()
    axis.grid(True)


def plot_dendrogram(dendrogram: Dendrogram, axis: Optional[Axes] = None) -> Axes:
    """
    Plots a finished dendrogram.

    Args:
        dendrogram (Dendrogram): The merge history to draw.
        axis (Axes, optional): Axes to draw on; a new figure is made if omitted.

    Returns:
        Axes: The axes drawn on.
    """
    if axis is None:
        _, axis = plt.subplots(figsize=(10, 7))
    if dendrogram.leaf_count > 1:
        scipy_dendrogram(dendrogram.to_linkage_matrix(), ax=axis)
    axis.set_title('Dendrogram')
    axis.set_xlabel('Tuple Index')
    axis.set_ylabel('Distance')
    return axis
