"""
Cluster quality statistics.

The Bayes Information Criterion here is the one used to pick a cut of a
dendrogram: a spherical Gaussian per cluster, normalised by the total number
of members. The half-counts in the log-likelihood are whole-number halvings,
so odd member counts are rounded down.
"""

from typing import Sequence

import numpy as np

from .cluster import Cluster
from .tuple_math import norm1
from .tuples import TupleList

__all__ = ["LOG2PI", "compute_variance", "compute_distortion", "compute_bic"]

LOG2PI = float(np.log(2.0 * np.pi))


def compute_variance(tuples: TupleList, cluster: Cluster) -> np.ndarray:
    """
    Per-dimension variance of a cluster's members about its center.

    NaN coordinates are skipped. Negative round-off is clamped to 0.

    @param tuples: source tuple list
    @param cluster: cluster whose members index into tuples
    @return: array of length center_length (zeros for an empty cluster)
    """
    center = cluster.center
    if cluster.member_count == 0:
        return np.zeros(center.size)
    rows = tuples.as_array()[cluster.members]
    valid = ~np.isnan(rows)
    counts = valid.sum(axis=0)
    vals = np.where(valid, rows, 0.0)
    sums = vals.sum(axis=0)
    sum_sqs = (vals * vals).sum(axis=0)
    variance = np.zeros(center.size)
    nz = counts > 0
    variance[nz] = np.maximum(0.0, (sum_sqs[nz] - center[nz] * sums[nz]) / counts[nz])
    return variance


def compute_distortion(tuples: TupleList, cluster: Cluster) -> float:
    """Member count times the summed per-dimension variance."""
    return cluster.member_count * norm1(compute_variance(tuples, cluster))


def compute_bic(tuples: TupleList, clusters: Sequence[Cluster]) -> float:
    """
    Bayes Information Criterion of a set of clusters, divided by the total
    member count.

    Only clusters with more members than there are clusters contribute to the
    likelihood. A zero distortion leaves log(0) in the sum, so a cut made of
    tight clusters can score +inf; callers compare the values directly.

    @param tuples: the clustered tuples
    @param clusters: the clusters
    @return: the normalised BIC (0.0 for no clusters)
    """
    K = len(clusters)
    if K == 0:
        return 0.0
    M = tuples.tuple_length
    R = sum(c.member_count for c in clusters)

    with np.errstate(divide="ignore", invalid="ignore"):
        log_r = np.log(np.float64(R))
        l_sum = np.float64(0.0)
        for c in clusters:
            r_n = c.member_count
            if r_n > K:
                sigma2 = np.float64(compute_distortion(tuples, c))
                if sigma2 > 0:
                    sigma2 /= (r_n - K)
                l_sum += (-(r_n // 2) * LOG2PI - ((r_n * M) // 2) * np.log(sigma2)
                          - (r_n - K) // 2 + r_n * np.log(np.float64(r_n)) - r_n * log_r)
        p = K * (M + 1)
        bic = l_sum - p / 2 * log_r
        if R > 0:
            bic /= R
    return float(bic)
