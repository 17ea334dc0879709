from collections import deque
from dataclasses import dataclass
from typing import List

import numpy as np
from scipy.spatial import KDTree

from lidar_obstacle_detector.preprocessing import as_xyz


@dataclass
class Cluster:
    # Sorted indices into the clustered cloud
    indices: np.ndarray

    def __len__(self) -> int:
        return len(self.indices)

    def points(self, cloud: np.ndarray) -> np.ndarray:
        return cloud[self.indices]


@dataclass
class ClusterResult:
    clusters: List[Cluster]
    labels: np.ndarray
    num_clusters: int
    cluster_sizes: List[int]
    noise_count: int


def euclidean_cluster(
    points: np.ndarray,
    distance_threshold: float = 0.6,
    min_size: int = 30,
    max_size: int = 5000,
    workers: int = 1,
) -> ClusterResult:
    """
    Euclidean clustering using KDTree.

    Points closer than distance_threshold are linked, clusters are the
    connected components of that graph. Components with fewer than min_size
    or more than max_size points are dropped and labelled -1.
    """
    xyz = as_xyz(points)
    n = len(xyz)
    if n == 0:
        return ClusterResult(
            clusters=[],
            labels=np.array([], dtype=int),
            num_clusters=0,
            cluster_sizes=[],
            noise_count=0,
        )

    tree = KDTree(xyz)

    # return_sorted keeps neighbour order independent of the worker count
    neighborhoods = tree.query_ball_point(xyz, distance_threshold, workers=workers, return_sorted=True)

    labels = np.full(n, -1, dtype=int)
    visited = np.zeros(n, dtype=bool)
    components = []

    for i in range(n):
        if visited[i]:
            continue

        visited[i] = True
        queue = deque([i])
        members = []

        while queue:
            j = queue.popleft()
            members.append(j)
            for k in neighborhoods[j]:
                if not visited[k]:
                    visited[k] = True
                    queue.append(k)

        if min_size <= len(members) <= max_size:
            components.append(np.sort(np.asarray(members, dtype=int)))

    # Largest first, ties by lowest member index
    components.sort(key=lambda idx: (-len(idx), int(idx[0])))

    clusters = []
    for cid, indices in enumerate(components):
        labels[indices] = cid
        clusters.append(Cluster(indices=indices))

    cluster_sizes = [len(c) for c in clusters]
    noise_count = int((labels == -1).sum())

    return ClusterResult(
        clusters=clusters,
        labels=labels,
        num_clusters=len(clusters),
        cluster_sizes=cluster_sizes,
        noise_count=noise_count,
    )
