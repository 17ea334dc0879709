"""
Bounding box fitting for obstacle clusters.

Two fitters are available: an axis-aligned box in the sensor frame, and an
oriented box whose heading follows the principal direction of the cluster's
ground-plane footprint (PCA on the x/y covariance). Clusters that have no
usable principal direction fall back to the axis-aligned box.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from lidar_obstacle_detector.clustering import Cluster
from lidar_obstacle_detector.preprocessing import as_xyz

logger = logging.getLogger(__name__)

# Ids are unsigned 64-bit and wrap back to 0
MAX_BOX_ID = 2**64 - 1

# Smallest extent given to a degenerate box so it keeps a volume
MIN_DIMENSION = 1e-3

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])

# Ratio of minor to major eigenvalue below which the footprint has no second axis
_SINGULAR_TOL = 1e-8


@dataclass(eq=False)
class Box:
    id: int
    position: np.ndarray
    # Unit quaternion, scalar last (x, y, z, w)
    orientation: np.ndarray
    dimension: np.ndarray

    @property
    def yaw(self) -> float:
        """Rotation about z in radians."""
        return float(Rotation.from_quat(self.orientation).as_euler("zyx")[0])

    def with_id(self, box_id: int) -> "Box":
        return dataclasses.replace(self, id=box_id)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "position": [float(v) for v in self.position],
            "orientation": [float(v) for v in self.orientation],
            "dimension": [float(v) for v in self.dimension],
        }


def next_box_id(box_id: int) -> int:
    return box_id + 1 if box_id < MAX_BOX_ID else 0


def axis_aligned_box(points: np.ndarray, box_id: int) -> Box:
    xyz = as_xyz(points)
    if len(xyz) == 0:
        raise ValueError("Cannot fit a box to an empty cluster")

    min_point = xyz.min(axis=0)
    max_point = xyz.max(axis=0)

    return Box(
        id=box_id,
        position=(min_point + max_point) / 2.0,
        orientation=IDENTITY_QUATERNION.copy(),
        dimension=max_point - min_point,
    )


def _fallback_box(xyz: np.ndarray, box_id: int) -> Box:
    box = axis_aligned_box(xyz, box_id)
    box.dimension = np.maximum(box.dimension, MIN_DIMENSION)
    return box


def _principal_yaw(xy: np.ndarray):
    """
    Heading of the dominant eigenvector of the 2x2 covariance, in [-pi/2, pi/2).
    Returns None when the covariance is singular (coincident or collinear points).
    """
    cov = np.cov(xy, rowvar=False)
    if not np.all(np.isfinite(cov)):
        return None

    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    minor, major = eigenvalues
    if major <= 0.0 or minor <= _SINGULAR_TOL * major:
        return None

    direction = eigenvectors[:, 1]
    yaw = float(np.arctan2(direction[1], direction[0]))

    # An eigenvector's sign is arbitrary, fold it so one heading has one yaw
    if yaw >= np.pi / 2:
        yaw -= np.pi
    elif yaw < -np.pi / 2:
        yaw += np.pi
    return yaw


def pca_box(points: np.ndarray, box_id: int) -> Box:
    """
    Fit an oriented box whose x axis is the cluster's principal horizontal direction.

    Extents are measured in the rotated frame (and along z), and the box is
    centred on those extents. Degenerate clusters get an axis-aligned box
    with every dimension at least MIN_DIMENSION.
    """
    box, _ = _fit_pca(points, box_id)
    return box


def _fit_pca(points: np.ndarray, box_id: int) -> Tuple[Box, bool]:
    """Returns the box and whether the degenerate fallback was used."""
    xyz = as_xyz(points)
    if len(xyz) == 0:
        raise ValueError("Cannot fit a box to an empty cluster")

    yaw = _principal_yaw(xyz[:, :2]) if len(xyz) >= 3 else None
    if yaw is None:
        logger.debug("Box %d: singular covariance over %d points, using axis-aligned box", box_id, len(xyz))
        return _fallback_box(xyz, box_id), True

    c, s = np.cos(yaw), np.sin(yaw)
    major_axis = np.array([c, s])
    minor_axis = np.array([-s, c])

    centroid_xy = xyz[:, :2].mean(axis=0)
    offsets = xyz[:, :2] - centroid_xy
    along = offsets @ major_axis
    across = offsets @ minor_axis

    z_min, z_max = xyz[:, 2].min(), xyz[:, 2].max()

    center_along = (along.min() + along.max()) / 2.0
    center_across = (across.min() + across.max()) / 2.0
    center_xy = centroid_xy + center_along * major_axis + center_across * minor_axis

    box = Box(
        id=box_id,
        position=np.array([center_xy[0], center_xy[1], (z_min + z_max) / 2.0]),
        orientation=Rotation.from_euler("z", yaw).as_quat(),
        dimension=np.array([along.max() - along.min(), across.max() - across.min(), z_max - z_min]),
    )
    return box, False


def fit_boxes(
    points: np.ndarray,
    clusters: Sequence[Cluster],
    use_pca_box: bool = False,
    first_id: int = 0,
) -> Tuple[List[Box], int, int]:
    """
    Fit one box per cluster, minting consecutive ids starting at first_id.

    Returns (boxes, next unused id, number of clusters that needed the
    degenerate fallback).
    """
    xyz = as_xyz(points)

    boxes = []
    box_id = first_id
    degenerate = 0

    for cluster in clusters:
        cluster_points = cluster.points(xyz)
        if use_pca_box:
            box, fallback = _fit_pca(cluster_points, box_id)
            degenerate += fallback
        else:
            box = axis_aligned_box(cluster_points, box_id)
        boxes.append(box)
        box_id = next_box_id(box_id)

    return boxes, box_id, degenerate
