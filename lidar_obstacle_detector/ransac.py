import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from lidar_obstacle_detector.preprocessing import as_xyz

logger = logging.getLogger(__name__)


@dataclass
class PlaneModel:
    """
    Represents a 3D plane: normal * point + d = 0
    """
    # Unit vector with distance parameter to represent plane
    normal: np.ndarray
    d: float

    def distance_to_points(self, points: np.ndarray) -> np.ndarray:
        return np.abs(np.dot(points[:, :3], self.normal) + self.d)

    @property
    def equation_string(self) -> str:
        return f"{self.normal[0]:.4f}x + {self.normal[1]:.4f}y + {self.normal[2]:.4f}z + {self.d:.4f} = 0"


@dataclass
class SegmentationResult:
    ground: np.ndarray
    obstacle: np.ndarray
    ground_mask: np.ndarray
    plane: Optional[PlaneModel]
    # True when no plane could be fitted and every point was kept as obstacle
    degraded: bool = False


def fit_plane_from_points(p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> PlaneModel:
    """
    Fit a plane through three 3D points.
    """
    v1 = p2 - p1
    v2 = p3 - p1

    normal = np.cross(v1, v2)

    norm = np.linalg.norm(normal)
    if norm < 1e-10:
        raise ValueError("Points are collinear")

    normal = normal / norm

    # Keep the normal pointing up so the same plane always has the same equation
    if normal[2] < 0:
        normal = -normal

    d = -np.dot(normal, p1)

    return PlaneModel(normal=normal, d=float(d))


def ransac_ground_plane(
    points: np.ndarray,
    num_iterations: int = 30,
    distance_threshold: float = 0.3,
    seed: Optional[int] = None,
) -> Tuple[Optional[PlaneModel], np.ndarray]:
    """
    Detect the dominant plane using RANSAC.

    Every iteration samples 3 distinct points from a generator seeded with
    ``seed``, so a given seed always picks the same planes. Collinear samples
    are skipped. Returns (None, all-False mask) if no sample produced a plane.
    """
    xyz = as_xyz(points)
    n_points = len(xyz)

    if n_points < 3:
        raise ValueError(f"Need at least 3 points, got {n_points}")

    rng = np.random.default_rng(seed)

    best_plane = None
    best_inlier_count = 0
    best_inlier_mask = np.zeros(n_points, dtype=bool)

    for _ in range(num_iterations):
        sample_indices = rng.choice(n_points, 3, replace=False)
        p1, p2, p3 = xyz[sample_indices]

        try:
            plane = fit_plane_from_points(p1, p2, p3)
        except ValueError:
            continue

        distances = plane.distance_to_points(xyz)
        inlier_mask = distances < distance_threshold
        inlier_count = int(np.sum(inlier_mask))

        if inlier_count > best_inlier_count:
            best_inlier_count = inlier_count
            best_plane = plane
            best_inlier_mask = inlier_mask

    return best_plane, best_inlier_mask


def segment_ground(
    points: np.ndarray,
    num_iterations: int = 30,
    distance_threshold: float = 0.3,
    seed: Optional[int] = None,
) -> SegmentationResult:
    """
    Split a cloud into ground (inliers of the best plane) and obstacle points.
    Both outputs keep the input order.
    """
    xyz = as_xyz(points)

    if len(xyz) < 3:
        logger.warning("Degraded segmentation: %d points, need at least 3 to fit a plane", len(xyz))
        return SegmentationResult(
            ground=np.zeros((0, 3)),
            obstacle=xyz,
            ground_mask=np.zeros(len(xyz), dtype=bool),
            plane=None,
            degraded=True,
        )

    plane, ground_mask = ransac_ground_plane(
        xyz,
        num_iterations=num_iterations,
        distance_threshold=distance_threshold,
        seed=seed,
    )

    if plane is None:
        logger.warning(
            "Degraded segmentation: no non-collinear sample in %d iterations over %d points",
            num_iterations, len(xyz),
        )
        return SegmentationResult(
            ground=np.zeros((0, 3)),
            obstacle=xyz,
            ground_mask=ground_mask,
            plane=None,
            degraded=True,
        )

    logger.debug("ground plane %s with %d inliers", plane.equation_string, int(ground_mask.sum()))

    return SegmentationResult(
        ground=xyz[ground_mask],
        obstacle=xyz[~ground_mask],
        ground_mask=ground_mask,
        plane=plane,
    )
