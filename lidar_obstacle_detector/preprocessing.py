import logging

import numpy as np

from lidar_obstacle_detector.config import Config

logger = logging.getLogger(__name__)


def as_xyz(points: np.ndarray) -> np.ndarray:
    """
    Return the x/y/z columns of a cloud as a float64 (N, 3) array.
    Extra columns (intensity, ring, ...) are dropped.
    """
    points = np.asarray(points)
    if points.size == 0:
        return np.zeros((0, 3))
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError(f"Expected an (N, 3+) point array, got shape {points.shape}")
    return points[:, :3].astype(np.float64)


def voxel_downsample(points: np.ndarray, voxel_size: float = 0.2) -> np.ndarray:
    """
    Downsample point cloud using voxel grid filtering.
    Each occupied voxel is replaced by the centroid of its points.
    """
    xyz = as_xyz(points)

    # NaN / inf returns have no cell
    finite = np.isfinite(xyz).all(axis=1)
    if not finite.all():
        logger.debug("voxel grid: dropping %d non-finite points", int((~finite).sum()))
        xyz = xyz[finite]
    if len(xyz) == 0:
        return np.zeros((0, 3))

    # np.unique sorts the (i, j, k) rows, so output order only depends on the occupied cells
    voxel_indices = np.floor(xyz / voxel_size).astype(np.int64)

    unique_voxels, inverse_indices = np.unique(voxel_indices, axis=0, return_inverse=True)
    inverse_indices = inverse_indices.reshape(-1)
    num_voxels = len(unique_voxels)

    counts = np.bincount(inverse_indices)
    centroids = np.zeros((num_voxels, 3))

    for dim in range(3):
        centroids[:, dim] = np.bincount(inverse_indices, weights=xyz[:, dim]) / counts

    return centroids


def crop_box(points: np.ndarray, min_point, max_point, negative: bool = False) -> np.ndarray:
    """
    Keep points inside the axis-aligned box [min_point, max_point] (bounds inclusive).
    With negative=True the points inside the box are removed instead.
    """
    xyz = as_xyz(points)
    if len(xyz) == 0:
        return xyz

    lo = np.asarray(min_point, dtype=np.float64)
    hi = np.asarray(max_point, dtype=np.float64)
    inside = np.all((xyz >= lo) & (xyz <= hi), axis=1)

    if negative:
        return xyz[~inside]
    return xyz[inside]


def filter_cloud(points: np.ndarray, config: Config) -> np.ndarray:
    """
    Downsample, crop to the region of interest and drop the vehicle's own body points.
    """
    downsampled = voxel_downsample(points, voxel_size=config.voxel_size)
    cropped = crop_box(downsampled, config.roi_min, config.roi_max)
    filtered = crop_box(cropped, config.ego_min, config.ego_max, negative=True)

    logger.debug(
        "filter: %d raw -> %d voxels -> %d in ROI -> %d without ego body",
        len(points), len(downsampled), len(cropped), len(filtered),
    )
    return filtered
