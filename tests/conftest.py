"""Pytest configuration and fixtures for obstacle detector tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Make the package importable without installing it
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from lidar_obstacle_detector.bbox import Box, IDENTITY_QUATERNION  # noqa: E402
from lidar_obstacle_detector.config import Config  # noqa: E402


def make_box(box_id, position, dimension=(2.0, 2.0, 2.0), orientation=None):
    return Box(
        id=box_id,
        position=np.asarray(position, dtype=float),
        orientation=IDENTITY_QUATERNION.copy() if orientation is None else np.asarray(orientation, dtype=float),
        dimension=np.asarray(dimension, dtype=float),
    )


def blob(center, n=40, spread=0.2, seed=0):
    """Points scattered uniformly in a small cube around center."""
    rng = np.random.default_rng(seed)
    return np.asarray(center, dtype=float) + rng.uniform(-spread, spread, size=(n, 3))


@pytest.fixture
def box_factory():
    return make_box


@pytest.fixture
def planar_cloud():
    """100 points on a 10x10 grid in the z=0 plane plus 10 points at z=5."""
    xs, ys = np.meshgrid(np.linspace(-5.0, 5.0, 10), np.linspace(-5.0, 5.0, 10))
    ground = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(100)])
    raised = np.column_stack([np.linspace(-4.0, 4.0, 10), np.linspace(4.0, -3.0, 10), np.full(10, 5.0)])
    return ground, raised


@pytest.fixture
def scene_cloud():
    """
    A flat ground patch with two box-shaped obstacles standing on it,
    away from the ego body region.
    """
    rng = np.random.default_rng(42)
    ground = np.column_stack([
        rng.uniform(5.0, 25.0, 3000),
        rng.uniform(-10.0, 10.0, 3000),
        np.full(3000, -1.5),
    ])
    car = np.column_stack([
        rng.uniform(9.0, 13.0, 600),
        rng.uniform(-4.0, -2.0, 600),
        rng.uniform(-1.2, 0.0, 600),
    ])
    pole = np.column_stack([
        rng.uniform(18.0, 18.6, 300),
        rng.uniform(5.0, 5.6, 300),
        rng.uniform(-1.2, 0.5, 300),
    ])
    return np.vstack([ground, car, pole])


@pytest.fixture
def scene_config():
    return Config(
        voxel_size=0.1,
        ground_threshold=0.15,
        ransac_iterations=50,
        cluster_threshold=0.5,
        cluster_min_size=10,
        cluster_max_size=5000,
        displacement_threshold=1.0,
        iou_threshold=0.3,
    )
