"""Tests for point filtering: voxel grid, ROI crop and ego body removal."""

import numpy as np
import pytest

from lidar_obstacle_detector.config import Config
from lidar_obstacle_detector.preprocessing import as_xyz, crop_box, filter_cloud, voxel_downsample


class TestVoxelDownsample:
    """Tests for voxel_downsample."""

    def test_empty_input(self):
        """Empty cloud gives an empty (0, 3) cloud."""
        out = voxel_downsample(np.zeros((0, 3)), voxel_size=0.1)

        assert out.shape == (0, 3)

    def test_points_in_same_voxel_merge_to_centroid(self):
        """Points sharing a cell collapse to their mean."""
        pts = np.array([
            [0.01, 0.01, 0.01],
            [0.03, 0.05, 0.01],  # same voxel for size=0.1
            [0.20, 0.20, 0.00],  # different voxel
        ])
        out = voxel_downsample(pts, voxel_size=0.1)

        assert out.shape == (2, 3)
        assert np.allclose(out[0], [0.02, 0.03, 0.01])
        assert np.allclose(out[1], [0.20, 0.20, 0.00])

    def test_negative_coordinates(self):
        """Cells either side of zero are kept apart."""
        pts = np.array([[-0.05, 0.0, 0.0], [0.05, 0.0, 0.0]])
        out = voxel_downsample(pts, voxel_size=0.1)

        assert len(out) == 2

    def test_extra_columns_dropped(self):
        """Intensity column is ignored."""
        pts = np.array([[1.0, 2.0, 3.0, 0.7]], dtype=np.float32)
        out = voxel_downsample(pts, voxel_size=0.5)

        assert out.shape == (1, 3)

    def test_output_order_independent_of_input_order(self):
        """Shuffling the input does not change the output."""
        rng = np.random.default_rng(3)
        pts = rng.uniform(-5, 5, size=(500, 3))
        out1 = voxel_downsample(pts, voxel_size=0.5)
        out2 = voxel_downsample(pts[rng.permutation(len(pts))], voxel_size=0.5)

        assert np.allclose(out1, out2)

    def test_non_finite_points_dropped(self):
        """NaN and inf rows are discarded and do not merge neighbouring cells."""
        pts = np.array([
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [np.nan, np.nan, np.nan],
            [np.inf, 0.0, 0.0],
        ])
        out = voxel_downsample(pts, voxel_size=0.1)

        assert np.allclose(out, [[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])

    def test_only_non_finite_points(self):
        """A cloud of NaN rows downsamples to nothing."""
        out = voxel_downsample(np.full((4, 3), np.nan), voxel_size=0.1)

        assert out.shape == (0, 3)

    def test_far_points_keep_their_own_cells(self):
        """Large coordinates on a fine grid stay distinct and ordered."""
        pts = np.array([
            [1e7, 0.0, 0.0],
            [0.0, 0.0, 0.0],
            [-1e7, 0.0, 0.0],
            [0.0, 0.005, 0.0],
        ])
        out = voxel_downsample(pts, voxel_size=0.01)

        assert out.shape == (3, 3)
        assert np.allclose(out, [[-1e7, 0.0, 0.0], [0.0, 0.0025, 0.0], [1e7, 0.0, 0.0]])

    def test_malformed_shape(self):
        """A flat array is not a cloud."""
        with pytest.raises(ValueError):
            as_xyz(np.array([1.0, 2.0, 3.0]))


class TestCropBox:
    """Tests for crop_box."""

    def test_keeps_points_inside(self):
        pts = np.array([
            [0.5, 0.0, 1.0],   # in
            [1.5, 0.0, 1.0],   # x out
            [0.5, 2.0, 1.0],   # y out
            [0.5, 0.0, -1.0],  # z out
        ])
        out = crop_box(pts, (0.0, -1.0, 0.0), (1.0, 1.0, 2.0))

        assert out.shape == (1, 3)
        assert np.allclose(out[0], [0.5, 0.0, 1.0])

    def test_bounds_inclusive(self):
        pts = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
        out = crop_box(pts, (0.0, 0.0, 0.0), (1.0, 1.0, 1.0))

        assert len(out) == 2

    def test_negative_removes_inside(self):
        pts = np.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0]])
        out = crop_box(pts, (-1.0, -1.0, -1.0), (1.0, 1.0, 1.0), negative=True)

        assert out.shape == (1, 3)
        assert np.allclose(out[0], [5.0, 0.0, 0.0])


class TestFilterCloud:
    """Tests for the combined filter stage."""

    def test_empty_cloud(self):
        assert filter_cloud(np.zeros((0, 3)), Config()).shape == (0, 3)

    def test_removes_ego_body_and_outside_roi(self):
        """Roof points and far points are dropped, others survive."""
        config = Config(voxel_size=0.1)
        pts = np.array([
            [0.55, 0.05, -0.75],  # on the vehicle roof
            [10.05, 0.05, -0.75],  # in front of the vehicle
            [100.05, 0.05, 0.05],  # beyond the ROI
        ])
        out = filter_cloud(pts, config)

        assert out.shape == (1, 3)
        assert np.allclose(out[0], [10.05, 0.05, -0.75])

    def test_idempotent_on_voxel_aligned_cloud(self):
        """Filtering a filtered, voxel-centred cloud changes nothing."""
        config = Config(voxel_size=0.5)
        rng = np.random.default_rng(0)
        cells = np.unique(rng.integers(-20, 20, size=(400, 3)), axis=0)
        # Cell centres, kept clear of the ROI/ego boundaries
        pts = (cells + 0.5) * 0.5
        pts[:, 2] = np.clip(pts[:, 2], -2.75, 0.75)

        once = filter_cloud(pts, config)
        twice = filter_cloud(once, config)

        assert len(once) > 0
        assert np.array_equal(once, twice)
