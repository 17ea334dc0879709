"""
LiDAR Obstacle Detector: ground segmentation, clustering, box fitting and tracking of LiDAR point clouds.
"""

from .config import Config, InvalidConfigError
from .data_loader import load_kitti_txt, load_kitti_bin, load_point_cloud
from .preprocessing import voxel_downsample, crop_box, filter_cloud
from .ransac import ransac_ground_plane, segment_ground, PlaneModel, SegmentationResult
from .clustering import euclidean_cluster, Cluster, ClusterResult
from .bbox import Box, axis_aligned_box, pca_box, fit_boxes
from .tracking import TrackerState, associate, track_boxes, footprint_iou
from .pipeline import FrameResult, run_frame_pipeline, run_frames, run_sequence_pipeline

__version__ = "0.1.0"
