import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

import numpy as np

from lidar_obstacle_detector.bbox import Box, fit_boxes
from lidar_obstacle_detector.clustering import Cluster, euclidean_cluster
from lidar_obstacle_detector.config import Config
from lidar_obstacle_detector.data_loader import discover_kitti_sequence, load_point_cloud
from lidar_obstacle_detector.preprocessing import filter_cloud
from lidar_obstacle_detector.ransac import PlaneModel, segment_ground
from lidar_obstacle_detector.tracking import TrackerState, track_boxes

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Result of processing a single frame."""
    boxes: List[Box]
    # State to hand to the next frame
    state: TrackerState

    # Preprocessing
    raw_count: int
    filtered_points: np.ndarray

    # Ground segmentation
    ground_points: np.ndarray
    obstacle_points: np.ndarray
    plane_model: Optional[PlaneModel] = None
    degraded_segmentation: bool = False

    # Clustering / fitting, indices refer to obstacle_points
    clusters: List[Cluster] = field(default_factory=list)
    degenerate_fits: int = 0

    @property
    def filtered_count(self) -> int:
        return len(self.filtered_points)


def run_frame_pipeline(
    points: np.ndarray,
    config: Config,
    state: Optional[TrackerState] = None,
) -> FrameResult:
    """
    Run the full pipeline on a single frame.

    ``state`` is read but never modified; the state for the next frame is
    returned in the result. If this raises, the caller's state is still valid.
    """
    if state is None:
        state = TrackerState()

    raw_count = len(points)

    # Downsample, ROI, ego body removal
    filtered = filter_cloud(points, config)

    if len(filtered) == 0:
        logger.info("No points left after filtering %d raw points", raw_count)
        empty = np.zeros((0, 3))
        return FrameResult(
            boxes=[],
            state=TrackerState(boxes=(), next_id=state.next_id),
            raw_count=raw_count,
            filtered_points=filtered,
            ground_points=empty,
            obstacle_points=empty,
        )

    # Ground segmentation
    segmentation = segment_ground(
        filtered,
        num_iterations=config.ransac_iterations,
        distance_threshold=config.ground_threshold,
        seed=config.seed,
    )

    # Clustering
    cluster_result = euclidean_cluster(
        segmentation.obstacle,
        distance_threshold=config.cluster_threshold,
        min_size=config.cluster_min_size,
        max_size=config.cluster_max_size,
        workers=config.workers,
    )

    # Bounding boxes
    boxes, next_id, degenerate = fit_boxes(
        segmentation.obstacle,
        cluster_result.clusters,
        use_pca_box=config.use_pca_box,
        first_id=state.next_id,
    )
    if degenerate:
        logger.info("%d of %d clusters fell back to axis-aligned boxes", degenerate, len(boxes))

    # Re-assign box ids based on tracking result
    if config.use_tracking:
        boxes = track_boxes(
            state.boxes,
            boxes,
            displacement_threshold=config.displacement_threshold,
            iou_threshold=config.iou_threshold,
        )

    logger.debug(
        "frame: %d raw, %d filtered, %d ground, %d obstacle, %d boxes",
        raw_count, len(filtered), len(segmentation.ground), len(segmentation.obstacle), len(boxes),
    )

    return FrameResult(
        boxes=boxes,
        state=TrackerState(boxes=tuple(boxes), next_id=next_id),
        raw_count=raw_count,
        filtered_points=filtered,
        ground_points=segmentation.ground,
        obstacle_points=segmentation.obstacle,
        plane_model=segmentation.plane,
        degraded_segmentation=segmentation.degraded,
        clusters=cluster_result.clusters,
        degenerate_fits=degenerate,
    )


def run_frames(
    frames: Iterable[np.ndarray],
    config: Config,
    state: Optional[TrackerState] = None,
) -> Iterator[FrameResult]:
    """
    Process clouds one after another, passing each frame's state to the next.
    """
    for points in frames:
        result = run_frame_pipeline(points, config, state)
        state = result.state
        yield result


def run_sequence_pipeline(
    seq_dir: Union[str, Path],
    config: Config,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> list[FrameResult]:
    """
    Process all frames in a KITTI sequence.
    """
    frames = discover_kitti_sequence(seq_dir)
    if not frames:
        logger.warning("No point cloud frames found in %s", seq_dir)
        return []

    def clouds():
        for i, frame in enumerate(frames):
            if progress_callback:
                progress_callback(i, len(frames))
            yield load_point_cloud(frame)

    results = list(run_frames(clouds(), config))

    if progress_callback:
        progress_callback(len(frames), len(frames))

    return results
