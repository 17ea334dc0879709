import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon

from lidar_obstacle_detector.bbox import Box, next_box_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerState:
    """
    What the tracker remembers between frames: the last frame's boxes and
    the next id to hand out. The caller owns it and replaces it every frame.
    """
    boxes: Tuple[Box, ...] = ()
    next_id: int = 0

    def __post_init__(self):
        object.__setattr__(self, "boxes", tuple(self.boxes))
        # Fresh ids must never equal an id a matched box can inherit
        if self.boxes:
            highest = max(int(b.id) for b in self.boxes)
            if self.next_id <= highest:
                object.__setattr__(self, "next_id", next_box_id(highest))


def footprint(box: Box) -> Polygon:
    """Ground-plane rectangle of a box, rotated by its yaw."""
    half_l, half_w = box.dimension[0] / 2.0, box.dimension[1] / 2.0
    corners = np.array([
        [-half_l, -half_w],
        [half_l, -half_w],
        [half_l, half_w],
        [-half_l, half_w],
    ])
    yaw = box.yaw
    c, s = np.cos(yaw), np.sin(yaw)
    rotation = np.array([[c, -s], [s, c]])
    corners = corners @ rotation.T + box.position[:2]
    return Polygon(corners)


# this is 2d: boxes are compared by their ground-plane footprints
def footprint_iou(box1: Box, box2: Box) -> float:
    poly1 = footprint(box1)
    poly2 = footprint(box2)
    if poly1.area == 0 or poly2.area == 0:
        return 0.0

    union_area = poly1.union(poly2).area
    if union_area == 0:
        return 0.0

    return poly1.intersection(poly2).area / union_area


def centroid_displacement(box1: Box, box2: Box) -> float:
    return float(np.linalg.norm(np.asarray(box1.position) - np.asarray(box2.position)))


def associate(
    prev_boxes: Sequence[Box],
    curr_boxes: Sequence[Box],
    displacement_threshold: float = 1.0,
    iou_threshold: float = 0.5,
):
    """
    Match previous boxes to current boxes one-to-one.

    A pair is a candidate when the centroids moved less than
    displacement_threshold and the footprint IoU is at least iou_threshold.
    Candidates are taken greedily by highest IoU, then smallest displacement,
    and each box is used at most once.

    Returns (list of (prev_idx, curr_idx), unmatched current indices,
    unmatched previous indices).
    """
    candidates = []
    for i, prev in enumerate(prev_boxes):
        for j, curr in enumerate(curr_boxes):
            displacement = centroid_displacement(prev, curr)
            if displacement >= displacement_threshold:
                continue
            iou = footprint_iou(prev, curr)
            if iou < iou_threshold:
                continue
            candidates.append((-iou, displacement, i, j))

    candidates.sort()

    matches = []
    matched_prev = set()
    matched_curr = set()
    for _, _, i, j in candidates:
        if i in matched_prev or j in matched_curr:
            continue
        matches.append((i, j))
        matched_prev.add(i)
        matched_curr.add(j)

    unmatched_curr = [j for j in range(len(curr_boxes)) if j not in matched_curr]
    unmatched_prev = [i for i in range(len(prev_boxes)) if i not in matched_prev]

    return matches, unmatched_curr, unmatched_prev


def track_boxes(
    prev_boxes: Sequence[Box],
    curr_boxes: Sequence[Box],
    displacement_threshold: float = 1.0,
    iou_threshold: float = 0.5,
) -> List[Box]:
    """
    Carry ids from the previous frame over to the current boxes.

    Matched current boxes take the id of their previous box, unmatched ones
    keep the id they were fitted with, unmatched previous boxes are dropped.
    The inputs are not modified.
    """
    matches, unmatched_curr, unmatched_prev = associate(
        prev_boxes, curr_boxes, displacement_threshold, iou_threshold
    )

    tracked = list(curr_boxes)
    for i, j in matches:
        tracked[j] = curr_boxes[j].with_id(prev_boxes[i].id)

    logger.debug(
        "tracking: %d matched, %d new, %d dropped",
        len(matches), len(unmatched_curr), len(unmatched_prev),
    )
    return tracked
