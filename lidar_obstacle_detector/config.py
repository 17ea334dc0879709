import dataclasses
import math
from dataclasses import dataclass, fields
from typing import Tuple

Vector3 = Tuple[float, float, float]


class InvalidConfigError(ValueError):
    """Raised when a Config snapshot cannot be used to process frames."""


@dataclass(frozen=True)
class Config:
    """Parameters for the obstacle detection pipeline.

    A Config is a snapshot: build a new one (``replace``) to change
    parameters between frames, never mutate it mid-frame.
    """
    # Filtering
    voxel_size: float = 0.2
    roi_min: Vector3 = (-15.0, -12.0, -3.0)
    roi_max: Vector3 = (30.0, 12.0, 1.0)
    # Vehicle roof / body, removed after the ROI crop
    ego_min: Vector3 = (-1.5, -1.7, -1.0)
    ego_max: Vector3 = (2.6, 1.7, -0.4)
    # Ground segmentation
    ground_threshold: float = 0.3
    ransac_iterations: int = 30
    seed: int = 0
    # Clustering
    cluster_threshold: float = 0.6
    cluster_min_size: int = 30
    cluster_max_size: int = 5000
    workers: int = 1
    # Box fitting / tracking
    use_pca_box: bool = False
    use_tracking: bool = True
    displacement_threshold: float = 1.0
    iou_threshold: float = 0.5

    def __post_init__(self):
        # Tuples keep the snapshot hashable even when lists are passed in
        for name in ("roi_min", "roi_max", "ego_min", "ego_max"):
            value = tuple(float(v) for v in getattr(self, name))
            if len(value) != 3:
                raise InvalidConfigError(f"{name} must have 3 components, got {len(value)}")
            if not all(math.isfinite(v) for v in value):
                raise InvalidConfigError(f"{name} must be finite, got {value}")
            object.__setattr__(self, name, value)
        self.validate()

    def validate(self) -> None:
        if not self.voxel_size > 0:
            raise InvalidConfigError(f"voxel_size must be positive, got {self.voxel_size}")

        for axis, lo, hi in zip("xyz", self.roi_min, self.roi_max):
            if lo > hi:
                raise InvalidConfigError(f"ROI min {axis}={lo} is greater than max {axis}={hi}")
        for axis, lo, hi in zip("xyz", self.ego_min, self.ego_max):
            if lo > hi:
                raise InvalidConfigError(f"ego box min {axis}={lo} is greater than max {axis}={hi}")

        for name in ("ground_threshold", "cluster_threshold", "displacement_threshold", "iou_threshold"):
            if not getattr(self, name) > 0:
                raise InvalidConfigError(f"{name} must be positive, got {getattr(self, name)}")

        if self.ransac_iterations < 1:
            raise InvalidConfigError(f"ransac_iterations must be at least 1, got {self.ransac_iterations}")
        if self.cluster_min_size < 1:
            raise InvalidConfigError(f"cluster_min_size must be at least 1, got {self.cluster_min_size}")
        if self.cluster_min_size > self.cluster_max_size:
            raise InvalidConfigError(
                f"cluster_min_size ({self.cluster_min_size}) is greater than "
                f"cluster_max_size ({self.cluster_max_size})"
            )
        # scipy uses -1 for "all cores"
        if self.workers == 0 or self.workers < -1:
            raise InvalidConfigError(f"workers must be positive or -1, got {self.workers}")

    def replace(self, **changes) -> "Config":
        """Return a new validated snapshot with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, values: dict) -> "Config":
        """Build a Config from a flat mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}
