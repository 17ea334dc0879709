"""Command line runner: detect and track obstacles in point cloud files."""

import argparse
import json
import logging
import sys
from pathlib import Path

from lidar_obstacle_detector.config import Config, InvalidConfigError
from lidar_obstacle_detector.data_loader import discover_kitti_sequence, load_point_cloud
from lidar_obstacle_detector.pipeline import run_frames

logger = logging.getLogger(__name__)

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'


def setup_logging(level: str = 'info') -> None:
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    # No-op when the host application already configured logging
    logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("lidar_obstacle_detector").setLevel(level_map[level.lower()])


def _str2bool(value: str) -> bool:
    if value.lower() in ("1", "true", "yes", "on"):
        return True
    if value.lower() in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    defaults = Config()
    parser = argparse.ArgumentParser(
        prog="lidar-obstacle-detector",
        description="Detect and track obstacles in LiDAR point clouds. "
                    "Writes one JSON line per frame to stdout.",
    )
    parser.add_argument("input", type=Path,
                        help="A .txt/.bin point cloud or a KITTI sequence directory")

    group = parser.add_argument_group("filtering")
    group.add_argument("--voxel-size", type=float, default=defaults.voxel_size)
    group.add_argument("--roi-min", type=float, nargs=3, default=list(defaults.roi_min), metavar=("X", "Y", "Z"))
    group.add_argument("--roi-max", type=float, nargs=3, default=list(defaults.roi_max), metavar=("X", "Y", "Z"))
    group.add_argument("--ego-min", type=float, nargs=3, default=list(defaults.ego_min), metavar=("X", "Y", "Z"))
    group.add_argument("--ego-max", type=float, nargs=3, default=list(defaults.ego_max), metavar=("X", "Y", "Z"))

    group = parser.add_argument_group("ground segmentation")
    group.add_argument("--ground-threshold", type=float, default=defaults.ground_threshold)
    group.add_argument("--ransac-iterations", type=int, default=defaults.ransac_iterations)
    group.add_argument("--seed", type=int, default=defaults.seed)

    group = parser.add_argument_group("clustering")
    group.add_argument("--cluster-threshold", type=float, default=defaults.cluster_threshold)
    group.add_argument("--cluster-min-size", type=int, default=defaults.cluster_min_size)
    group.add_argument("--cluster-max-size", type=int, default=defaults.cluster_max_size)
    group.add_argument("--workers", type=int, default=defaults.workers)

    group = parser.add_argument_group("boxes and tracking")
    group.add_argument("--use-pca-box", type=_str2bool, default=defaults.use_pca_box)
    group.add_argument("--use-tracking", type=_str2bool, default=defaults.use_tracking)
    group.add_argument("--displacement-threshold", type=float, default=defaults.displacement_threshold)
    group.add_argument("--iou-threshold", type=float, default=defaults.iou_threshold)

    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    return Config(
        voxel_size=args.voxel_size,
        roi_min=args.roi_min,
        roi_max=args.roi_max,
        ego_min=args.ego_min,
        ego_max=args.ego_max,
        ground_threshold=args.ground_threshold,
        ransac_iterations=args.ransac_iterations,
        seed=args.seed,
        cluster_threshold=args.cluster_threshold,
        cluster_min_size=args.cluster_min_size,
        cluster_max_size=args.cluster_max_size,
        workers=args.workers,
        use_pca_box=args.use_pca_box,
        use_tracking=args.use_tracking,
        displacement_threshold=args.displacement_threshold,
        iou_threshold=args.iou_threshold,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = config_from_args(args)
    except InvalidConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.input.is_dir():
        paths = discover_kitti_sequence(args.input)
        if not paths:
            logger.error("No point cloud frames found in %s", args.input)
            return 1
    else:
        paths = [args.input]

    logger.info("Processing %d frame(s)", len(paths))
    clouds = (load_point_cloud(path) for path in paths)

    for path, result in zip(paths, run_frames(clouds, config)):
        record = {
            "frame": path.name,
            "boxes": [box.to_dict() for box in result.boxes],
            "ground_count": len(result.ground_points),
            "obstacle_count": len(result.obstacle_points),
        }
        print(json.dumps(record))

    return 0


if __name__ == "__main__":
    sys.exit(main())
