import numpy as np
from pathlib import Path
from typing import Union


def load_kitti_txt(file_path: Union[str, Path]) -> np.ndarray:
    """
    Load a KITTI LiDAR point cloud from a .txt file
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Point cloud file not found: {file_path}")

    points = np.loadtxt(file_path, dtype=np.float32, ndmin=2)
    return points


def load_kitti_bin(file_path: Union[str, Path]) -> np.ndarray:
    """
    Load a KITTI velodyne scan stored as packed float32 x, y, z, intensity
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Point cloud file not found: {file_path}")

    raw = np.fromfile(file_path, dtype=np.float32)
    if raw.size % 4 != 0:
        raise ValueError(f"{file_path} does not hold a whole number of (x, y, z, intensity) records")
    return raw.reshape(-1, 4)


def load_point_cloud(file_path: Union[str, Path]) -> np.ndarray:
    file_path = Path(file_path)
    if file_path.suffix == ".txt":
        return load_kitti_txt(file_path)
    if file_path.suffix == ".bin":
        return load_kitti_bin(file_path)
    raise ValueError(f"Unsupported point cloud format: {file_path.suffix or file_path.name}")


def discover_kitti_sequence(sequence_dir: Union[str, Path]) -> list[Path]:
    """
    Discover all frames in a KITTI sequence directory.
    Returns the point cloud files in frame order.
    """
    sequence_dir = Path(sequence_dir)
    velodyne_dir = sequence_dir / "velodyne_points" / "data"

    if not velodyne_dir.exists():
        return []

    frames = sorted(velodyne_dir.glob("*.txt")) + sorted(velodyne_dir.glob("*.bin"))
    return sorted(frames, key=lambda p: (p.stem, p.suffix))
