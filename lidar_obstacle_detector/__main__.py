import sys

from lidar_obstacle_detector.cli import main

sys.exit(main())
