"""Conversions between the engine's optical frames and the published frames.

The SLAM engine reports poses and landmarks in optical convention
(X-right, Y-down, Z-forward), with the world origin at the first tracked
camera pose. Published frames follow the robotics convention (X-forward,
Y-left, Z-up), and the map origin is shifted by the robot's initial
planar offset.
"""

from __future__ import annotations

import numpy as np

from .pose import SE3

# p_body = OPTICAL_TO_BODY @ p_optical
OPTICAL_TO_BODY = np.array(
    [
        [0.0, 0.0, 1.0],
        [-1.0, 0.0, 0.0],
        [0.0, -1.0, 0.0],
    ],
    dtype=np.float64,
)


class FrameConvention:
    """Maps engine-frame poses and points into the global map frame.

    Args:
        robot_x: Initial robot x position in the map frame
        robot_y: Initial robot y position in the map frame
    """

    def __init__(self, robot_x: float = 0.0, robot_y: float = 0.0) -> None:
        self._axes = SE3(rotation=OPTICAL_TO_BODY, translation=np.zeros(3))
        self._offset = SE3(
            rotation=np.eye(3), translation=np.array([robot_x, robot_y, 0.0])
        )
        self._map_from_engine = self._offset @ self._axes
        self._engine_from_map = self._map_from_engine.inverse()

    def engine_to_map_pose(self, T_world_camera: SE3) -> SE3:
        """Convert an engine camera pose into the robot pose in the map frame.

        Args:
            T_world_camera: Camera pose in the engine world frame

        Returns:
            T_map_robot with robotics axes
        """
        return self._map_from_engine @ T_world_camera @ self._axes.inverse()

    def map_to_engine_pose(self, T_map_robot: SE3) -> SE3:
        """Inverse of :meth:`engine_to_map_pose`."""
        return self._engine_from_map @ T_map_robot @ self._axes

    def engine_to_map_points(self, points: np.ndarray) -> np.ndarray:
        """Convert Nx3 engine-world points into the map frame."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(points) == 0:
            return points
        return self._map_from_engine.transform_points(points)
