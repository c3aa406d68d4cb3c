"""Derivation of the map->robot and map->odom transforms."""

from __future__ import annotations

from .geometry import SE3, FrameConvention
from .messages import Header, OdometryMessage, TransformStamped


class TransformComposer:
    """Builds the broadcast map transform from an engine camera pose.

    Two modes exist. In direct mode the map->robot transform is taken
    straight from the engine pose. In composed mode the map->odom transform
    is chosen so that map->odom->robot agrees with both the engine pose and
    the odometry's own odom->robot estimate:

        T_map_odom = T_map_robot @ inverse(T_odom_robot)

    Args:
        frames: Engine-to-map frame convention
        global_frame: Parent frame of both transforms
        odom_frame: Child frame in composed mode
        robot_base_frame: Child frame in direct mode
    """

    def __init__(
        self,
        frames: FrameConvention,
        global_frame: str = "map",
        odom_frame: str = "odom",
        robot_base_frame: str = "base_link",
    ) -> None:
        self._frames = frames
        self.global_frame = global_frame
        self.odom_frame = odom_frame
        self.robot_base_frame = robot_base_frame

    def map_to_robot(self, T_world_camera: SE3) -> SE3:
        """Robot pose in the map frame for an engine camera pose."""
        return self._frames.engine_to_map_pose(T_world_camera)

    def direct(self, T_world_camera: SE3, header: Header) -> TransformStamped:
        """Direct map->robot transform stamped with ``header``'s time."""
        return TransformStamped(
            header=Header(stamp_ns=header.stamp_ns, frame_id=self.global_frame),
            child_frame_id=self.robot_base_frame,
            transform=self.map_to_robot(T_world_camera),
        )

    def composed(
        self, T_world_camera: SE3, odom: OdometryMessage
    ) -> TransformStamped:
        """map->odom transform consistent with the odometry sample."""
        T_map_robot = self.map_to_robot(T_world_camera)
        T_odom_robot = odom.pose.to_se3()
        return TransformStamped(
            header=Header(stamp_ns=odom.header.stamp_ns, frame_id=self.global_frame),
            child_frame_id=self.odom_frame,
            transform=T_map_robot @ T_odom_robot.inverse(),
        )
