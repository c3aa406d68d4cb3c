"""Rerun-based visualization of the bridge's published output."""

from __future__ import annotations

import numpy as np
import rerun as rr
import rerun.blueprint as rrb

from ..messages import MapData, PointCloud, PoseStamped, TransformStamped
from ..scheduler import MAP_DATA_CHANNEL, MAP_POINTS_CHANNEL
from ..services import VISIBLE_LANDMARKS_CHANNEL, VISIBLE_LANDMARKS_POSE_CHANNEL
from ..transport import TF_CHANNEL, Subscription, Transport


class RerunVisualizer:
    """Streams map output to a Rerun viewer.

    Subscribes to the bridge's output channels and logs:
    - Map point cloud
    - Keyframe trajectory from map data
    - Visible landmarks of the last query, plus the queried pose
    - The broadcast map transform

    Entity hierarchy:
        world/
            map             - Map point cloud (colored by height)
            keyframes       - Keyframe trajectory (yellow)
            <child frame>   - Broadcast map transform (base_link or odom)
            query/
                landmarks   - Landmarks of the last visibility query (red)
                pose        - Queried pose
    """

    def __init__(self, app_name: str = "slam-bridge", spawn: bool = True) -> None:
        """Initialize Rerun visualization.

        Args:
            app_name: Name for the Rerun application window
            spawn: If True, automatically spawn the Rerun viewer
        """
        rr.init(app_name, spawn=spawn)
        self._subscriptions: list[Subscription] = []
        self._setup_coordinate_system()
        self._setup_layout()

    def _setup_coordinate_system(self) -> None:
        """Published frames are X-forward, Y-left, Z-up."""
        rr.log("world", rr.ViewCoordinates.RIGHT_HAND_Z_UP, static=True)

    def _setup_layout(self) -> None:
        blueprint = rrb.Blueprint(rrb.Spatial3DView(name="Map", origin="world"))
        rr.send_blueprint(blueprint)

    def attach(self, transport: Transport) -> None:
        """Subscribe to the output channels of a bridge."""
        handlers = {
            MAP_POINTS_CHANNEL: self.log_map_points,
            MAP_DATA_CHANNEL: self.log_map_data,
            VISIBLE_LANDMARKS_CHANNEL: self.log_visible_landmarks,
            VISIBLE_LANDMARKS_POSE_CHANNEL: self.log_query_pose,
            TF_CHANNEL: self.log_transform,
        }
        for channel, handler in handlers.items():
            self._subscriptions.append(transport.subscribe(channel, handler))

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()

    def log_map_points(self, cloud: PointCloud, entity_path: str = "world/map") -> None:
        """Log the map point cloud colored by height."""
        positions = cloud.points[np.isfinite(cloud.points).all(axis=1)]
        if len(positions) == 0:
            return

        rr.set_time("timestamp", duration=cloud.header.stamp_s)

        heights = positions[:, 2]
        h_min, h_max = np.percentile(heights, [5, 95])
        h_range = max(h_max - h_min, 0.1)
        normalized = np.clip((heights - h_min) / h_range, 0, 1)

        # Purple to white gradient
        colors = np.zeros((len(positions), 3), dtype=np.uint8)
        colors[:, 0] = (128 + normalized * 127).astype(np.uint8)
        colors[:, 1] = (normalized * 255).astype(np.uint8)
        colors[:, 2] = (255 - normalized * 127).astype(np.uint8)

        rr.log(entity_path, rr.Points3D(positions, colors=colors, radii=0.03))

    def log_map_data(self, data: MapData, entity_path: str = "world/keyframes") -> None:
        """Log keyframe positions as a line strip."""
        if len(data.keyframes) < 2:
            return

        rr.set_time("timestamp", duration=data.header.stamp_s)
        positions = np.array([kf.pose.position for kf in data.keyframes])
        rr.log(
            entity_path,
            rr.LineStrips3D([positions], colors=[[255, 255, 0]], radii=0.01),
        )

    def log_visible_landmarks(
        self, cloud: PointCloud, entity_path: str = "world/query/landmarks"
    ) -> None:
        rr.set_time("timestamp", duration=cloud.header.stamp_s)
        rr.log(entity_path, rr.Points3D(cloud.points, colors=[[255, 0, 0]], radii=0.05))

    def log_query_pose(
        self, msg: PoseStamped, entity_path: str = "world/query/pose"
    ) -> None:
        T = msg.pose.to_se3()
        rr.set_time("timestamp", duration=msg.header.stamp_s)
        rr.log(entity_path, rr.Transform3D(translation=T.translation, mat3x3=T.rotation))

    def log_transform(self, msg: TransformStamped, entity_path: str | None = None) -> None:
        """Log a broadcast transform under ``world/<child frame>``."""
        if entity_path is None:
            entity_path = f"world/{msg.child_frame_id}"
        T = msg.transform
        rr.set_time("timestamp", duration=msg.header.stamp_s)
        rr.log(entity_path, rr.Transform3D(translation=T.translation, mat3x3=T.rotation))
