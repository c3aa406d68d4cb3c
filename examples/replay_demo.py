#!/usr/bin/env python3
"""Demo script replaying EuRoC through the bridge with a toy engine.

The toy engine "tracks" by moving the camera forward a little on every
frame and keeps a fixed cloud of landmarks in front of it. It exercises
the whole bridge without a real SLAM system:
- Stereo pairing of the cam0/cam1 streams
- map->base_link transform broadcast after each track
- Periodic map data and map point cloud publication
- A landmarks-in-view query at the end

Usage:
    uv run python examples/replay_demo.py

Requirements:
    - EuRoC dataset downloaded to data/euroc/MH_01_easy/mav0/
"""

import logging

import numpy as np

from slam_bridge import (
    SE3,
    BridgeConfig,
    DatasetReplay,
    EngineKeyframe,
    EngineMapPoint,
    EurocImuReader,
    EurocStereoReader,
    GetLandmarksInViewRequest,
    InProcessTransport,
    Pose,
    SlamEngine,
    StereoSlamNode,
)
from slam_bridge.services import GET_LANDMARKS_IN_VIEW_SERVICE
from slam_bridge.visualization import RerunVisualizer


class ToyEngine(SlamEngine):
    """Constant-velocity camera in front of a random landmark field."""

    def __init__(self, step: float = 0.02, n_points: int = 2000) -> None:
        rng = np.random.default_rng(0)
        self._points = [
            EngineMapPoint(id=i, position=p)
            for i, p in enumerate(rng.uniform([-5, -2, 0], [5, 2, 30], size=(n_points, 3)))
        ]
        self._step = step
        self._z = 0.0
        self._frames = 0
        self._keyframes: list[EngineKeyframe] = []
        self.num_imu = 0

    def track_stereo(self, left, right, timestamp_s):
        self._z += self._step
        self._frames += 1
        pose = SE3(np.eye(3), [0.0, 0.0, self._z])
        if self._frames % 10 == 1:  # every 10th frame is a keyframe
            self._keyframes.append(
                EngineKeyframe(len(self._keyframes), int(timestamp_s * 1e9), pose)
            )
        return pose

    def grab_imu(self, sample):
        self.num_imu += 1

    def keyframes(self, current_map_only):
        return list(self._keyframes)

    def map_points(self, tracked_points_only, keyframe_id=None):
        return list(self._points)

    def current_map_points(self):
        return np.stack([p.position for p in self._points])

    def points_visible_from(self, pose, max_count, max_distance, fov):
        return [
            p
            for p in self._points
            if np.linalg.norm(p.position - pose.translation) <= max_distance
        ]


def main() -> None:
    """Run the replay demo."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Configuration
    dataset_path = "data/euroc/MH_01_easy/mav0"
    max_frames = 300  # Set to None for all frames

    config = BridgeConfig(map_data_publish_frequency=500, landmark_publish_frequency=500)
    transport = InProcessTransport()
    visualizer = RerunVisualizer("slam-bridge-demo")

    stereo = EurocStereoReader(dataset_path)
    imu = EurocImuReader(dataset_path)
    print(f"Replaying {len(stereo)} stereo frames and {len(imu)} IMU samples...")

    with StereoSlamNode(ToyEngine(), transport, config, visualizer=visualizer) as node:
        DatasetReplay(stereo, transport, config, imu=imu, rate=1.0).run(max_frames)

        response = transport.call_service(
            GET_LANDMARKS_IN_VIEW_SERVICE,
            GetLandmarksInViewRequest(pose=Pose(position=[config.robot_x, config.robot_y, 0.0])),
        )
        print(f"Landmarks in view of the start pose: {len(response.map_points)}")
        print(f"Frames: {node.num_frames}, transforms: {node.num_transforms}")

    print()
    print("Done! Check the Rerun viewer for visualization.")


if __name__ == "__main__":
    main()
