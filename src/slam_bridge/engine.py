"""Interface of the external SLAM engine.

The bridge never implements tracking or mapping itself. A concrete engine
(an ORB-SLAM style system, a learned tracker, a simulator) subclasses
:class:`SlamEngine` and is handed to :class:`~slam_bridge.gateway.EngineGateway`,
which becomes its only caller.

All poses and positions crossing this interface are in the engine's own
optical world frame (X-right, Y-down, Z-forward).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from .geometry import SE3


@dataclass
class EngineKeyframe:
    """Keyframe as reported by the engine.

    Attributes:
        id: Engine keyframe id
        timestamp_ns: Capture time of the keyframe
        pose: T_world_camera in the engine frame
        map_point_ids: Landmarks observed by the keyframe
    """

    id: int
    timestamp_ns: int
    pose: SE3
    map_point_ids: list[int] = field(default_factory=list)


@dataclass
class EngineMapPoint:
    """Landmark as reported by the engine."""

    id: int
    position: np.ndarray  # (3,) engine world position

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).flatten()


@dataclass
class ImuSample:
    """Inertial sample in the engine's units (seconds, rad/s, m/s²)."""

    timestamp_s: float
    gyroscope: np.ndarray
    accelerometer: np.ndarray


class SlamEngine(ABC):
    """Stereo(-inertial) SLAM engine consumed by the bridge.

    Implementations need not be thread-safe except for :meth:`grab_imu`,
    which may be called concurrently with any other method and must append
    to an internal buffer without blocking.
    """

    @abstractmethod
    def track_stereo(
        self, left: np.ndarray, right: np.ndarray, timestamp_s: float
    ) -> SE3 | None:
        """Track one stereo frame.

        Args:
            left: Left grayscale image
            right: Right grayscale image
            timestamp_s: Capture time in seconds

        Returns:
            T_world_camera on success, None if no pose is available
        """

    @abstractmethod
    def grab_imu(self, sample: ImuSample) -> None:
        """Append an inertial sample to the engine's buffer."""

    @abstractmethod
    def keyframes(self, current_map_only: bool) -> list[EngineKeyframe]:
        """Return keyframes of the active map (or of all maps)."""

    @abstractmethod
    def map_points(
        self, tracked_points_only: bool, keyframe_id: int | None = None
    ) -> list[EngineMapPoint]:
        """Return landmarks.

        Args:
            tracked_points_only: Only points tracked in the last frame
            keyframe_id: Only points observed by this keyframe
        """

    @abstractmethod
    def current_map_points(self) -> np.ndarray:
        """Return (N, 3) positions of the active map's landmarks."""

    @abstractmethod
    def points_visible_from(
        self, pose: SE3, max_count: int, max_distance: float, fov: float
    ) -> list[EngineMapPoint]:
        """Return landmarks visible from a camera pose.

        Args:
            pose: T_world_camera in the engine frame
            max_count: Maximum number of landmarks
            max_distance: Maximum distance from the camera
            fov: Field-of-view parameter (engine-defined)
        """

    def shutdown(self) -> None:
        """Release engine resources. Default does nothing."""
