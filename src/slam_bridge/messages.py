"""Message types exchanged over the transport.

These dataclasses define the channel schemas consumed and produced by the
bridge: sensor inputs (images, IMU, odometry), periodic outputs (map data,
point clouds), transforms and the request/response pairs of the services.
Arrays are plain numpy so that messages stay cheap to copy and pickle.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .geometry import SE3


@dataclass
class Header:
    """Timestamp (nanoseconds) and coordinate frame of a message."""

    stamp_ns: int = 0
    frame_id: str = ""

    @property
    def stamp_s(self) -> float:
        """Timestamp in seconds."""
        return self.stamp_ns * 1e-9


@dataclass
class ImageMessage:
    """Single camera image.

    Attributes:
        header: Capture time and camera frame
        data: (H, W) grayscale or (H, W, 3) image buffer
        encoding: Pixel encoding, ``mono8``, ``bgr8`` or ``rgb8``
    """

    header: Header
    data: np.ndarray
    encoding: str = "mono8"

    @property
    def stamp_ns(self) -> int:
        return self.header.stamp_ns


@dataclass
class StereoFramePair:
    """Time-aligned left/right images used for one tracking step."""

    left: ImageMessage
    right: ImageMessage

    @property
    def stamp_ns(self) -> int:
        """Stamp of the pair (the left image drives the tracking step)."""
        return self.left.header.stamp_ns

    @property
    def skew_ns(self) -> int:
        """Absolute stamp difference between the two images."""
        return abs(self.left.header.stamp_ns - self.right.header.stamp_ns)


@dataclass
class ImuMessage:
    """Inertial sample.

    Attributes:
        header: Sample time
        angular_velocity: (wx, wy, wz) in rad/s
        linear_acceleration: (ax, ay, az) in m/s²
    """

    header: Header
    angular_velocity: np.ndarray
    linear_acceleration: np.ndarray

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape."""
        self.angular_velocity = np.asarray(
            self.angular_velocity, dtype=np.float64
        ).flatten()
        self.linear_acceleration = np.asarray(
            self.linear_acceleration, dtype=np.float64
        ).flatten()


@dataclass
class Pose:
    """Position plus orientation quaternion in (x, y, z, w) order."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0])
    )

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).flatten()
        self.orientation = np.asarray(self.orientation, dtype=np.float64).flatten()

    @classmethod
    def from_se3(cls, T: SE3) -> Pose:
        return cls(position=T.translation.copy(), orientation=T.to_quaternion())

    def to_se3(self) -> SE3:
        return SE3.from_quaternion(self.orientation, self.position)

    def is_finite(self) -> bool:
        """True if every component is finite and the quaternion is non-zero."""
        return bool(
            self.position.shape == (3,)
            and self.orientation.shape == (4,)
            and np.isfinite(self.position).all()
            and np.isfinite(self.orientation).all()
            and np.linalg.norm(self.orientation) > 1e-9
        )


@dataclass
class PoseStamped:
    header: Header
    pose: Pose


@dataclass
class OdometryMessage:
    """Odometry estimate of the robot base in the odometry frame.

    Attributes:
        header: Stamp and odometry (parent) frame
        child_frame_id: Robot base frame the pose refers to
        pose: T_odom_base
        covariance: 6x6 pose covariance (x, y, z, roll, pitch, yaw)
    """

    header: Header
    pose: Pose
    child_frame_id: str = ""
    covariance: np.ndarray = field(default_factory=lambda: np.zeros((6, 6)))


@dataclass
class TransformStamped:
    """Transform from ``header.frame_id`` (parent) to ``child_frame_id``."""

    header: Header
    child_frame_id: str
    transform: SE3


@dataclass
class PointCloud:
    """Unordered 3D point set.

    Attributes:
        header: Stamp and frame of the points
        points: (N, 3) float32 positions
    """

    header: Header
    points: np.ndarray = field(
        default_factory=lambda: np.empty((0, 3), dtype=np.float32)
    )

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float32).reshape(-1, 3)

    @property
    def data(self) -> bytes:
        """Packed little-endian xyz buffer (empty when there are no points)."""
        return self.points.astype("<f4").tobytes()

    @property
    def width(self) -> int:
        return len(self.points)

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class MapPointMsg:
    """A landmark position in the global frame."""

    id: int
    position: np.ndarray

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).flatten()


@dataclass
class KeyframeMsg:
    """A keyframe pose in the global frame."""

    id: int
    stamp_ns: int
    pose: Pose
    map_point_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class MapData:
    """Snapshot of the engine map.

    Attributes:
        header: Snapshot time and global frame
        keyframes: Keyframes of the snapshot
        map_points: Landmarks of the snapshot
        current_map_only: Only the active map's keyframes were included
        tracked_points_only: Only points tracked in the current frame
        keyframe_id: If set, points were limited to those seen by this keyframe
    """

    header: Header
    keyframes: tuple[KeyframeMsg, ...] = ()
    map_points: tuple[MapPointMsg, ...] = ()
    current_map_only: bool = False
    tracked_points_only: bool = False
    keyframe_id: int | None = None

    @property
    def num_points(self) -> int:
        return len(self.map_points)


@dataclass
class GetMapRequest:
    tracked_points_only: bool = False
    keyframe_id: int | None = None


@dataclass
class GetMapResponse:
    data: MapData


@dataclass
class GetLandmarksInViewRequest:
    pose: Pose


@dataclass
class GetLandmarksInViewResponse:
    map_points: list[MapPointMsg] = field(default_factory=list)
