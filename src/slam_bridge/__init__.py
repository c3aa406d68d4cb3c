"""slam-bridge - orchestration layer between sensor streams and a SLAM engine."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import BridgeConfig
from .engine import EngineKeyframe, EngineMapPoint, ImuSample, SlamEngine
from .exceptions import (
    ConfigError,
    EngineAccessError,
    EngineClosedError,
    InvalidRequestError,
    SlamBridgeError,
)
from .gateway import EngineGateway
from .geometry import SE3, FrameConvention
from .ingest import SensorStreamIngest, WarningThrottle
from .io import EurocCameraReader, EurocImuReader, EurocStereoReader
from .messages import (
    GetLandmarksInViewRequest,
    GetLandmarksInViewResponse,
    GetMapRequest,
    GetMapResponse,
    Header,
    ImageMessage,
    ImuMessage,
    KeyframeMsg,
    MapData,
    MapPointMsg,
    OdometryMessage,
    PointCloud,
    Pose,
    PoseStamped,
    StereoFramePair,
    TransformStamped,
)
from .node import StereoSlamNode
from .replay import DatasetReplay, ReplayStats
from .scheduler import PeriodicTask, PublicationScheduler
from .services import LandmarkVisibilityQuery, MapDataService
from .sync import FrameSynchronizer
from .tracking import (
    FrequencyCounter,
    TrackingResult,
    TrackingStateManager,
    TrackingStatus,
)
from .transforms import TransformComposer
from .transport import InProcessTransport, Subscription, Transport

__all__ = [
    "__version__",
    # Node
    "StereoSlamNode",
    "BridgeConfig",
    # Engine
    "SlamEngine",
    "EngineGateway",
    "EngineKeyframe",
    "EngineMapPoint",
    "ImuSample",
    # Orchestration
    "FrameSynchronizer",
    "SensorStreamIngest",
    "WarningThrottle",
    "TrackingStateManager",
    "TrackingStatus",
    "TrackingResult",
    "FrequencyCounter",
    "TransformComposer",
    "PublicationScheduler",
    "PeriodicTask",
    "MapDataService",
    "LandmarkVisibilityQuery",
    # Transport
    "Transport",
    "InProcessTransport",
    "Subscription",
    # Geometry
    "SE3",
    "FrameConvention",
    # Messages
    "Header",
    "ImageMessage",
    "StereoFramePair",
    "ImuMessage",
    "OdometryMessage",
    "Pose",
    "PoseStamped",
    "TransformStamped",
    "PointCloud",
    "MapData",
    "KeyframeMsg",
    "MapPointMsg",
    "GetMapRequest",
    "GetMapResponse",
    "GetLandmarksInViewRequest",
    "GetLandmarksInViewResponse",
    # Dataset replay
    "EurocCameraReader",
    "EurocStereoReader",
    "EurocImuReader",
    "DatasetReplay",
    "ReplayStats",
    # Errors
    "SlamBridgeError",
    "ConfigError",
    "InvalidRequestError",
    "EngineAccessError",
    "EngineClosedError",
]
