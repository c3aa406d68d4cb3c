"""Stereo SLAM node wiring sensor streams, the engine and the publishers.

StereoSlamNode is the composition root. It subscribes to the camera, IMU
and odometry channels, pairs stereo images, drives the engine through the
gateway, broadcasts the map transform, runs the periodic publications and
serves the map data and landmarks-in-view requests.

Every entry point may be invoked from any thread by the transport.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable

from .config import BridgeConfig
from .engine import SlamEngine
from .exceptions import EngineClosedError
from .gateway import EngineGateway
from .geometry import FrameConvention
from .ingest import SensorStreamIngest
from .messages import (
    GetLandmarksInViewRequest,
    GetLandmarksInViewResponse,
    GetMapRequest,
    GetMapResponse,
    ImageMessage,
    StereoFramePair,
)
from .scheduler import PublicationScheduler
from .services import (
    GET_LANDMARKS_IN_VIEW_SERVICE,
    GET_MAP_DATA_SERVICE,
    LandmarkVisibilityQuery,
    MapDataService,
)
from .sync import FrameSynchronizer
from .tracking import TrackingResult, TrackingStateManager
from .transforms import TransformComposer
from .transport import Subscription, Transport

if TYPE_CHECKING:
    from .visualization import RerunVisualizer

logger = logging.getLogger(__name__)


class StereoSlamNode:
    """Orchestrates a stereo SLAM engine behind a message transport.

    Args:
        engine: SLAM engine; owned by the node from now on
        transport: Message transport delivering inputs and taking outputs
        config: Bridge options (defaults if omitted)
        visualizer: Optional Rerun visualizer, attached when
            ``config.visualization`` is true
        clock: Wall clock in nanoseconds used to stamp snapshots
        monotonic: Monotonic clock in seconds for rates and throttling
    """

    def __init__(
        self,
        engine: SlamEngine,
        transport: Transport,
        config: BridgeConfig | None = None,
        visualizer: RerunVisualizer | None = None,
        clock: Callable[[], int] = time.time_ns,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else BridgeConfig()
        cfg = self.config
        self._transport = transport
        self._visualizer = visualizer if cfg.visualization else None

        frames = FrameConvention(cfg.robot_x, cfg.robot_y)
        composer = TransformComposer(
            frames,
            global_frame=cfg.global_frame,
            odom_frame=cfg.odom_frame,
            robot_base_frame=cfg.robot_base_frame,
        )
        self._gateway = EngineGateway(
            engine, composer, frames, global_frame=cfg.global_frame, clock=clock
        )
        self._state = TrackingStateManager(clock=monotonic)

        self._sync = FrameSynchronizer(
            self.on_stereo, queue_size=cfg.sync_queue_size, slop_ns=cfg.sync_slop_ns
        )
        self._ingest = SensorStreamIngest(
            self._gateway,
            self._state,
            no_odometry_mode=cfg.no_odometry_mode,
            publish_tf=cfg.publish_tf,
            warning_period=cfg.odom_warning_period,
            clock=monotonic,
        )
        self._scheduler = PublicationScheduler(
            self._gateway,
            self._state,
            transport,
            map_data_interval=cfg.map_data_interval,
            point_cloud_interval=cfg.landmark_interval,
            publish_point_cloud=cfg.ros_visualization,
        )
        self._map_service = MapDataService(self._gateway)
        self._landmark_query = LandmarkVisibilityQuery(
            self._gateway,
            transport,
            global_frame=cfg.global_frame,
            max_count=cfg.landmark_max_count,
            radius=cfg.landmark_radius,
            fov=cfg.landmark_fov,
            clock=clock,
        )

        self._subscriptions: list[Subscription] = []
        self._services: list[str] = []
        self._running = False
        self._stats_lock = threading.Lock()
        self.num_frames = 0
        self.num_transforms = 0

    def start(self) -> None:
        """Subscribe to the inputs, expose the services and start the timers."""
        if self._running:
            return
        cfg = self.config

        if self._visualizer is not None:
            self._visualizer.attach(self._transport)

        self._scheduler.start()

        for name, handler in (
            (GET_MAP_DATA_SERVICE, self.get_map_data),
            (GET_LANDMARKS_IN_VIEW_SERVICE, self.get_landmarks_in_view),
        ):
            self._transport.register_service(name, handler)
            self._services.append(name)

        for channel, callback in (
            (cfg.left_image_topic_name, self.on_left_image),
            (cfg.right_image_topic_name, self.on_right_image),
            (cfg.imu_topic_name, self._ingest.on_imu),
            (cfg.odom_topic_name, self._ingest.on_odometry),
        ):
            self._subscriptions.append(self._transport.subscribe(channel, callback))

        self._running = True
        logger.info(
            "Stereo SLAM node started (no_odometry_mode=%s, publish_tf=%s)",
            cfg.no_odometry_mode,
            cfg.publish_tf,
        )

    def shutdown(self) -> None:
        """Stop inputs first, then publishers and services, then the engine."""
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()

        self._scheduler.stop()

        for name in self._services:
            self._transport.unregister_service(name)
        self._services.clear()

        if self._visualizer is not None:
            self._visualizer.detach()

        self._gateway.shutdown()
        self._running = False
        logger.info("Stereo SLAM node stopped")

    def on_left_image(self, msg: ImageMessage) -> None:
        self._sync.add_left(msg)

    def on_right_image(self, msg: ImageMessage) -> None:
        self._sync.add_right(msg)

    def on_stereo(self, pair: StereoFramePair) -> TrackingResult:
        """Track one stereo pair and broadcast the map transform on success."""
        logger.debug("Stereo frame at %d", pair.stamp_ns)
        with self._stats_lock:
            self.num_frames += 1

        result = self._gateway.track(pair)
        if not result.success:
            return result

        if self._state.record(result):
            logger.info("Tracking started at %d", result.stamp_ns)

        if self.config.publish_tf:
            if self.config.no_odometry_mode:
                try:
                    transform = self._gateway.map_to_robot(pair.left.header, result.pose)
                except EngineClosedError:
                    return result
                if transform is not None:
                    self._state.latest_transform = transform

            # In composed mode the transform exists only once odometry arrived.
            transform = self._state.latest_transform
            if transform is not None:
                self._transport.broadcast_transform(transform)
                with self._stats_lock:
                    self.num_transforms += 1

        return result

    def get_map_data(self, request: GetMapRequest) -> GetMapResponse:
        return self._map_service(request)

    def get_landmarks_in_view(
        self, request: GetLandmarksInViewRequest
    ) -> GetLandmarksInViewResponse:
        return self._landmark_query(request)

    @property
    def tracked(self) -> bool:
        return self._state.tracked

    @property
    def state(self) -> TrackingStateManager:
        return self._state

    @property
    def scheduler(self) -> PublicationScheduler:
        return self._scheduler

    @property
    def synchronizer(self) -> FrameSynchronizer:
        return self._sync

    @property
    def ingest(self) -> SensorStreamIngest:
        return self._ingest

    @property
    def gateway(self) -> EngineGateway:
        return self._gateway

    @property
    def is_running(self) -> bool:
        return self._running

    def __enter__(self) -> StereoSlamNode:
        """Context manager entry - starts the node."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - shuts the node down."""
        self.shutdown()
