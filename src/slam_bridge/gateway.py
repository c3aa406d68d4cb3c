"""Serialized access to the external SLAM engine.

EngineGateway owns the engine instance. Tracking, transform derivation,
map snapshots and landmark queries all run under one lock, so none of them
ever overlaps another. Inertial samples are the exception: they go straight
into the engine's own append-only buffer so that the IMU callback never
waits for a tracking step.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from .conversions import (
    image_to_gray,
    imu_to_sample,
    keyframe_to_msg,
    map_points_to_msgs,
    to_point_cloud,
)
from .engine import SlamEngine
from .exceptions import EngineAccessError, EngineClosedError
from .geometry import SE3, FrameConvention
from .messages import (
    Header,
    ImuMessage,
    MapData,
    MapPointMsg,
    OdometryMessage,
    PointCloud,
    Pose,
    StereoFramePair,
    TransformStamped,
)
from .tracking import TrackingResult
from .transforms import TransformComposer

logger = logging.getLogger(__name__)


class EngineGateway:
    """The only component allowed to call into the engine.

    Args:
        engine: Engine instance; ownership passes to the gateway
        composer: Builds transforms from the last tracked pose
        frames: Engine-to-map frame convention for snapshots and queries
        global_frame: Frame id stamped on snapshots
        clock: Returns the current time in nanoseconds
    """

    def __init__(
        self,
        engine: SlamEngine,
        composer: TransformComposer,
        frames: FrameConvention,
        global_frame: str = "map",
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self._engine = engine
        self._composer = composer
        self._frames = frames
        self._global_frame = global_frame
        self._clock = clock

        self._lock = threading.Lock()
        self._owner: int | None = None
        self._closed = False
        self._last_pose: SE3 | None = None

    @contextmanager
    def _exclusive(self, blocking: bool = True) -> Iterator[bool]:
        """Hold the engine lock for the duration of the block.

        Yields False without entering when ``blocking`` is False and the
        engine is busy.

        Raises:
            EngineAccessError: If the calling thread already holds the lock
            EngineClosedError: If the gateway has been shut down
        """
        if self._owner == threading.get_ident():
            raise EngineAccessError("Engine re-entered from inside an engine call")

        if not self._lock.acquire(blocking=blocking):
            yield False
            return

        try:
            assert self._owner is None, "engine lock held by two threads"
            self._owner = threading.get_ident()
            if self._closed:
                raise EngineClosedError("Engine has been shut down")
            yield True
        finally:
            self._owner = None
            self._lock.release()

    def _header(self) -> Header:
        return Header(stamp_ns=self._clock(), frame_id=self._global_frame)

    def track(self, pair: StereoFramePair) -> TrackingResult:
        """Run one stereo tracking step.

        An unsuccessful step is a normal outcome: the engine has no pose for
        this frame. Engine exceptions are logged and reported the same way.
        """
        stamp_ns = pair.stamp_ns
        try:
            left = image_to_gray(pair.left)
            right = image_to_gray(pair.right)
        except ValueError:
            logger.exception("Cannot convert stereo frame at %d", stamp_ns)
            return TrackingResult(success=False, pose=None, stamp_ns=stamp_ns)

        try:
            with self._exclusive():
                try:
                    pose = self._engine.track_stereo(
                        left, right, pair.left.header.stamp_s
                    )
                except Exception:
                    logger.exception("Engine failed to track frame at %d", stamp_ns)
                    pose = None
                if pose is not None:
                    self._last_pose = pose
        except EngineClosedError:
            logger.debug("Dropping stereo frame at %d after shutdown", stamp_ns)
            pose = None

        return TrackingResult(success=pose is not None, pose=pose, stamp_ns=stamp_ns)

    def grab_imu(self, msg: ImuMessage) -> None:
        """Hand an inertial sample to the engine without taking the lock."""
        if self._closed:
            logger.debug("Dropping IMU sample at %d after shutdown", msg.header.stamp_ns)
            return
        try:
            self._engine.grab_imu(imu_to_sample(msg))
        except Exception:
            logger.exception("Engine rejected IMU sample at %d", msg.header.stamp_ns)

    def map_to_robot(
        self, header: Header, pose: SE3 | None = None
    ) -> TransformStamped | None:
        """Direct map->robot transform.

        Args:
            header: Stamp of the transform
            pose: Engine camera pose; defaults to the last tracked pose
        """
        with self._exclusive():
            pose = pose if pose is not None else self._last_pose
            if pose is None:
                return None
            return self._composer.direct(pose, header)

    def map_to_odom(self, odom: OdometryMessage) -> TransformStamped | None:
        """map->odom transform composed with an odometry sample."""
        with self._exclusive():
            if self._last_pose is None:
                return None
            return self._composer.composed(self._last_pose, odom)

    def snapshot_map(
        self,
        current_map_only: bool,
        tracked_points_only: bool,
        keyframe_id: int | None = None,
        blocking: bool = True,
    ) -> MapData | None:
        """Capture keyframes and landmarks as an immutable MapData.

        Engine data is converted into new messages before the lock is
        released, so the snapshot never aliases engine-owned buffers.

        Returns:
            MapData, or None if ``blocking`` is False and the engine is busy
        """
        with self._exclusive(blocking) as entered:
            if not entered:
                return None
            keyframes = self._engine.keyframes(current_map_only)
            points = self._engine.map_points(tracked_points_only, keyframe_id)
            return MapData(
                header=self._header(),
                keyframes=tuple(keyframe_to_msg(kf, self._frames) for kf in keyframes),
                map_points=tuple(map_points_to_msgs(points, self._frames)),
                current_map_only=current_map_only,
                tracked_points_only=tracked_points_only,
                keyframe_id=keyframe_id,
            )

    def current_map_points(self, blocking: bool = True) -> PointCloud | None:
        """Point cloud of the active map in the global frame.

        Returns:
            PointCloud, or None if ``blocking`` is False and the engine is busy
        """
        with self._exclusive(blocking) as entered:
            if not entered:
                return None
            positions = self._engine.current_map_points()
            return to_point_cloud(
                self._frames.engine_to_map_points(positions), self._header()
            )

    def visible_landmarks(
        self, pose: Pose, max_count: int, max_distance: float, fov: float
    ) -> list[MapPointMsg]:
        """Landmarks visible from a robot pose given in the global frame.

        Never returns more than ``max_count`` landmarks.
        """
        T_world_camera = self._frames.map_to_engine_pose(pose.to_se3())
        with self._exclusive():
            points = self._engine.points_visible_from(
                T_world_camera, max_count, max_distance, fov
            )
            return map_points_to_msgs(points[:max_count], self._frames)

    def shutdown(self) -> None:
        """Shut the engine down. Later engine calls raise EngineClosedError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._engine.shutdown()
        logger.info("Engine shut down")

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def last_pose(self) -> SE3 | None:
        """Last successfully tracked T_world_camera (engine frame)."""
        return self._last_pose
