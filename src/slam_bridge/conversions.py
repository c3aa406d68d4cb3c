"""Conversions between engine data and transport messages."""

from __future__ import annotations

import cv2
import numpy as np

from .engine import EngineKeyframe, EngineMapPoint, ImuSample
from .geometry import FrameConvention
from .messages import (
    Header,
    ImageMessage,
    ImuMessage,
    KeyframeMsg,
    MapPointMsg,
    PointCloud,
    Pose,
)

_COLOR_CODES = {
    "bgr8": cv2.COLOR_BGR2GRAY,
    "rgb8": cv2.COLOR_RGB2GRAY,
    "bgra8": cv2.COLOR_BGRA2GRAY,
    "rgba8": cv2.COLOR_RGBA2GRAY,
}


def image_to_gray(msg: ImageMessage) -> np.ndarray:
    """Return the image as a contiguous 8-bit grayscale array.

    Raises:
        ValueError: If the encoding or buffer shape is not supported
    """
    data = np.asarray(msg.data)
    if msg.encoding == "mono8" or data.ndim == 2:
        if data.ndim != 2:
            raise ValueError(f"mono8 image must be 2D, got shape {data.shape}")
        return np.ascontiguousarray(data, dtype=np.uint8)

    code = _COLOR_CODES.get(msg.encoding)
    if code is None:
        raise ValueError(f"Unsupported image encoding: {msg.encoding}")
    return cv2.cvtColor(np.ascontiguousarray(data, dtype=np.uint8), code)


def imu_to_sample(msg: ImuMessage) -> ImuSample:
    return ImuSample(
        timestamp_s=msg.header.stamp_s,
        gyroscope=msg.angular_velocity.copy(),
        accelerometer=msg.linear_acceleration.copy(),
    )


def keyframe_to_msg(kf: EngineKeyframe, frames: FrameConvention) -> KeyframeMsg:
    return KeyframeMsg(
        id=kf.id,
        stamp_ns=kf.timestamp_ns,
        pose=Pose.from_se3(frames.engine_to_map_pose(kf.pose)),
        map_point_ids=list(kf.map_point_ids),
    )


def map_points_to_msgs(
    points: list[EngineMapPoint], frames: FrameConvention
) -> list[MapPointMsg]:
    """Convert engine landmarks to map-frame messages, preserving order."""
    if not points:
        return []
    positions = frames.engine_to_map_points(np.stack([p.position for p in points]))
    return [MapPointMsg(id=p.id, position=pos) for p, pos in zip(points, positions)]


def to_point_cloud(positions: np.ndarray, header: Header) -> PointCloud:
    return PointCloud(header=header, points=np.asarray(positions).reshape(-1, 3))


def msgs_to_point_cloud(points: list[MapPointMsg], header: Header) -> PointCloud:
    if not points:
        return PointCloud(header=header)
    return to_point_cloud(np.stack([p.position for p in points]), header)
