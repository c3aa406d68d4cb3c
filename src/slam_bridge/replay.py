"""Replay of a recorded EuRoC sequence through a transport."""

from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from .config import BridgeConfig
from .io import EurocImuReader, EurocStereoReader
from .transport import Transport

logger = logging.getLogger(__name__)

# IMU samples go out before images with the same stamp.
_IMU, _LEFT, _RIGHT = 0, 1, 2


@dataclass
class ReplayStats:
    """Counts of messages published by a replay."""

    num_left: int = 0
    num_right: int = 0
    num_imu: int = 0
    wall_time_s: float = 0.0


class DatasetReplay:
    """Publishes the streams of a dataset in timestamp order.

    Left images, right images and IMU samples are merged into one timeline
    and published on the channels named in the config, so the receiving
    node sees the same kind of independent, interleaved arrivals it sees
    from live sensors.

    Args:
        stereo: Camera streams
        transport: Transport to publish on
        config: Supplies the channel names
        imu: Optional IMU stream
        rate: Playback speed relative to recording time; 0 publishes as
            fast as possible
        sleep: Sleep function used to pace playback
    """

    def __init__(
        self,
        stereo: EurocStereoReader,
        transport: Transport,
        config: BridgeConfig,
        imu: EurocImuReader | None = None,
        rate: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate < 0:
            raise ValueError(f"rate must be >= 0, got {rate}")
        self._stereo = stereo
        self._transport = transport
        self._config = config
        self._imu = imu
        self._rate = rate
        self._sleep = sleep

    def _timeline(self) -> Iterator[tuple[int, int, Any]]:
        """Yield (stamp_ns, kind, payload); images are loaded lazily by index."""
        streams = [
            ((ts, _LEFT, i) for i, ts in enumerate(self._stereo.left.timestamps)),
            ((ts, _RIGHT, i) for i, ts in enumerate(self._stereo.right.timestamps)),
        ]
        if self._imu is not None:
            streams.append(
                ((msg.header.stamp_ns, _IMU, msg) for msg in self._imu)
            )
        return heapq.merge(*streams, key=lambda event: (event[0], event[1]))

    def run(self, max_frames: int | None = None) -> ReplayStats:
        """Publish the dataset.

        Args:
            max_frames: Stop once this many left images have been published

        Returns:
            ReplayStats of the published messages
        """
        cfg = self._config
        stats = ReplayStats()
        started = time.monotonic()
        previous_ns: int | None = None

        for stamp_ns, kind, payload in self._timeline():
            if kind == _LEFT and max_frames is not None and stats.num_left >= max_frames:
                break

            if self._rate > 0 and previous_ns is not None and stamp_ns > previous_ns:
                self._sleep((stamp_ns - previous_ns) * 1e-9 / self._rate)
            previous_ns = stamp_ns

            if kind == _IMU:
                self._transport.publish(cfg.imu_topic_name, payload)
                stats.num_imu += 1
            elif kind == _LEFT:
                self._transport.publish(
                    cfg.left_image_topic_name, self._stereo.left.load(payload)
                )
                stats.num_left += 1
            else:
                self._transport.publish(
                    cfg.right_image_topic_name, self._stereo.right.load(payload)
                )
                stats.num_right += 1

        stats.wall_time_s = time.monotonic() - started
        logger.info(
            "Replayed %d left, %d right, %d IMU messages in %.1fs",
            stats.num_left,
            stats.num_right,
            stats.num_imu,
            stats.wall_time_s,
        )
        return stats
