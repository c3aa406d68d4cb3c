"""Periodic publication of map data and map point clouds.

Each publication runs on its own timer thread. A tick only reads an engine
snapshot, but it still goes through the gateway lock, so it never overlaps
tracking, transform derivation, a service call or the other timer. When the
engine is busy the tick is skipped and the next tick tries again; ticks
never queue up behind each other.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .gateway import EngineGateway
from .tracking import TrackingStateManager
from .transport import Transport

logger = logging.getLogger(__name__)

MAP_DATA_CHANNEL = "map_data"
MAP_POINTS_CHANNEL = "map_points"


class PeriodicTask:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread.

    The next wait starts when the callback returns, so a slow callback
    delays the following tick instead of stacking ticks.

    Args:
        name: Thread name
        interval: Seconds between ticks
        callback: Work to run on each tick
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], object]) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.ticks = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.ticks += 1
            try:
                self._callback()
            except Exception:
                logger.exception("Periodic task '%s' failed", self.name)

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the timer and wait for a running tick to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Periodic task '%s' did not stop in %.1fs", self.name, timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class PublicationScheduler:
    """Owns the map data and map point cloud timers.

    Both publications are gated on the tracking state: nothing is published
    before the first successful track.

    Args:
        gateway: Engine access point
        state: Tracking state and frequency counter
        transport: Destination of the publications
        map_data_interval: Seconds between map data publications
        point_cloud_interval: Seconds between point cloud publications
        publish_point_cloud: Create the point cloud timer at all
    """

    def __init__(
        self,
        gateway: EngineGateway,
        state: TrackingStateManager,
        transport: Transport,
        map_data_interval: float = 1.0,
        point_cloud_interval: float = 1.0,
        publish_point_cloud: bool = True,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._transport = transport

        self._tasks = [PeriodicTask("map-data", map_data_interval, self.run_map_data_once)]
        if publish_point_cloud:
            self._tasks.append(
                PeriodicTask("map-points", point_cloud_interval, self.run_point_cloud_once)
            )

        # Both timer threads update the counters.
        self._stats_lock = threading.Lock()
        self.last_frequency: float | None = None
        self.num_map_data = 0
        self.num_point_clouds = 0
        self.num_skipped_busy = 0

    def start(self) -> None:
        for task in self._tasks:
            task.start()

    def stop(self) -> None:
        for task in self._tasks:
            task.stop()

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    def run_map_data_once(self) -> bool:
        """One map data tick.

        Publishes the active map's keyframes with all their points, then
        reports the tracking frequency and resets the counter.

        Returns:
            True if map data was published
        """
        if not self._state.tracked:
            return False

        snapshot = self._gateway.snapshot_map(
            current_map_only=True, tracked_points_only=False, blocking=False
        )
        if snapshot is None:
            with self._stats_lock:
                self.num_skipped_busy += 1
            logger.debug("Engine busy, skipping map data tick")
            return False

        self._transport.publish(MAP_DATA_CHANNEL, snapshot)
        with self._stats_lock:
            self.num_map_data += 1

        self.last_frequency = self._state.report_frequency()
        logger.info("Current tracking frequency: %.2f frames / sec", self.last_frequency)
        return True

    def run_point_cloud_once(self) -> bool:
        """One point cloud tick. Empty clouds are not published.

        Returns:
            True if a point cloud was published
        """
        if not self._state.tracked:
            return False

        cloud = self._gateway.current_map_points(blocking=False)
        if cloud is None:
            with self._stats_lock:
                self.num_skipped_busy += 1
            logger.debug("Engine busy, skipping map points tick")
            return False

        if len(cloud) == 0:
            logger.debug("Map point cloud is empty")
            return False

        self._transport.publish(MAP_POINTS_CHANNEL, cloud)
        with self._stats_lock:
            self.num_point_clouds += 1
        return True
