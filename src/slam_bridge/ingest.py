"""Inertial and odometry stream handling."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .exceptions import EngineClosedError
from .gateway import EngineGateway
from .messages import ImuMessage, OdometryMessage
from .tracking import TrackingStateManager

logger = logging.getLogger(__name__)


class WarningThrottle:
    """Lets a message through at most once per ``period`` seconds.

    Args:
        period: Minimum seconds between two allowed messages
        clock: Monotonic time source in seconds
    """

    def __init__(self, period: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._period = period
        self._clock = clock
        self._last: float | None = None
        self._lock = threading.Lock()
        self.suppressed = 0

    def ready(self) -> bool:
        """True if a message may be emitted now (and records the emission)."""
        now = self._clock()
        with self._lock:
            if self._last is not None and now - self._last < self._period:
                self.suppressed += 1
                return False
            self._last = now
            return True


class SensorStreamIngest:
    """Routes IMU and odometry samples.

    IMU samples go to the engine's buffer as they arrive. Odometry samples
    update the composed map->odom transform when the bridge runs in
    composed mode with transform publication enabled; otherwise they are
    ignored with a rate-limited warning.

    Args:
        gateway: Engine access point
        state: Holds the latest map transform
        no_odometry_mode: True when transforms are derived directly
        publish_tf: True when transforms are broadcast
        warning_period: Seconds between repeated mode warnings
        clock: Monotonic time source for the warning throttle
    """

    def __init__(
        self,
        gateway: EngineGateway,
        state: TrackingStateManager,
        no_odometry_mode: bool = True,
        publish_tf: bool = True,
        warning_period: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._no_odometry_mode = no_odometry_mode
        self._publish_tf = publish_tf
        self._use_odometry = not no_odometry_mode and publish_tf
        self._odom_warning = WarningThrottle(warning_period, clock)
        self.num_imu = 0
        self.num_odom_used = 0

    def on_imu(self, msg: ImuMessage) -> None:
        self._gateway.grab_imu(msg)
        self.num_imu += 1

    def on_odometry(self, msg: OdometryMessage) -> None:
        if not self._use_odometry:
            if self._odom_warning.ready():
                logger.warning(
                    "Odometry received but ignored (no_odometry_mode=%s, "
                    "publish_tf=%s); set no_odometry_mode to false to use it",
                    self._no_odometry_mode,
                    self._publish_tf,
                )
            return

        logger.debug("Odometry at %d", msg.header.stamp_ns)
        try:
            transform = self._gateway.map_to_odom(msg)
        except EngineClosedError:
            logger.debug("Dropping odometry at %d after shutdown", msg.header.stamp_ns)
            return
        if transform is not None:
            self._state.latest_transform = transform
            self.num_odom_used += 1
