"""Tracking state shared between the stereo path and the publishers."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .geometry import SE3
from .messages import TransformStamped


@dataclass(frozen=True)
class TrackingResult:
    """Outcome of one stereo tracking step.

    Attributes:
        success: True if the engine produced a pose
        pose: T_world_camera in the engine frame, None on failure
        stamp_ns: Stamp of the tracked frame pair
    """

    success: bool
    pose: SE3 | None
    stamp_ns: int


class TrackingStatus(Enum):
    UNTRACKED = "untracked"
    TRACKED = "tracked"


class FrequencyCounter:
    """Counts successful tracks over a measurement window.

    Args:
        clock: Monotonic time source in seconds
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._count = 0
        self._window_start = clock()

    def increment(self) -> None:
        self._count += 1

    def report(self) -> float:
        """Return tracks per second since the last report and reset.

        The count always returns to zero, whatever its value was.
        """
        now = self._clock()
        elapsed = now - self._window_start
        rate = self._count / elapsed if elapsed > 0 else 0.0
        self._count = 0
        self._window_start = now
        return rate

    @property
    def count(self) -> int:
        return self._count

    @property
    def window_start(self) -> float:
        return self._window_start


class TrackingStateManager:
    """Sticky tracked flag plus tracking frequency bookkeeping.

    The state moves from UNTRACKED to TRACKED on the first successful
    tracking result and never moves back. Only the stereo path records
    results; the publishers and the transform path read the state.

    The manager also keeps the latest map transform, written by whichever
    path derives it (direct mode from the stereo path, composed mode from
    odometry) and read by the stereo path when broadcasting.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._tracked = False
        self._counter = FrequencyCounter(clock)
        self._latest_transform: TransformStamped | None = None

    def record(self, result: TrackingResult) -> bool:
        """Update the state from a tracking result.

        Returns:
            True if this result was the first successful one
        """
        if not result.success:
            return False

        with self._lock:
            first = not self._tracked
            self._tracked = True
            self._counter.increment()
        return first

    def report_frequency(self) -> float:
        """Tracking rate since the previous report; resets the counter."""
        with self._lock:
            return self._counter.report()

    @property
    def tracked(self) -> bool:
        return self._tracked

    @property
    def status(self) -> TrackingStatus:
        return TrackingStatus.TRACKED if self._tracked else TrackingStatus.UNTRACKED

    @property
    def track_count(self) -> int:
        """Successful tracks in the current frequency window."""
        with self._lock:
            return self._counter.count

    @property
    def latest_transform(self) -> TransformStamped | None:
        with self._lock:
            return self._latest_transform

    @latest_transform.setter
    def latest_transform(self, transform: TransformStamped) -> None:
        with self._lock:
            self._latest_transform = transform
