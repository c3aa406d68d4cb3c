"""Approximate-time pairing of the left and right image streams."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

from .messages import ImageMessage, StereoFramePair

logger = logging.getLogger(__name__)

LEFT = 0
RIGHT = 1


class FrameSynchronizer:
    """Pairs two independently delivered image streams into stereo frames.

    Each channel keeps a bounded buffer of its most recent unmatched
    images. When an image arrives, the other channel's buffer is searched
    for the image with the closest stamp; if the difference is within
    ``slop_ns`` a :class:`StereoFramePair` is emitted. The matched image and
    everything older than it on either channel is discarded, so every image
    takes part in at most one pair. Images that fall off a full buffer are
    dropped without error.

    Pairs are delivered one at a time and in increasing stamp order, even
    when the two channels are fed from different threads. A pair that is
    not newer than the last delivered one is dropped.

    Args:
        callback: Called with each StereoFramePair (outside the internal lock)
        queue_size: Unmatched images kept per channel
        slop_ns: Maximum stamp difference of a pair in nanoseconds
    """

    def __init__(
        self,
        callback: Callable[[StereoFramePair], None],
        queue_size: int = 10,
        slop_ns: int = 50_000_000,
    ) -> None:
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")
        if slop_ns < 0:
            raise ValueError(f"slop_ns must be >= 0, got {slop_ns}")

        self._callback = callback
        self._slop_ns = slop_ns
        self._queue_size = queue_size
        self._buffers: tuple[deque[ImageMessage], deque[ImageMessage]] = (
            deque(),
            deque(),
        )
        self._lock = threading.Lock()
        self._deliver_lock = threading.Lock()
        self._last_delivered_ns: int | None = None
        self._num_pairs = 0
        self._num_dropped = 0
        self._num_stale = 0

    def add_left(self, msg: ImageMessage) -> None:
        """Feed a left camera image."""
        self._add(LEFT, msg)

    def add_right(self, msg: ImageMessage) -> None:
        """Feed a right camera image."""
        self._add(RIGHT, msg)

    def _add(self, channel: int, msg: ImageMessage) -> None:
        with self._lock:
            pair = self._match(channel, msg)

        if pair is None:
            return

        # One delivery at a time, in stamp order. A pair completed by a
        # concurrent feeder after a newer one went out is stale.
        with self._deliver_lock:
            stamp = pair.stamp_ns
            if self._last_delivered_ns is not None and stamp <= self._last_delivered_ns:
                with self._lock:
                    self._num_stale += 1
                logger.debug(
                    "Dropped stale stereo pair at %d (last delivered %d)",
                    stamp,
                    self._last_delivered_ns,
                )
                return
            self._last_delivered_ns = stamp
            self._callback(pair)

    def _match(self, channel: int, msg: ImageMessage) -> StereoFramePair | None:
        """Find a counterpart for ``msg`` or buffer it. Caller holds the lock."""
        own = self._buffers[channel]
        other = self._buffers[1 - channel]
        stamp = msg.header.stamp_ns

        best_idx = -1
        best_diff = self._slop_ns + 1
        for idx, candidate in enumerate(other):
            diff = abs(candidate.header.stamp_ns - stamp)
            if diff < best_diff:
                best_idx = idx
                best_diff = diff

        if best_idx < 0:
            own.append(msg)
            self._sort_tail(own)
            while len(own) > self._queue_size:
                dropped = own.popleft()
                self._num_dropped += 1
                logger.debug(
                    "Dropped unmatched %s image at %d",
                    "left" if channel == LEFT else "right",
                    dropped.header.stamp_ns,
                )
            return None

        counterpart = other[best_idx]
        # Discard the counterpart and everything older on the other channel.
        for _ in range(best_idx + 1):
            other.popleft()
        self._num_dropped += best_idx

        # Older images on this channel can no longer pair with anything newer.
        while own and own[0].header.stamp_ns <= stamp:
            own.popleft()
            self._num_dropped += 1

        self._num_pairs += 1
        if channel == LEFT:
            return StereoFramePair(left=msg, right=counterpart)
        return StereoFramePair(left=counterpart, right=msg)

    @staticmethod
    def _sort_tail(buffer: deque[ImageMessage]) -> None:
        """Keep the buffer ordered by stamp after an out-of-order append."""
        if len(buffer) < 2 or buffer[-2].header.stamp_ns <= buffer[-1].header.stamp_ns:
            return
        ordered = sorted(buffer, key=lambda m: m.header.stamp_ns)
        buffer.clear()
        buffer.extend(ordered)

    def reset(self) -> None:
        """Drop all buffered images and forget the last delivered stamp."""
        with self._deliver_lock, self._lock:
            for buffer in self._buffers:
                buffer.clear()
            self._last_delivered_ns = None

    @property
    def num_pairs(self) -> int:
        """Number of pairs emitted so far."""
        return self._num_pairs

    @property
    def dropped(self) -> int:
        """Number of images discarded without being paired."""
        return self._num_dropped

    @property
    def stale(self) -> int:
        """Number of pairs dropped for not being newer than the last delivered one."""
        return self._num_stale

    def pending(self) -> tuple[int, int]:
        """Number of buffered (left, right) images."""
        with self._lock:
            return len(self._buffers[LEFT]), len(self._buffers[RIGHT])
