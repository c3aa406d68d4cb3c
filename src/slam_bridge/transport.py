"""Message transport used by the bridge.

The middleware that carries messages between processes is outside the
bridge. :class:`Transport` is the surface the bridge needs from it;
:class:`InProcessTransport` implements it with direct callback dispatch,
which is what dataset replay, demos and tests use.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

from .messages import TransformStamped

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]
ServiceHandler = Callable[[Any], Any]

TF_CHANNEL = "tf"


class Subscription:
    """Handle returned by :meth:`Transport.subscribe`."""

    def __init__(self, channel: str, callback: Callback, on_close: Callable[[], None]) -> None:
        self.channel = channel
        self.callback = callback
        self._on_close = on_close
        self._closed = False

    def close(self) -> None:
        """Stop delivering messages to the callback. Idempotent."""
        if not self._closed:
            self._closed = True
            self._on_close()

    @property
    def closed(self) -> bool:
        return self._closed


class Transport(ABC):
    """Publish/subscribe channels, transform broadcast and services."""

    @abstractmethod
    def subscribe(self, channel: str, callback: Callback) -> Subscription:
        """Deliver every message published on ``channel`` to ``callback``."""

    @abstractmethod
    def publish(self, channel: str, message: Any) -> None:
        """Publish ``message`` on ``channel``."""

    @abstractmethod
    def register_service(self, name: str, handler: ServiceHandler) -> None:
        """Expose a request/response handler under ``name``."""

    @abstractmethod
    def unregister_service(self, name: str) -> None:
        """Remove a service. Unknown names are ignored."""

    @abstractmethod
    def call_service(self, name: str, request: Any) -> Any:
        """Invoke a registered service and return its response."""

    def broadcast_transform(self, transform: TransformStamped) -> None:
        """Broadcast a stamped transform (published on the ``tf`` channel)."""
        self.publish(TF_CHANNEL, transform)


class InProcessTransport(Transport):
    """Synchronous in-process transport.

    ``publish`` calls each subscriber on the publishing thread. A failing
    subscriber is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self._services: dict[str, ServiceHandler] = {}

    def subscribe(self, channel: str, callback: Callback) -> Subscription:
        sub = Subscription(channel, callback, lambda: self._remove(channel, sub))
        with self._lock:
            self._subscribers[channel].append(sub)
        return sub

    def _remove(self, channel: str, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(channel, [])
            if sub in subs:
                subs.remove(sub)

    def publish(self, channel: str, message: Any) -> None:
        with self._lock:
            subs = list(self._subscribers.get(channel, []))

        for sub in subs:
            if sub.closed:
                continue
            try:
                sub.callback(message)
            except Exception:
                logger.exception("Subscriber on '%s' failed", channel)

    def register_service(self, name: str, handler: ServiceHandler) -> None:
        with self._lock:
            if name in self._services:
                raise ValueError(f"Service already registered: {name}")
            self._services[name] = handler

    def unregister_service(self, name: str) -> None:
        with self._lock:
            self._services.pop(name, None)

    def call_service(self, name: str, request: Any) -> Any:
        with self._lock:
            handler = self._services.get(name)
        if handler is None:
            raise KeyError(f"No such service: {name}")
        return handler(request)

    def num_subscribers(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))
