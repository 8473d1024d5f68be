"""
Event Bus
=========

In-process delivery of kernel notifications.

Event names are scoped by session and, for per-request events, by the
request id::

    kernel-output-<session_id>-<request_id>   stream/display/result/error
    kernel-status-<session_id>                {"status": "busy" | "idle" | ...}
    kernel-done-<session_id>-<request_id>     {"success": true}

Callbacks run synchronously in the emitting task, in subscription order.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], None]


def output_event(session_id: str, request_id: str) -> str:
    return f"kernel-output-{session_id}-{request_id}"


def status_event(session_id: str) -> str:
    return f"kernel-status-{session_id}"


def done_event(session_id: str, request_id: str) -> str:
    return f"kernel-done-{session_id}-{request_id}"


class EventBus:
    """
    Named-event publish/subscribe.

    Thread-safe subscription bookkeeping; a failing callback is logged and
    does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Callback]] = {}
        self._emitted = 0

    def subscribe(self, name: str, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``name``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.setdefault(name, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(name)
                if not callbacks:
                    return
                try:
                    callbacks.remove(callback)
                except ValueError:
                    return
                if not callbacks:
                    del self._subscribers[name]

        return unsubscribe

    def emit(self, name: str, payload: Dict[str, Any]) -> int:
        """Deliver ``payload`` to every subscriber of ``name``; returns how many got it."""
        with self._lock:
            callbacks = list(self._subscribers.get(name, ()))
            self._emitted += 1

        delivered = 0
        for callback in callbacks:
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Event callback for {name} failed: {e}")
        return delivered

    async def wait_for(self, name: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait for the next ``name`` event and return its payload."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_event(payload: Dict[str, Any]) -> None:
            if not future.done():
                future.set_result(payload)

        unsubscribe = self.subscribe(name, on_event)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def subscriber_count(self, name: Optional[str] = None) -> int:
        with self._lock:
            if name is not None:
                return len(self._subscribers.get(name, ()))
            return sum(len(c) for c in self._subscribers.values())

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "event_names": len(self._subscribers),
                "subscribers": sum(len(c) for c in self._subscribers.values()),
                "emitted": self._emitted,
            }
