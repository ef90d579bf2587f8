"""Progress channel scoped to the stage currently executing.

The media engine pushes progress events without saying which stage they
belong to, so the orchestrator calls :meth:`ProgressChannel.reset` right
before every stage starts. Anything published after a reset belongs to the
new stage.
"""

import logging
import threading
from typing import Callable

from trimkit.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class Subscription:
    """Handle returned by :meth:`ProgressChannel.subscribe`.

    Use it as a context manager, or call :meth:`close` when the owner goes
    away. Closing more than once is harmless.
    """

    def __init__(self, channel: "ProgressChannel", callback: ProgressCallback):
        self._channel = channel
        self._callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._channel._unsubscribe(self._callback)
            self.closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ProgressChannel:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[ProgressCallback] = []
        self._latest = ProgressEvent(percent=0.0, status="")

    @property
    def progress(self) -> float:
        return self._latest.percent

    @property
    def status(self) -> str:
        return self._latest.status

    def snapshot(self) -> ProgressEvent:
        return self._latest

    def subscribe(self, callback: ProgressCallback) -> Subscription:
        with self._lock:
            self._subscribers.append(callback)
        return Subscription(self, callback)

    def _unsubscribe(self, callback: ProgressCallback) -> None:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    def publish(self, event: ProgressEvent) -> None:
        """Record ``event`` as the current progress and notify subscribers."""
        with self._lock:
            self._latest = event
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Progress subscriber %r failed", callback)

    def reset(self) -> None:
        self.publish(ProgressEvent(percent=0.0, status=""))
