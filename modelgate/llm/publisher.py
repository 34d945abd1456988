"""
One-to-many event distribution with explicit normal/exceptional close.

A provider client owns one ``Publisher`` per request.  Every subscriber sees
the same events in the same order, followed by exactly one terminal signal.
"""

from __future__ import annotations

import logging
import threading

from modelgate.errors import (
    LateSubscriptionError,
    PublisherClosedError,
    StreamCancelled,
)
from modelgate.llm.types import Incoming

logger = logging.getLogger(__name__)


class Subscriber:
    """Listener base class.  Override the callbacks you care about."""

    def on_next(self, event: Incoming) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_complete(self) -> None:
        pass


class Publisher:
    """
    Synchronous broadcast primitive.

    ``submit`` delivers on the calling thread, in subscription order.  All
    subscribers must be registered before the first event; a late
    ``subscribe`` raises ``LateSubscriptionError``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []
        self._started = False
        self._closed = False
        self._error: BaseException | None = None

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if self._closed:
                raise LateSubscriptionError("Publisher is already closed")
            if self._started:
                raise LateSubscriptionError(
                    "Cannot subscribe after delivery has started",
                    hint="Register every listener before invoking the run action.",
                )
            self._subscribers.append(subscriber)

    def mark_started(self) -> None:
        """Freeze the subscriber list without delivering anything."""
        with self._lock:
            self._started = True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def submit(self, event: Incoming) -> None:
        with self._lock:
            if self._closed:
                raise PublisherClosedError("Cannot submit to a closed publisher")
            self._started = True
            targets = list(self._subscribers)

        for sub in targets:
            try:
                sub.on_next(event)
            except Exception as exc:
                logger.exception("Subscriber %r failed; dropping it", sub)
                self._drop(sub, exc)

    def close(self) -> None:
        """Signal normal completion.  No-op if already closed."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._started = True
            targets = list(self._subscribers)

        for sub in targets:
            try:
                sub.on_complete()
            except Exception:
                logger.exception("Subscriber %r failed in on_complete", sub)

    def close_exceptionally(self, error: BaseException) -> None:
        """Signal failure (or cancellation).  No-op if already closed."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._started = True
            self._error = error
            targets = list(self._subscribers)

        for sub in targets:
            try:
                sub.on_error(error)
            except Exception:
                logger.exception("Subscriber %r failed in on_error", sub)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def is_cancelled(self) -> bool:
        return isinstance(self._error, StreamCancelled)

    def _drop(self, sub: Subscriber, exc: Exception) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
        try:
            sub.on_error(exc)
        except Exception:
            logger.exception("Subscriber %r failed in on_error", sub)
