from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppSecretSavedEvent:
    """Published whenever a site's app secrets are created, updated or deleted."""

    key: str
    site: Optional[str] = None


class EventSubscriber(Protocol):
    @property
    def key(self) -> Any: ...

    def notify(self, event: Any) -> None: ...


class EventBus:
    """In-process publish/subscribe keyed by event type."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: Dict[Type[Any], List[EventSubscriber]] = {}

    def subscribe(self, event_type: Type[Any], subscriber: EventSubscriber) -> None:
        with self._lock:
            subs = self._subscribers.setdefault(event_type, [])
            if subscriber not in subs:
                subs.append(subscriber)

    def unsubscribe(self, key: Any) -> int:
        """Remove subscribers whose ``key`` equals ``key`` (or the subscriber itself)."""
        removed = 0
        with self._lock:
            for event_type, subs in list(self._subscribers.items()):
                kept = [s for s in subs if s is not key and getattr(s, "key", None) != key]
                removed += len(subs) - len(kept)
                if kept:
                    self._subscribers[event_type] = kept
                else:
                    del self._subscribers[event_type]
        return removed

    def subscribers(self, event_type: Type[Any]) -> Tuple[EventSubscriber, ...]:
        with self._lock:
            return tuple(self._subscribers.get(event_type, ()))

    def publish(self, event: Any) -> int:
        """Fan ``event`` out to its subscribers; returns how many were notified."""
        delivered = 0
        for sub in self.subscribers(type(event)):
            try:
                sub.notify(event)
                delivered += 1
            except Exception as exc:
                # nosec B110 - one failing subscriber must not starve the others
                _log.warning("subscriber %r failed on %s: %s", sub, type(event).__name__, exc)
        return delivered


_bus = EventBus()
_bus_lock = threading.Lock()


def get_bus() -> EventBus:
    return _bus


def reset_bus() -> EventBus:
    """Replace the process bus with a fresh one (primarily for tests)."""
    global _bus
    with _bus_lock:
        _bus = EventBus()
    return _bus
