"""
Fan-out of credential change events to local observers.
"""

import inspect
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable

from shared.logging import get_logger
from shared.errors import ObserverFailedError
from shared.metrics import MetricsCollector


class ChangeKind(Enum):
    """Kinds of change events."""
    CREDENTIAL_REFRESHED = "credential_refreshed"


@dataclass(frozen=True)
class ChangeEvent:
    """A credential was refreshed and stored."""
    owner_id: str
    kind: ChangeKind
    key: str
    new_value: str = field(repr=False)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class Observer(Protocol):
    """Anything with an ``on_change`` method; coroutine methods are awaited."""

    def on_change(self, event: ChangeEvent) -> Any:
        ...


class ChangeNotifier:
    """Observer registry owned by a refresh coordinator."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("credentials.events.notifier")
        self.metrics = metrics
        self._observers: List[Observer] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> None:
        if not callable(getattr(observer, "on_change", None)):
            raise TypeError("observer must define on_change(event)")
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    async def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every current observer.

        An observer that raises is logged and skipped; delivery continues
        with the rest. Returns the number of observers that handled the
        event without error.
        """
        with self._lock:
            observers = list(self._observers)

        delivered = 0
        for observer in observers:
            try:
                result = observer.on_change(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                failure = ObserverFailedError(type(observer).__name__, str(e), details={"key": event.key})
                self.logger.error(
                    "Observer failed to handle change event",
                    code=failure.code,
                    observer=type(observer).__name__,
                    key=event.key,
                    error=failure.message
                )
                if self.metrics:
                    self.metrics.record_observer_failure()

        return delivered
