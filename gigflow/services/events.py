"""Publication of state changes to observers such as the UI layer."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationEvent:
    application_id: str
    status: str
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionEvent:
    worker_id: str
    kind: str
    job_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[Any], None]


class EventPublisher:
    """Fan events out to subscribed listeners.

    Listeners only observe; an exception raised by one is logged and the
    remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as error:
                logger.error("Listener %r failed for %r: %s", listener, event, error, exc_info=True)
