"""Event emitters for the deployment engine."""

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Iterable, List

from deploy_engine.core.events_model import DeploymentEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "step.started",
    "step.skipped",
    "step.applied",
    "step.failed",
    "rollback.started",
    "rollback.step",
    "rollback.completed",
    "deployment.completed",
    "deployment.failed",
    "deployment.cancelled",
}


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[DeploymentEvent]) -> None:
        """Emit one or more events."""
        pass


def _check(event: DeploymentEvent) -> None:
    if event.event_type not in ALLOWED_EVENTS:
        raise ValueError(f"Invalid event type: {event.event_type}")
    if not event.deployment:
        raise ValueError("Event must have deployment")


class PrintEventEmitter(EventEmitter):
    """Console event emitter that also keeps emitted events in memory."""

    def __init__(self):
        self.events: List[DeploymentEvent] = []
        self._lock = Lock()

    def emit(self, events: Iterable[DeploymentEvent]) -> None:
        for event in events:
            _check(event)

            with self._lock:
                self.events.append(event)

            target = f" | resource={event.resource_id}" if event.resource_id else ""
            print(f"[EVENT] {event.event_type} | deployment={event.deployment}{target}")


class LoggingEventEmitter(EventEmitter):
    """Forward events to the standard logger."""

    def emit(self, events: Iterable[DeploymentEvent]) -> None:
        for event in events:
            _check(event)
            logger.info(
                f"[event] {event.event_type} deployment={event.deployment} "
                f"resource={event.resource_id} {event.metadata}"
            )


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[DeploymentEvent]) -> None:
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[DeploymentEvent]) -> None:
        pass
