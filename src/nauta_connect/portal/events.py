from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Protocol, Union

from ..result import FailureKind
from ..transport.models import RetryNotice


@dataclass(frozen=True)
class StatusMessage:
    text: str


@dataclass(frozen=True)
class ErrorOccurred:
    message: str
    kind: Optional[FailureKind] = None


@dataclass(frozen=True)
class ConnectionStateChanged:
    connected: bool


@dataclass(frozen=True)
class TimeRemainingUpdated:
    remaining: timedelta


@dataclass(frozen=True)
class RetryScheduled:
    notice: RetryNotice


PortalEvent = Union[StatusMessage, ErrorOccurred, ConnectionStateChanged, TimeRemainingUpdated, RetryScheduled]


class PortalListener(Protocol):
    def handle(self, event: PortalEvent) -> None: ...


ListenerLike = Union[PortalListener, Callable[[PortalEvent], None]]


class EventRecorder:
    """
    Listener that keeps every event in order. Handy for front ends that render after the fact
    (and for tests).
    """

    def __init__(self) -> None:
        self.events: list[PortalEvent] = []

    def handle(self, event: PortalEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()
