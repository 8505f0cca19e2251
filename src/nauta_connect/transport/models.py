from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Mapping, Optional, Union


class StatusClass(str, Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"

    @classmethod
    def from_status(cls, status: int) -> "StatusClass":
        if status <= 0:
            return cls.NETWORK_ERROR
        if 200 <= status < 300:
            return cls.SUCCESS
        if status >= 500:
            return cls.SERVER_ERROR
        return cls.CLIENT_ERROR


@dataclass(frozen=True)
class HttpOutcome:
    """
    Normalized result of one transport call.

    `url` is the final URL after redirects were followed; the portal signals a successful login
    only through it (`.../online.do?...`).
    """

    status: int
    body: str
    url: str
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def status_class(self) -> StatusClass:
        return StatusClass.from_status(self.status)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class FormContent:
    data: Mapping[str, str]
    content_type: str = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class JsonContent:
    data: Any
    content_type: str = "application/json"


RequestBody = Union[FormContent, JsonContent]


class RequestOptions:
    """
    Per-request header builder handed to the `configure` callback of `PortalTransport.send`.
    """

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}

    def add_header(self, name: str, value: str) -> "RequestOptions":
        self.headers[name] = value
        return self

    def set_referer(self, url: str) -> "RequestOptions":
        return self.add_header("Referer", url)

    def set_user_agent(self, user_agent: str) -> "RequestOptions":
        return self.add_header("User-Agent", user_agent)


@dataclass(frozen=True)
class RetryNotice:
    """
    Fired before each backoff sleep. `retry_number` counts retries performed so far (1, 2, 3).
    """

    message: str
    status_code: int
    total_retries: int
    retry_number: int
    delay: timedelta

    @property
    def retries_remaining_after_this(self) -> int:
        return self.total_retries - self.retry_number


@dataclass
class RetryContext:
    attempts: int = 0
    total_delay: float = 0.0


class CancelToken:
    """
    User-initiated cancellation signal threaded from the caller down to the retry loop.

    Signalling it aborts a pending backoff sleep or an in-flight request; the transport then
    returns a NetworkError instead of raising.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def race_with_cancel(aw: Any, cancel: Optional[CancelToken]) -> tuple[bool, Any]:
    """
    Await `aw` unless `cancel` fires first.

    Returns `(True, None)` when cancelled (the pending awaitable is cancelled too), otherwise
    `(False, result)`. Exceptions raised by `aw` propagate.
    """
    if cancel is None:
        return False, await aw
    if cancel.cancelled:
        if asyncio.iscoroutine(aw):
            aw.close()
        return True, None

    work = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work.done():
        return False, work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    except Exception:
        # Abandoned request; its outcome is discarded.
        pass
    return True, None
