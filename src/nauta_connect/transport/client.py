from __future__ import annotations

import asyncio
import errno
import json
import logging
import socket
import threading
from datetime import timedelta
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin

import aiohttp
from yarl import URL

from ..result import Result, network_error, unexpected_response
from .models import (
    CancelToken,
    FormContent,
    HttpOutcome,
    JsonContent,
    RequestBody,
    RequestOptions,
    RetryContext,
    RetryNotice,
    race_with_cancel,
)


logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

RetryListener = Callable[[RetryNotice], None]
Sleeper = Callable[[float], Awaitable[None]]


class CookieStore:
    """
    Explicitly owned cookie jar shared by every transport built with it.

    Set-Cookie headers are stored by aiohttp on each response and replayed on matching requests;
    callers only read merged snapshots for diagnostics.
    """

    def __init__(self) -> None:
        self._jar: Optional[aiohttp.CookieJar] = None
        self._lock = threading.Lock()

    @property
    def jar(self) -> aiohttp.CookieJar:
        with self._lock:
            if self._jar is None:
                # The portal is frequently reached by IP address.
                self._jar = aiohttp.CookieJar(unsafe=True)
            return self._jar

    def snapshot(self, url: str) -> dict[str, str]:
        jar = self.jar
        with self._lock:
            return {name: morsel.value for name, morsel in jar.filter_cookies(URL(url)).items()}

    def set(self, name: str, value: str, url: str) -> None:
        jar = self.jar
        with self._lock:
            jar.update_cookies({name: value}, URL(url))

    def clear(self) -> None:
        jar = self.jar
        with self._lock:
            jar.clear()

    def __len__(self) -> int:
        jar = self.jar
        with self._lock:
            return len(jar)


class PortalTransport:
    """
    Retrying, cookie-aware HTTP client for the captive portal.

    - retries server errors (>= 500) and connection-level exceptions with exponential backoff
    - converts every exception into a `Failure` so nothing raw reaches the protocol engine
    - honours a `CancelToken` during requests and backoff sleeps
    """

    def __init__(
        self,
        base_url: str,
        *,
        cookie_store: Optional[CookieStore] = None,
        timeout_seconds: float = 15,
        user_agent: str = DEFAULT_USER_AGENT,
        verify_ssl: bool = False,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        sleep: Sleeper = asyncio.sleep,
        on_retry: Optional[RetryListener] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.cookie_store = cookie_store if cookie_store is not None else CookieStore()
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self.max_retries = max(0, int(max_retries))
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._retry_listeners: list[RetryListener] = []
        if on_retry is not None:
            self._retry_listeners.append(on_retry)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "PortalTransport":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def add_retry_listener(self, listener: RetryListener) -> Callable[[], None]:
        self._retry_listeners.append(listener)

        def _remove() -> None:
            if listener in self._retry_listeners:
                self._retry_listeners.remove(listener)

        return _remove

    def resolve_url(self, url: str) -> str:
        return urljoin(self.base_url, url)

    async def get(
        self,
        url: str,
        configure: Optional[Callable[[RequestOptions], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Result[HttpOutcome]:
        return await self.send("GET", url, None, configure, cancel)

    async def post(
        self,
        url: str,
        body: Optional[RequestBody] = None,
        configure: Optional[Callable[[RequestOptions], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Result[HttpOutcome]:
        return await self.send("POST", url, body, configure, cancel)

    async def send(
        self,
        method: str,
        url: str,
        body: Optional[RequestBody] = None,
        configure: Optional[Callable[[RequestOptions], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Result[HttpOutcome]:
        target = self.resolve_url(url)
        options = RequestOptions()
        if configure is not None:
            configure(options)

        ctx = RetryContext()
        logger.debug("%s %s", method.upper(), target)
        try:
            outcome = await self._send_with_retry(method.upper(), target, body, options.headers, cancel, ctx)
        except Exception as e:
            return self._classify_exception(e, cancel)
        finally:
            logger.debug(
                "%s %s finished (attempts=%s backoff_seconds=%.1f)",
                method.upper(),
                target,
                ctx.attempts,
                ctx.total_delay,
            )

        if outcome is None:
            return network_error("cancelled", "the operation was cancelled by the user")

        if not outcome.is_success:
            return unexpected_response(
                "the portal server is returning a technical error",
                f"status: {outcome.status}",
            )
        return Result.success(outcome)

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        body: Optional[RequestBody],
        headers: dict[str, str],
        cancel: Optional[CancelToken],
        ctx: RetryContext,
    ) -> Optional[HttpOutcome]:
        """
        Run the attempt loop. Returns None when the cancel token fires; raises the last exception
        when retries are exhausted on a connection-level error.
        """
        for retry_number in range(self.max_retries + 1):
            ctx.attempts += 1
            try:
                cancelled, outcome = await race_with_cancel(self._attempt(method, url, body, headers), cancel)
            except asyncio.TimeoutError:
                # Slow links are not retried; the per-call timeout already elapsed.
                raise
            except aiohttp.ClientError as e:
                if retry_number >= self.max_retries:
                    raise
                if not await self._backoff(retry_number + 1, str(e) or e.__class__.__name__, 0, cancel, ctx):
                    return None
                continue

            if cancelled:
                return None
            if outcome.status < 500 or retry_number >= self.max_retries:
                return outcome
            if not await self._backoff(retry_number + 1, outcome.reason, outcome.status, cancel, ctx):
                return None
        return None

    async def _backoff(
        self,
        retry_number: int,
        message: str,
        status_code: int,
        cancel: Optional[CancelToken],
        ctx: RetryContext,
    ) -> bool:
        delay = float(self.backoff_base ** retry_number)
        notice = RetryNotice(
            message=message,
            status_code=status_code,
            total_retries=self.max_retries,
            retry_number=retry_number,
            delay=timedelta(seconds=delay),
        )
        logger.warning(
            "Portal request failed (status=%s, %s); retry %s/%s in %.0fs",
            status_code,
            message,
            retry_number,
            self.max_retries,
            delay,
        )
        for listener in list(self._retry_listeners):
            try:
                listener(notice)
            except Exception:
                logger.debug("Retry listener raised; ignoring.", exc_info=True)

        ctx.total_delay += delay
        cancelled, _ = await race_with_cancel(self._sleep(delay), cancel)
        return not cancelled

    async def _attempt(
        self,
        method: str,
        url: str,
        body: Optional[RequestBody],
        headers: dict[str, str],
    ) -> HttpOutcome:
        session = self._ensure_session()
        kwargs: dict = {"headers": headers, "allow_redirects": True}
        if isinstance(body, FormContent):
            kwargs["data"] = dict(body.data)
        elif isinstance(body, JsonContent):
            kwargs["data"] = json.dumps(body.data)
            kwargs["headers"] = {**headers, "Content-Type": body.content_type}

        async with session.request(method, url, **kwargs) as resp:
            text = await resp.text(errors="replace")
            final_url = str(resp.url)
            response_headers = {key: tuple(resp.headers.getall(key)) for key in resp.headers.keys()}
            return HttpOutcome(
                status=resp.status,
                body=text,
                url=final_url,
                headers=response_headers,
                cookies=self.cookie_store.snapshot(final_url),
                reason=resp.reason or "",
            )

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=True if self.verify_ssl else False)
            self._session = aiohttp.ClientSession(
                connector=connector,
                cookie_jar=self.cookie_store.jar,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": self.user_agent, "Accept": "text/html"},
            )
        return self._session

    @staticmethod
    def _classify_exception(exc: BaseException, cancel: Optional[CancelToken]) -> Result[HttpOutcome]:
        if cancel is not None and cancel.cancelled:
            return network_error("cancelled", "the operation was cancelled by the user")
        if isinstance(exc, asyncio.TimeoutError):
            return network_error("slow connection", "the portal took too long to respond")
        if isinstance(exc, aiohttp.ClientConnectorError):
            if _is_dns_failure(exc):
                return network_error("portal not found, check the WiFi connection", str(exc))
            if _is_connection_refused(exc):
                return network_error("the portal refused the connection", str(exc))
            return network_error(f"network error: {exc.os_error or exc}", str(exc))
        logger.debug("Unexpected transport exception", exc_info=exc)
        return unexpected_response("unexpected error while talking to the portal", str(exc))


def _exception_chain(exc: BaseException) -> list[BaseException]:
    seen: list[BaseException] = []
    current: Optional[BaseException] = exc
    while current is not None and current not in seen:
        seen.append(current)
        if isinstance(current, aiohttp.ClientConnectorError) and current.os_error is not None:
            if current.os_error not in seen:
                seen.append(current.os_error)
        current = current.__cause__ or current.__context__
    return seen


def _is_dns_failure(exc: aiohttp.ClientConnectorError) -> bool:
    dns_error = getattr(aiohttp, "ClientConnectorDNSError", None)
    if dns_error is not None and isinstance(exc, dns_error):
        return True
    return any(isinstance(e, socket.gaierror) for e in _exception_chain(exc))


def _is_connection_refused(exc: aiohttp.ClientConnectorError) -> bool:
    for e in _exception_chain(exc):
        if isinstance(e, ConnectionRefusedError):
            return True
        if isinstance(e, OSError) and e.errno == errno.ECONNREFUSED:
            return True
    return False
