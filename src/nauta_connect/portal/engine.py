from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Iterable, Mapping, Optional, Protocol
from urllib.parse import urlparse

from ..models import SessionSnapshot
from ..result import FailureKind, Result, invalid_credentials
from ..state import SessionStore
from ..transport.models import CancelToken, FormContent, HttpOutcome, RequestOptions, RetryNotice
from ..util.text import mask_value
from . import keys
from .events import (
    ConnectionStateChanged,
    ErrorOccurred,
    ListenerLike,
    PortalEvent,
    RetryScheduled,
    StatusMessage,
    TimeRemainingUpdated,
)
from .extractor import (
    FieldMap,
    check_for_inline_alert,
    extract_hidden_form_fields,
    extract_session_tokens_from_script,
    try_parse_duration,
)


logger = logging.getLogger(__name__)


def snapshot_from_fields(fields: Mapping[str, str]) -> SessionSnapshot:
    return SessionSnapshot(
        username=fields.get(keys.USERNAME, ""),
        attribute_uuid=fields.get(keys.ATTRIBUTE_UUID, ""),
        csrfhw=fields.get(keys.CSRFHW, ""),
        wlanuserip=fields.get(keys.WLANUSERIP, ""),
        logger_id=fields.get(keys.LOGGER_ID, ""),
    )


def fields_from_snapshot(snapshot: SessionSnapshot) -> FieldMap:
    values = {
        keys.ATTRIBUTE_UUID: snapshot.attribute_uuid,
        keys.CSRFHW: snapshot.csrfhw,
        keys.WLANUSERIP: snapshot.wlanuserip,
        keys.LOGGER_ID: snapshot.logger_id,
        keys.USERNAME: snapshot.username,
    }
    return FieldMap({k: v for k, v in values.items() if v})


class Transport(Protocol):
    """
    What the engine needs from the transport layer (`PortalTransport` satisfies it).
    """

    base_url: str

    async def get(
        self,
        url: str,
        configure: Optional[Callable[[RequestOptions], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Result[HttpOutcome]: ...

    async def post(
        self,
        url: str,
        body: Optional[FormContent] = None,
        configure: Optional[Callable[[RequestOptions], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Result[HttpOutcome]: ...

    def add_retry_listener(self, listener: Callable[[RetryNotice], None]) -> Callable[[], None]: ...


class PortalSession:
    """
    Session protocol engine for the captive portal.

    Flow: detect (GET the portal root, scrape hidden form fields) -> login (POST credentials,
    require a redirect to `online.do`, scrape session tokens from the page script) ->
    query remaining time -> logout.

    The engine owns the session field map and only replaces it wholesale after a successful
    parse. Operations are serialized per instance.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        portal_url: Optional[str] = None,
        endpoints: Optional[keys.PortalEndpoints] = None,
        session_store: Optional[SessionStore] = None,
        listeners: Iterable[ListenerLike] = (),
    ) -> None:
        self._transport = transport
        self.portal_url = (portal_url or transport.base_url).rstrip("/")
        parsed = urlparse(self.portal_url)
        self._origin = f"{parsed.scheme}://{parsed.netloc}"
        self.endpoints = endpoints or keys.PortalEndpoints()
        self._session_store = session_store
        self._fields = FieldMap()
        self._listeners: list[ListenerLike] = list(listeners)
        self._lock: Optional[asyncio.Lock] = None
        self._detach_retry_listener: Optional[Callable[[], None]] = transport.add_retry_listener(self._on_retry)

    def close(self) -> None:
        """Stop forwarding retry notices from the transport, which may outlive this session."""
        if self._detach_retry_listener is not None:
            self._detach_retry_listener()
            self._detach_retry_listener = None

    # ---- observers -------------------------------------------------------------------------

    def subscribe(self, listener: ListenerLike) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: PortalEvent) -> None:
        for listener in list(self._listeners):
            handler = getattr(listener, "handle", listener)
            try:
                handler(event)
            except Exception:
                logger.warning("Portal event listener failed on %s", type(event).__name__, exc_info=True)

    def _status(self, text: str) -> None:
        logger.info(text)
        self._emit(StatusMessage(text))

    def _error(self, message: str, kind: Optional[FailureKind] = None) -> None:
        logger.warning("%s (kind=%s)", message, kind.value if kind else "-")
        self._emit(ErrorOccurred(message, kind))

    def _connection_state(self, connected: bool) -> None:
        self._emit(ConnectionStateChanged(connected))

    def _on_retry(self, notice: RetryNotice) -> None:
        self._emit(RetryScheduled(notice))
        self._emit(StatusMessage(f"[retry {notice.retry_number}/{notice.total_retries}]"))

    # ---- state -----------------------------------------------------------------------------

    @property
    def fields(self) -> Mapping[str, str]:
        """Read-only copy of the current session fields."""
        return self._fields.copy()

    @property
    def is_authenticated(self) -> bool:
        return keys.ATTRIBUTE_UUID in self._fields and keys.USERNAME in self._fields

    def _has_any_session_token(self) -> bool:
        return keys.ATTRIBUTE_UUID in self._fields or keys.USERNAME in self._fields

    def _guard(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _clear_session(self) -> None:
        self._fields = FieldMap()
        if self._session_store is not None:
            self._session_store.delete_session()

    def _online_referer(self) -> str:
        csrf = self._fields.get(keys.CSRFHW, "")
        return f"{self.portal_url}{self.endpoints.online_page}?{keys.CSRFHW}={csrf}&"

    # ---- operations ------------------------------------------------------------------------

    async def detect_portal(self, cancel: Optional[CancelToken] = None) -> bool:
        async with self._guard():
            return await self._detect_portal(cancel)

    async def _detect_portal(self, cancel: Optional[CancelToken]) -> bool:
        self._fields = FieldMap()
        self._status("Checking access to the portal")

        result = (await self._transport.get(self.endpoints.root, cancel=cancel)).bind(
            lambda outcome: extract_hidden_form_fields(outcome.body)
        )
        if result.ok and keys.CSRFHW in result.value:
            self._fields = result.value.copy()
            logger.debug(
                "Portal detected (fields=%s csrf=%s)",
                ",".join(sorted(self._fields)),
                mask_value(self._fields[keys.CSRFHW]),
            )
            return True

        reason = result.failure.message if result.failed else "the login form carries no CSRF token"
        self._status(f"Portal not detected: {reason}")
        return False

    async def login(self, username: str, password: str, cancel: Optional[CancelToken] = None) -> bool:
        async with self._guard():
            if not self._fields and not await self._detect_portal(cancel):
                return False

            self._status("Logging in...")
            response = await self._transport.post(
                self.endpoints.login,
                FormContent(self._login_payload(username, password)),
                configure=lambda cfg: cfg.set_referer(f"{self.portal_url}/").add_header("Origin", self._origin),
                cancel=cancel,
            )
            tokens = response.bind(self._require_online_redirect).bind(
                lambda outcome: extract_session_tokens_from_script(outcome.body)
            )
            if tokens.failed:
                self._error(tokens.failure.message, tokens.failure.kind)
                return False

            updated = self._fields.copy()
            updated[keys.USERNAME] = username
            updated.update(tokens.value)
            self._fields = updated
            logger.info(
                "Logged in as %s (uuid=%s)",
                self._fields[keys.USERNAME],
                mask_value(self._fields[keys.ATTRIBUTE_UUID]),
            )

            self._persist_session()
            self._status("Connected!")
            self._connection_state(True)
            return True

    def _require_online_redirect(self, outcome: HttpOutcome) -> Result[HttpOutcome]:
        if self.endpoints.online_marker in outcome.url:
            return Result.success(outcome)
        # The portal re-renders the login page with an alert() explaining the rejection.
        alert = check_for_inline_alert(outcome.body)
        if alert.failed:
            return Result.fail(alert.failure)
        return invalid_credentials("invalid username or password", f"landed on {outcome.url}")

    def _login_payload(self, username: str, password: str) -> dict[str, str]:
        payload = FieldMap({name: self._fields.get(name, "") for name in keys.LOGIN_FORM_FIELDS})
        for name, value in self._fields.items():
            if name not in payload:
                payload[name] = value
        payload[keys.USERNAME] = username
        payload[keys.PASSWORD] = password
        return dict(payload.items())

    def _session_payload(self) -> dict[str, str]:
        payload = {name: self._fields.get(name, "") for name in keys.SESSION_ECHO_FIELDS}
        payload.update({name: "" for name in keys.SESSION_BLANK_FIELDS})
        return payload

    def _persist_session(self) -> None:
        if self._session_store is None:
            return
        snapshot = snapshot_from_fields(self._fields)
        saved = self._session_store.save_session(snapshot)
        if saved.failed:
            self._error(saved.failure.message, saved.failure.kind)

    async def query_remaining_time(self, cancel: Optional[CancelToken] = None) -> Optional[timedelta]:
        """
        Ask the portal for the remaining connection time.

        Any transport or parse failure is treated as an expired session, except a user
        cancellation, which leaves the session in place.
        """
        async with self._guard():
            if not self.is_authenticated:
                self._error("There is no active session to query the remaining time.")
                return None

            payload = {keys.OP: self.endpoints.query_time_op}
            payload.update(self._session_payload())
            referer = self._online_referer()
            response = await self._transport.post(
                self.endpoints.query,
                FormContent(payload),
                configure=lambda cfg: cfg.set_referer(referer)
                .add_header("Origin", self._origin)
                .add_header("Accept", "*/*"),
                cancel=cancel,
            )

            if response.ok:
                parsed, remaining = try_parse_duration(response.value.body.strip())
                if parsed:
                    logger.info("Remaining time: %s", remaining)
                    self._emit(TimeRemainingUpdated(remaining))
                    return remaining
                logger.debug("Unparseable remaining-time body: %r", response.value.body[:200])
            elif cancel is not None and cancel.cancelled:
                # Cancelled by the user: session untouched.
                self._error("Remaining-time query cancelled.", response.failure.kind)
                return None
            else:
                logger.debug("Remaining-time query failed: %s", response.failure)

            self._clear_session()
            self._connection_state(False)
            self._error("The session expired due to inactivity.", FailureKind.SESSION_EXPIRED)
            return None

    async def logout(self, cancel: Optional[CancelToken] = None) -> bool:
        async with self._guard():
            if not self._has_any_session_token():
                return False

            self._status("Logging out...")
            payload = self._session_payload()
            payload["remove"] = "1"
            referer = self._online_referer()
            response = await self._transport.post(
                self.endpoints.logout,
                FormContent(payload),
                configure=lambda cfg: cfg.set_referer(referer).add_header("Origin", self._origin),
                cancel=cancel,
            )

            if response.ok and self.endpoints.logout_success_marker in response.value.body:
                self._clear_session()
                self._status("Session closed.")
                self._connection_state(False)
                return True

            kind = response.failure.kind if response.failed else FailureKind.UNEXPECTED_RESPONSE
            if response.failed:
                logger.debug("Logout request failed: %s", response.failure)
            self._error("Could not close the session. Try again.", kind)
            return False

    async def restore_session(self) -> bool:
        """
        Repopulate the session fields from the persisted snapshot (if any).
        """
        async with self._guard():
            if self._has_any_session_token():
                return self.is_authenticated
            if self._session_store is None:
                return False

            stored = self._session_store.get_active_session()
            if stored.failed:
                self._error(stored.failure.message, stored.failure.kind)
                return False
            if stored.value is None:
                logger.debug("No persisted session found")
                return False

            self._fields = fields_from_snapshot(stored.value)
            logger.info("Restored session for %s (logged in %s)", stored.value.username, stored.value.login_time)
            return self.is_authenticated
