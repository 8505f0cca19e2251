from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .logging_config import configure_logging
from .models import UserCredentials
from .portal import (
    ConnectionStateChanged,
    ErrorOccurred,
    PortalEvent,
    PortalSession,
    StatusMessage,
    TimeRemainingUpdated,
    format_duration,
)
from .state import CredentialStore, SessionStore
from .transport import CancelToken, PortalTransport


logger = logging.getLogger("nauta_connect")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nauta_connect", description="Log in/out of the captive WiFi portal.")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml, optional)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log HTTP request details (DEBUG).")

    sub = p.add_subparsers(dest="cmd", required=True)

    login = sub.add_parser("login", help="Log in to the portal")
    login.add_argument("-u", "--user", default="", help="Account username (e.g. user@nauta.com.cu).")
    login.add_argument("-p", "--password", default="", help="Account password (prompted when omitted).")
    login.add_argument(
        "-r",
        "--remember",
        action="store_true",
        help="Remember the credentials after a successful login.",
    )

    sub.add_parser("logout", help="Close the active session")
    sub.add_parser("status", help="Show the connection state and remaining time")
    sub.add_parser("forget", help="Delete remembered credentials")

    return p


class ConsoleListener:
    """
    Renders portal events as plain console lines.
    """

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out

    def handle(self, event: PortalEvent) -> None:
        if isinstance(event, StatusMessage):
            line = f"[*] {event.text}"
        elif isinstance(event, ErrorOccurred):
            line = f"[!] ERROR: {event.message}"
        elif isinstance(event, ConnectionStateChanged):
            line = "[+] State: online" if event.connected else "[-] State: offline"
        elif isinstance(event, TimeRemainingUpdated):
            line = f"Time remaining: {format_duration(event.remaining)}"
        else:
            return
        print(line, file=self.out, flush=True)


def resolve_credentials(
    *,
    user: str,
    password: str,
    store: CredentialStore,
    prompt: Callable[[str], str] = input,
    prompt_secret: Callable[[str], str] = getpass.getpass,
) -> Optional[UserCredentials]:
    """
    Username: flag > NAUTA_USERNAME > remembered > prompt.
    Password: flag > NAUTA_PASSWORD > remembered (same username only) > prompt.
    """
    saved = store.load()

    username = (user or os.getenv("NAUTA_USERNAME", "")).strip()
    if not username and saved is not None:
        username = saved.username
    if not username:
        username = prompt("Username: ").strip()
    if not username:
        return None

    secret = password or os.getenv("NAUTA_PASSWORD", "")
    if not secret and saved is not None and saved.username == username:
        secret = saved.password
    if not secret:
        secret = prompt_secret(f"Password for {username}: ")
    if not secret:
        return None

    return UserCredentials(username=username, password=secret)


def _install_cancel_on_sigint(cancel: CancelToken) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers; Ctrl+C then raises KeyboardInterrupt.
        logger.debug("SIGINT handler not installed; falling back to KeyboardInterrupt.")


async def _run_command(args: argparse.Namespace, cfg: AppConfig, creds: Optional[UserCredentials]) -> int:
    cancel = CancelToken()
    _install_cancel_on_sigint(cancel)

    session_store = SessionStore(cfg.storage.session_path())
    async with PortalTransport(
        cfg.portal.base_url,
        timeout_seconds=cfg.portal.timeout_seconds,
        user_agent=cfg.portal.user_agent,
        verify_ssl=cfg.portal.verify_ssl,
        max_retries=cfg.portal.max_retries,
        backoff_base=cfg.portal.backoff_base,
    ) as transport:
        portal = PortalSession(transport, session_store=session_store, listeners=[ConsoleListener()])
        try:
            return await _dispatch(args, portal, creds, cancel)
        finally:
            portal.close()


async def _dispatch(
    args: argparse.Namespace, portal: PortalSession, creds: Optional[UserCredentials], cancel: CancelToken
) -> int:
    if args.cmd == "login":
        if creds is None:
            return 1
        ok = await portal.login(creds.username, creds.password, cancel)
        return 0 if ok else 1

    await portal.restore_session()
    if args.cmd == "logout":
        if not portal.fields:
            print("[*] No active session.", flush=True)
            return 0
        return 0 if await portal.logout(cancel) else 1

    if args.cmd == "status":
        remaining = await portal.query_remaining_time(cancel)
        return 0 if remaining is not None else 1

    raise SystemExit(f"Unknown command: {args.cmd}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "WARNING"), verbose=args.verbose)

    try:
        cfg = load_config(args.config)
    except Exception as e:
        logger.error("Invalid configuration in %s: %s", args.config, e)
        return 2

    configure_logging(
        level=os.getenv("LOG_LEVEL", cfg.logging.level),
        file_path=cfg.logging.file_path or None,
        verbose=args.verbose,
    )
    credential_store = CredentialStore(cfg.storage.credentials_path())

    if args.cmd == "forget":
        credential_store.clear()
        print("[*] Remembered credentials deleted.")
        return 0

    creds: Optional[UserCredentials] = None
    if args.cmd == "login":
        creds = resolve_credentials(user=args.user, password=args.password, store=credential_store)
        if creds is None:
            logger.error("A username and password are required to log in.")
            return 1

    logger.debug("Running %s against %s", args.cmd, cfg.portal.base_url)
    try:
        rc = asyncio.run(_run_command(args, cfg, creds))
    except KeyboardInterrupt:
        print("[!] Cancelled.", file=sys.stderr)
        return 130

    if rc == 0 and args.cmd == "login" and args.remember and creds is not None:
        try:
            credential_store.save(creds)
        except OSError as e:
            logger.warning("Could not remember credentials: %s", e)
    return rc
