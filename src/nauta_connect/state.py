from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .models import SessionSnapshot, UserCredentials
from .result import Result, io_error


logger = logging.getLogger(__name__)


def default_data_dir() -> Path:
    override = os.getenv("NAUTA_CONNECT_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "nauta-connect"


def _atomic_write_text(path: Path, text: str, *, mode: Optional[int] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    if mode is not None:
        os.chmod(tmp, mode)
    tmp.replace(path)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        logger.warning("Failed to delete %s", path, exc_info=True)


class SessionStore:
    """
    JSON file holding the active `SessionSnapshot`.

    A corrupted file is deleted on read and reported as an IOError failure, so the next run
    starts from a clean "no session" state instead of crashing.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def save_session(self, snapshot: SessionSnapshot) -> Result[None]:
        try:
            _atomic_write_text(self.path, snapshot.model_dump_json(indent=2))
        except OSError as e:
            logger.warning("Failed to save session to %s (%s)", self.path, e)
            return io_error("could not save the session", str(e))
        logger.debug("Saved session for %s to %s", snapshot.username, self.path)
        return Result.success(None)

    def get_active_session(self) -> Result[Optional[SessionSnapshot]]:
        if not self.path.exists():
            return Result.success(None)
        try:
            raw = self.path.read_text(encoding="utf-8")
            snapshot = SessionSnapshot.model_validate_json(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Session file %s is unreadable; deleting it. (%s)", self.path, e)
            self.delete_session()
            return io_error("could not read the session file", str(e))
        return Result.success(snapshot)

    def delete_session(self) -> None:
        _unlink_quietly(self.path)


class CredentialStore:
    """
    Remembered login credentials (plain JSON, owner-only permissions).
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def save(self, credentials: UserCredentials) -> None:
        payload = json.dumps({"username": credentials.username, "password": credentials.password})
        _atomic_write_text(self.path, payload, mode=0o600)
        logger.info("Saved credentials for %s", credentials.username)

    def load(self) -> Optional[UserCredentials]:
        if not self.path.exists():
            return None
        try:
            return UserCredentials.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError):
            logger.warning("Stored credentials at %s are unreadable; clearing them.", self.path)
            self.clear()
            return None

    def clear(self) -> None:
        _unlink_quietly(self.path)
