from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator

from .state import default_data_dir
from .transport.client import DEFAULT_USER_AGENT


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_PORTAL_URL = "https://secure.etecsa.net:8443"


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


class PortalConfig(BaseModel):
    """
    Where the captive portal lives and how hard we try to reach it.
    """

    base_url: str = ""
    timeout_seconds: float = Field(default=15, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    backoff_base: float = Field(default=2.0, ge=1.0)
    # The portal serves a certificate most clients cannot validate.
    verify_ssl: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    @model_validator(mode="after")
    def _normalize_base_url(self) -> "PortalConfig":
        base_url = (self.base_url or os.getenv("NAUTA_PORTAL_URL", "") or DEFAULT_PORTAL_URL).strip()
        base_url = base_url.rstrip("/")
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"portal.base_url must be a full http(s) URL like '{DEFAULT_PORTAL_URL}'")
        self.base_url = base_url
        return self


class StorageConfig(BaseModel):
    data_dir: str = ""
    session_file: str = "active_session.json"
    credentials_file: str = "credentials.json"

    @model_validator(mode="after")
    def _fill_data_dir(self) -> "StorageConfig":
        if not self.data_dir:
            self.data_dir = str(default_data_dir())
        return self

    def session_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.session_file

    def credentials_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.credentials_file


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""


class AppConfig(BaseModel):
    portal: PortalConfig = Field(default_factory=PortalConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load YAML config with `${VAR}` expansion. A missing file means "all defaults".
    """
    raw: object = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"config file {path} must contain a mapping at the top level")
    expanded = _expand_env_vars(raw)
    return AppConfig.model_validate(expanded)
