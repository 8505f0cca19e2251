import logging
import os
from pathlib import Path
from typing import Optional


_NOISY_LOGGERS = ("aiohttp", "aiohttp.access", "aiohttp.client", "asyncio")


def configure_logging(level: str = "INFO", file_path: Optional[str] = None, *, verbose: bool = False) -> None:
    """
    Configure root logging for the CLI. `verbose` forces DEBUG, including HTTP client chatter.
    """
    numeric_level = logging.DEBUG if verbose else getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        path = Path(file_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # called twice: once with env defaults, again after config is loaded
    )

    noisy_level = "DEBUG" if verbose else os.getenv("NOISY_LOG_LEVEL", "WARNING")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
