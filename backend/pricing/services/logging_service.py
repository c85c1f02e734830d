"""Process-wide logging setup driven by the `logging` config section."""

import logging
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Base logs directory
LOGS_BASE_DIR = Path(__file__).parent.parent.parent / "logs"


def configure_logging(
    level: str = "INFO",
    fmt: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Level name, e.g. "INFO"
        fmt: logging format string; DEFAULT_FORMAT if omitted
        log_file: File name under LOGS_BASE_DIR to also write to
    """
    handlers = [logging.StreamHandler()]

    if log_file:
        LOGS_BASE_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(LOGS_BASE_DIR / log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )
    # aiohttp access noise is not useful at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
