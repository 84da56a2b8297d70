"""
Logging setup shared by every module.

Call setup_logging() once at startup, then get_logger(__name__) per module.
"""
import logging
import sys

from invoicer.config import get_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def setup_logging() -> None:
    """Configure the root logger. Safe to call more than once."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = logging.DEBUG if settings.debug else logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)

    # SQL echo is too noisy even in debug
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)


def mask(value: str, visible: int = 6) -> str:
    """Shorten a secret (token, code) for log output."""
    if not value:
        return ""
    return f"{value[:visible]}..."
