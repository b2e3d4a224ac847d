import logging
import os
import sys

# No file handler: the bridge is a library and must not write logs to disk on its own.

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Engine work happens on runner/poller threads, so the thread name is part of every line.
_FORMAT = "[%(asctime)s] %(levelname)s %(threadName)s: %(message)s"


class _CategoryFilter(logging.Filter):
    """Pass only records whose last logger-name segment is in ``allowed``."""

    def __init__(self, allowed: set[str]):
        super().__init__()
        self.allowed = allowed

    def filter(self, record: logging.LogRecord) -> bool:
        # record.name like: image_bridge.runner, image_bridge.library_loader
        return (record.name or "").rsplit(".", 1)[-1] in self.allowed


def _env_level(default: int) -> int:
    value = (os.getenv("IMAGE_BRIDGE_LOG_LEVEL") or "").strip().lower()
    return _LEVELS.get(value, default) if value else default


def _env_categories() -> set[str]:
    cats = os.getenv("IMAGE_BRIDGE_LOG_CATS") or ""
    return {c.strip() for c in cats.split(",") if c.strip()}


def _stderr_handler(logger: logging.Logger) -> logging.StreamHandler:
    for h in logger.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            return h
    handler = logging.StreamHandler(stream=sys.stderr)
    logger.addHandler(handler)
    return handler


def setup_logger(level: int = logging.INFO, name: str = "image_bridge") -> logging.Logger:
    """Create or update the project logger.

    - IMAGE_BRIDGE_LOG_LEVEL / IMAGE_BRIDGE_LOG_CATS are re-read on every call,
      so a host application that sets them late still gets the effect.
    - Keeps exactly one stderr StreamHandler and refreshes its formatter and
      category filter instead of adding more handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_env_level(level))

    handler = _stderr_handler(logger)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S"))

    handler.filters.clear()
    allowed = _env_categories()
    if allowed:
        handler.addFilter(_CategoryFilter(allowed))

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = setup_logger()
    return base if not name else base.getChild(name)
