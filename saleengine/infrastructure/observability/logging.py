"""Engine logging.

All engine loggers live under the ``saleengine`` namespace. Handlers are only
installed on that namespace so embedding the engine in a host process (for
example uvicorn) leaves the host's own logging untouched.

Fields bound with :func:`log_context` (``item_id``, ``sale_id``, ``entry_id``
and so on) are appended to every message emitted inside the block, including
messages from worker threads that copied the context.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

ENGINE_LOGGER = "saleengine"

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_log_context: ContextVar[dict[str, Any]] = ContextVar("saleengine_log_context", default={})


class ContextualFormatter(logging.Formatter):
    """Formatter that appends the active context fields as ``[k=v ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = _log_context.get()
        if not fields:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{message} [{rendered}]"


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every engine log message inside the block.

    Nested blocks merge with the outer fields; the outer fields are restored
    on exit.

        with log_context(sale_id="sale-1"):
            logger.info("Line started")  # ... Line started [sale_id=sale-1]
    """
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the fields bound by enclosing :func:`log_context` blocks."""
    return dict(_log_context.get())


_handler: logging.Handler | None = None


def _install_handler(level: int) -> None:
    global _handler
    engine = logging.getLogger(ENGINE_LOGGER)
    if _handler is not None:
        engine.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(ContextualFormatter(_LOG_FORMAT))
    engine.addHandler(_handler)
    engine.setLevel(level)
    engine.propagate = False


def configure_logging(
    level: int | str = logging.INFO,
    third_party_level: int = logging.WARNING,
) -> None:
    """Send engine logs to stderr at ``level``.

    Safe to call more than once; a later call replaces the handler installed
    by an earlier one, so the CLI ``--log-level`` option can override the
    default chosen at import time.

    Args:
        level: Level for ``saleengine.*`` loggers, as a number or a name such
            as ``"DEBUG"``.
        third_party_level: Level applied to chatty client libraries.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")
    _install_handler(level)
    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the engine namespace.

    Module names inside the package already start with ``saleengine``; any
    other name is nested below it. Until :func:`configure_logging` runs, the
    engine namespace gets a default INFO handler unless the host application
    configured the root logger itself.
    """
    if name != ENGINE_LOGGER and not name.startswith(ENGINE_LOGGER + "."):
        name = f"{ENGINE_LOGGER}.{name}"
    if _handler is None and not logging.getLogger().handlers:
        _install_handler(logging.INFO)
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """Log ``exc`` with its traceback at ERROR, adding ``context`` fields."""
    with log_context(**context):
        logger.error("%s: %s", message, exc, exc_info=exc)
