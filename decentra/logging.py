"""Logging setup using Loguru.

Every module logs through the patched ``logger`` exported here. Records carry
the session context of the acting user:

- ``principal``: the redacted identity handle of the logged-in user
- ``privacy_mode``: the privacy mode chosen at login
- ``operation``: the remote operation currently being awaited

The context lives in contextvars, so concurrent lookups issued from one feed
fetch share the same context while separate sessions in separate tasks do
not. Principals and credentials are only ever written in redacted form.

Example:
    >>> from decentra.logging import logger, operation_scope
    >>> with operation_scope("like post"):
    ...     logger.info("Liking post 42")
"""

import json
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from loguru import logger as loguru_logger

from decentra.config import settings
from decentra.utils import redact_token

principal_var: ContextVar[str | None] = ContextVar("principal", default=None)
privacy_mode_var: ContextVar[str | None] = ContextVar("privacy_mode", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

# Extra fields that may hold credentials; redacted before any sink sees them.
SENSITIVE_EXTRA_KEYS = frozenset({"token", "delegation", "identity_token", "principal"})

HUMAN_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
)


def get_log_context() -> dict[str, str | None]:
    """Current session context attached to log records."""
    return {
        "principal": principal_var.get(),
        "privacy_mode": privacy_mode_var.get(),
        "operation": operation_var.get(),
    }


def _redacted_extra(extra: dict[str, Any]) -> dict[str, Any]:
    return {
        key: redact_token(str(value)) if key in SENSITIVE_EXTRA_KEYS and value else value
        for key, value in extra.items()
    }


def serialize(record: dict[str, Any]) -> str:
    """Render a record as one JSON line with session context and redacted extras."""
    payload: dict[str, Any] = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    payload.update({key: value for key, value in get_log_context().items() if value})
    payload.update(_redacted_extra(record["extra"]))

    if exc := record["exception"]:
        payload["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value),
            "traceback": traceback.format_exception(exc.type, exc.value, exc.traceback),
        }

    return json.dumps(payload, default=str)


def patching(record: dict[str, Any]) -> None:
    record["serialized"] = serialize(record)


def json_formatter(record: dict[str, Any]) -> str:
    return "{serialized}\n"


def human_formatter(record: dict[str, Any]) -> str:
    """Console format with the session context shown between location and message."""
    context = get_log_context()
    tags = []
    if context["principal"]:
        tags.append(context["principal"])
    if context["privacy_mode"] and context["privacy_mode"] != "standard":
        tags.append(context["privacy_mode"])
    if context["operation"]:
        tags.append(context["operation"])
    prefix = ""
    if tags:
        escaped = " ".join(tags).replace("{", "{{").replace("}", "}}").replace("<", r"\<")
        prefix = f"<magenta>[{escaped}]</magenta> "
    return HUMAN_FORMAT + prefix + "<level>{message}</level>\n{exception}"


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Path | None = None,
    colorize: bool = True,
) -> Any:
    """Configure Loguru for the client.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Emit JSON lines instead of the human console format
        log_file: Optional file path for a rotating log file
        colorize: Enable colored output for human-readable logs

    Returns:
        Configured Loguru logger instance
    """
    loguru_logger.remove()

    patched_logger = loguru_logger.patch(patching)

    if json_logs:
        patched_logger.add(sys.stderr, level=level, format=json_formatter, serialize=False)
    else:
        patched_logger.add(sys.stderr, level=level, format=human_formatter, colorize=colorize)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        patched_logger.add(
            log_file,
            level=level,
            format=json_formatter,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    return patched_logger


logger = setup_logging(
    level=settings.log_level,
    json_logs=settings.log_json,
    log_file=settings.data_dir / "decentra.log" if settings.log_to_file else None,
    colorize=not settings.log_json,
)


def bind_session(principal: str, privacy_mode: str) -> None:
    """Attach the logged-in user to every subsequent record in this context.

    The principal is stored redacted.
    """
    principal_var.set(redact_token(principal))
    privacy_mode_var.set(privacy_mode)


def clear_session_context() -> None:
    principal_var.set(None)
    privacy_mode_var.set(None)
    operation_var.set(None)


@contextmanager
def operation_scope(operation: str) -> Iterator[None]:
    """Tag records emitted inside the block with ``operation``."""
    token = operation_var.set(operation)
    try:
        yield
    finally:
        operation_var.reset(token)


__all__ = [
    "logger",
    "principal_var",
    "privacy_mode_var",
    "operation_var",
    "bind_session",
    "clear_session_context",
    "operation_scope",
    "get_log_context",
    "setup_logging",
]
