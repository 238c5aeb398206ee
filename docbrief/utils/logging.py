"""Structured logging setup using structlog.

One shared processor chain feeds either a coloured ConsoleRenderer
(development) or a JSONRenderer (production, or ``json_output=True``).
Standard-library ``logging`` from uvicorn, chromadb and aiosqlite is routed
through the same chain.

docbrief-specific pieces:

- ``mask_sensitive_fields`` runs before rendering.  Recipient phone
  numbers keep only their last four digits, and token or key values are
  replaced outright.
- ``pipeline_context`` binds ``session_id`` / ``owner_id`` /
  ``document_id`` as contextvars.  Every log line emitted while a batch or
  a single document is processed carries them without each call site
  repeating the ids.
- httpx request lines are raised to WARNING: they print full provider
  URLs, which include the Twilio account SID and the Meta phone number id.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog

_SECRET_KEYS = frozenset({"authorization", "token", "api_key", "auth_token", "secret"})
_PHONE_KEYS = frozenset({"recipient"})
_QUIET_LOGGERS = ("httpx", "httpcore")


def _mask_phone(value: str) -> str:
    digits = "".join(ch for ch in value if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


def mask_sensitive_fields(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor hiding recipients and credentials."""
    for key in list(event_dict):
        value = event_dict[key]
        lowered = key.lower()
        if lowered in _SECRET_KEYS and value:
            event_dict[key] = "***"
        elif lowered in _PHONE_KEYS and isinstance(value, str):
            event_dict[key] = _mask_phone(value)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Parameters
    ----------
    log_level:
        DEBUG, INFO, WARNING or ERROR.
    json_output:
        Force JSON lines.  Otherwise JSON is used only when
        ``APP_ENV=production``.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name=name``.

    Configures logging with defaults on first use.
    """
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def pipeline_context(**ids: str | None) -> Iterator[None]:
    """Bind the non-``None`` *ids* to every log line inside the block.

    Contextvars are per asyncio task, so a document run bound inside its own
    task never leaks its ``document_id`` into a sibling document's lines.
    """
    bound = {key: value for key, value in ids.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
