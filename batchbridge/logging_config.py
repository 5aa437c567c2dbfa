"""
Structured logging for the bridge engine.

Every log line is rendered by structlog, including stdlib module loggers.
Session context (owner, chains) and the HTTP request id are merged in from
contextvars, and long hex blobs such as calldata and signatures are shortened
so a batch execution does not flood the log.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from .config import settings

HEX_PREVIEW_CHARS = 18
# 32-byte values (hashes, request ids) are kept whole
_MAX_FULL_HEX = 66

_QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def _shorten(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("0x") and len(value) > _MAX_FULL_HEX:
        return f"{value[:HEX_PREVIEW_CHARS]}…({(len(value) - 2) // 2} bytes)"
    return value


def shorten_hex_payloads(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor that abbreviates calldata and signatures."""
    return {key: _shorten(value) for key, value in event_dict.items()}


def _renderer(level: int, log_format: str) -> structlog.types.Processor:
    fmt = log_format.lower()
    if fmt == "console" or (fmt == "auto" and level == logging.DEBUG):
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Route structlog and stdlib logging through one renderer.

    Args:
        log_level: Override log level (default: settings.log_level)
        log_format: ``json``, ``console`` or ``auto`` (default: settings.log_format)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    renderer = _renderer(level, log_format or settings.log_format)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        shorten_hex_payloads,
    ]
    if isinstance(renderer, structlog.processors.JSONRenderer):
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_session_context(owner: Optional[str], source_chain: int, dest_chain: int) -> None:
    """Attach the active bridge session to every log line emitted afterwards."""

    structlog.contextvars.bind_contextvars(
        owner=owner.lower() if owner else None,
        source_chain=source_chain,
        dest_chain=dest_chain,
    )


def clear_session_context() -> None:
    structlog.contextvars.unbind_contextvars("owner", "source_chain", "dest_chain")
