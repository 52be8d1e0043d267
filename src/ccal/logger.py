"""Structured logging singleton.

The level comes from ``CCAL_LOG_LEVEL`` (default WARNING), read from
os.environ rather than Settings: the logger exists before configuration
loads, so config errors can still be logged.  Terminal output for the user
goes through ``ccal.reporter``; this is for diagnostics on stderr.

Every event passes through :func:`redact_tokens`, so a GitHub token that
slips into a log call is masked before rendering.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Any

import structlog

# gh OAuth / PAT / app tokens: gho_, ghp_, ghu_, ghs_, ghr_, github_pat_
_TOKEN_RE = re.compile(r"\b(?:gh[opusr]_[A-Za-z0-9]{16,}|github_pat_[A-Za-z0-9_]{20,})\b")
REDACTED = "[REDACTED]"


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        return _TOKEN_RE.sub(REDACTED, value)
    if isinstance(value, (list, tuple)):
        return type(value)(_mask(v) for v in value)
    return value


def redact_tokens(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask token-shaped strings in every field."""
    return {key: _mask(value) for key, value in event_dict.items()}


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level_name = os.environ.get("CCAL_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            redact_tokens,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("ccal")


logger = _setup_logging()


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler
