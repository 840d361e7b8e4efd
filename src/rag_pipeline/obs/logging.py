"""Structured logging setup."""

from __future__ import annotations

import os
import sys
from typing import Any, Literal

import structlog

from rag_pipeline.config import ProviderSettings

LogFormat = Literal["json", "plain", "auto"]

_CI_VARS = ("CI", "CONTINUOUS_INTEGRATION", "GITHUB_ACTIONS", "JENKINS_URL")


def _should_use_json_format() -> bool:
    if any(os.environ.get(var) for var in _CI_VARS):
        return True
    return not sys.stdout.isatty()


def setup_logging(format_type: LogFormat | None = None) -> None:
    """Configure structlog for the process.

    Args:
        format_type: "json" for JSON lines, "plain" for console output, "auto"
            to pick JSON under CI or when stdout is not a TTY. Defaults to the
            `LOG_FORMAT` setting.
    """
    if format_type is None:
        format_type = ProviderSettings().LOG_FORMAT
    use_json = format_type == "json" or (format_type == "auto" and _should_use_json_format())

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
