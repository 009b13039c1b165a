"""Structured logging for Futurecast Engine.

Lines are logfmt-style key=value pairs. Inside `analysis_context()` every
record carries the analysis id, including records from chains and generator
adapters that never see the id themselves. asyncio tasks copy the context
when they are created, so fan-out tasks inherit the tag.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_current_analysis_id: ContextVar[str | None] = ContextVar("analysis_id", default=None)


@contextmanager
def analysis_context(analysis_id: str) -> Iterator[None]:
    """Tag records logged inside the block with analysis_id."""
    token = _current_analysis_id.set(analysis_id)
    try:
        yield
    finally:
        _current_analysis_id.reset(token)


def current_analysis_id() -> str | None:
    return _current_analysis_id.get()


def _logfmt_value(value: Any) -> str:
    text = value if isinstance(value, str) else str(value)
    if not text or any(ch.isspace() or ch in '"=' for ch in text):
        return json.dumps(text, ensure_ascii=False)
    return text


class StructuredFormatter(logging.Formatter):
    """logfmt formatter; None-valued context fields are left out."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        analysis_id = getattr(record, "analysis_id", None) or _current_analysis_id.get()
        if analysis_id:
            fields["analysis_id"] = analysis_id

        for key, value in getattr(record, "extra_data", {}).items():
            if value is not None:
                fields[key] = value

        line = " ".join(f"{key}={_logfmt_value(value)}" for key, value in fields.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing StructuredFormatter lines to stdout
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from futurecast.core.config import get_settings

            level = logging.DEBUG if get_settings().FUTURECAST_ENV == "dev" else logging.INFO
        except Exception:
            # Settings may be unloadable in tooling contexts
            level = logging.INFO
        logger.setLevel(level)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with extra key=value fields, e.g. year=2030 expert="Economist".

    An explicit analysis_id overrides the one from analysis_context().
    """
    extra: dict[str, Any] = {"extra_data": context}
    analysis_id = context.pop("analysis_id", None)
    if analysis_id is not None:
        extra["analysis_id"] = analysis_id
    logger.log(level, msg, extra=extra)
