"""Run-scoped JSON logging.

Every record carries the id of the assembly run it belongs to. Order and
terms-of-reference texts are never written out: under the bulk keys they
are reduced to their length, and customer phone numbers found in any other
string are masked.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Iterator, Mapping
from uuid import uuid4

RUN_ID_CONTEXT: ContextVar[str] = ContextVar("run_id", default="-")
RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

BULK_TEXT_KEYS = frozenset({"source_text", "order_text", "tz_text", "prompt", "document_xml"})
# +7 / 8 followed by ten digits in the usual Russian groupings.
PHONE_PATTERN = re.compile(r"(?<!\d)(?:\+7|8)[\s(-]*\d{3}[\s)-]*\d{3}[\s-]*\d{2}[\s-]*\d{2}(?!\d)")
MAX_LOGGED_STRING = 240


def normalize_run_id(candidate: str | None) -> str:
    trimmed = (candidate or "").strip()
    return trimmed if RUN_ID_PATTERN.fullmatch(trimmed) else str(uuid4())


def set_run_id(run_id: str) -> Token[str]:
    return RUN_ID_CONTEXT.set(run_id)


def reset_run_id(token: Token[str]) -> None:
    RUN_ID_CONTEXT.reset(token)


def get_run_id() -> str:
    return RUN_ID_CONTEXT.get()


@contextmanager
def run_scope(candidate: str | None) -> Iterator[str]:
    """Bind a normalised run id for the duration of one assembly run."""
    run_id = normalize_run_id(candidate)
    token = set_run_id(run_id)
    try:
        yield run_id
    finally:
        reset_run_id(token)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}...[truncated]"


def sanitize_for_logging(value: Any, *, max_string_length: int = MAX_LOGGED_STRING) -> Any:
    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for key, item in value.items():
            name = str(key)
            if name in BULK_TEXT_KEYS and isinstance(item, str):
                sanitized[name] = f"[{len(item)} chars]"
            else:
                sanitized[name] = sanitize_for_logging(item, max_string_length=max_string_length)
        return sanitized
    if isinstance(value, (list, tuple)):
        items = [sanitize_for_logging(item, max_string_length=max_string_length) for item in value]
        return items if isinstance(value, list) else tuple(items)
    if isinstance(value, (bytes, bytearray)):
        return f"[{len(value)} bytes]"
    if isinstance(value, str):
        return _clip(PHONE_PATTERN.sub("[phone]", value), max_string_length)
    return value


class RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = get_run_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record; anything passed through ``extra`` becomes a field."""

    _RESERVED = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
        "message",
        "asctime",
        "run_id",
    }

    def format(self, record: logging.LogRecord) -> str:
        extras = {key: value for key, value in vars(record).items() if key not in self._RESERVED}
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", get_run_id()),
            "message": record.getMessage(),
            **sanitize_for_logging(extras),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class RunLogHandler(logging.StreamHandler):
    def __init__(self) -> None:
        super().__init__()
        self.setFormatter(JsonFormatter())
        self.addFilter(RunIdFilter())


def configure_logging(level_name: str) -> None:
    """Set the root level and install the JSON handler once."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    if not any(isinstance(handler, RunLogHandler) for handler in root.handlers):
        root.addHandler(RunLogHandler())
