"""Logging helpers for MCP Core Server."""

import atexit
import contextlib
import json
import logging
import os
import re
import sys
from datetime import UTC, datetime

_LOG_RECORD_RESERVED_FIELDS = set(logging.makeLogRecord({}).__dict__.keys()) | {"message", "asctime", "extra_fields"}
_REDACTION_FLAG_ATTR = "_mcp_redacted"
_REDACTION_MARKER = object()
_SENSITIVE_FIELD_NAMES = {
    "cookie",
    "cookies",
    "set_cookie",
    "authorization",
    "token",
    "session_token",
    "private_key",
}
_REDACTED_VALUE = "[REDACTED]"
_SENSITIVE_KEY_REGEX = r"set[_-]?cookie|cookie|authorization|session[_-]?token|private[_-]?key|token"
_SENSITIVE_KEY_VALUE_PATTERN = re.compile(
    rf"""(?ix)
    (?P<full_key>["']?(?<![A-Za-z0-9_])(?:{_SENSITIVE_KEY_REGEX})(?![A-Za-z0-9_])["']?)
    (?P<separator>\s*[:=]\s*)
    (?P<value>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^,\s}}\]]+)
    """
)
_GENERIC_BEARER_PATTERN = re.compile(r"(?i)\b(bearer)\s+([A-Za-z0-9._~+/=-]+)")


def _normalize_field_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")


def _safe_record_message(record: logging.LogRecord) -> str:
    try:
        return record.getMessage()
    except Exception:
        return f"{record.msg!s} [log-message-format-error]"


def _is_sensitive_field(name: str) -> bool:
    normalized = _normalize_field_name(name)
    if normalized in _SENSITIVE_FIELD_NAMES:
        return True
    parts = normalized.split("_")
    return "cookie" in parts or "token" in parts or "authorization" in parts


def _redact_captured_value(value: str) -> str:
    if len(value) >= 2 and value[0] in {"'", '"'} and value[-1] == value[0]:
        return f"{value[0]}{_REDACTED_VALUE}{value[0]}"
    return _REDACTED_VALUE


def _redact_key_value_match(match: re.Match[str]) -> str:
    return f"{match.group('full_key')}{match.group('separator')}{_redact_captured_value(match.group('value'))}"


def _redact_message(message: str) -> str:
    redacted = _SENSITIVE_KEY_VALUE_PATTERN.sub(_redact_key_value_match, message)
    return _GENERIC_BEARER_PATTERN.sub(lambda m: f"{m.group(1)} {_REDACTED_VALUE}", redacted)


def _redact_value(value: object) -> object:
    if isinstance(value, dict):
        return {
            key: _REDACTED_VALUE if _is_sensitive_field(str(key)) else _redact_value(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(item) for item in value)
    if isinstance(value, str):
        return _redact_message(value)
    return value


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    fields: dict[str, object] = {}
    record_extra_fields = getattr(record, "extra_fields", None)
    if isinstance(record_extra_fields, dict):
        fields.update(record_extra_fields)
    for key, value in record.__dict__.items():
        if key in _LOG_RECORD_RESERVED_FIELDS or key.startswith("_"):
            continue
        fields.setdefault(key, value)
    return fields


class SensitiveDataFilter(logging.Filter):
    """Best-effort redaction of cookie and credential values in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.__dict__.get(_REDACTION_FLAG_ATTR) is _REDACTION_MARKER:
            return True

        record.msg = _redact_message(_safe_record_message(record))
        record.args = ()

        for key, value in list(record.__dict__.items()):
            if key in _LOG_RECORD_RESERVED_FIELDS or key.startswith("_"):
                continue
            if _is_sensitive_field(key):
                record.__dict__[key] = _REDACTED_VALUE
                continue
            with contextlib.suppress(Exception):
                record.__dict__[key] = _redact_value(value)
        record.__dict__[_REDACTION_FLAG_ATTR] = _REDACTION_MARKER
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging output.

    Each log record is a single JSON object on one line.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_message(_safe_record_message(record)),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = _extra_fields(record)
        if extra_fields:
            log_entry.update(_redact_value(extra_fields))

        return json.dumps(log_entry, default=str)


_atexit_registered = False


def setup_logging(log_level: str | None = None, log_format: str = "text") -> logging.Logger:
    """Setup console logging for the server process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format - "text" (default) or "json" for structured logging

    Returns:
        Configured logger instance

    Priority: 1) Passed parameter, 2) Environment variable LOG_LEVEL, 3) Default INFO
    """
    global _atexit_registered

    if not _atexit_registered:
        atexit.register(logging.shutdown)
        _atexit_registered = True

    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_level.upper() not in valid_levels:
        print(f"Warning: Invalid log level '{log_level}', using INFO", file=sys.stderr)
        log_level = "INFO"

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    for handler in logging.root.handlers[:]:
        handler.close()
        logging.root.removeHandler(handler)

    # stdout may carry a protocol stream; diagnostics go to stderr
    handler = logging.StreamHandler(sys.stderr)
    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    handler.setLevel(numeric_level)
    handler.addFilter(SensitiveDataFilter())
    logging.root.addHandler(handler)
    logging.root.setLevel(numeric_level)

    logger = logging.getLogger("mcp_core_server")
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logger.debug("Logging initialized at level %s", log_level.upper())
    return logger
