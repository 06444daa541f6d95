"""Logging setup for planstudio.

Production logs are one JSON object per line; development logs are plain
text. Both carry the request id the request context middleware sets, and
both pass through a filter that masks the Gemini API key and the Cloudflare
Images token wherever they show up in a message or traceback.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional


request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

# Chatty third-party loggers and the level they are held at.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


class _RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra={...}`` keys land at the top level."""

    _RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"request_id"}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = getattr(record, "request_id", None) or request_id_var.get("")
        if rid and rid != "-":
            payload["request_id"] = rid

        for key, value in record.__dict__.items():
            if key not in self._RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


_REDACTED = "***REDACTED***"

_SECRET_PATTERNS = [
    # Gemini API keys
    re.compile(r"\bAIza[0-9A-Za-z_\-]{30,}"),
    # Cloudflare token in an Authorization header
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{20,}"),
    # Header or setting assignments: x-goog-api-key: ..., cf_images_token=...
    re.compile(
        r"(?i)((?:x-goog-api-key|gemini_api_key|cf_images_token|api_key|token)[\"']?\s*[=:]\s*[\"']?)"
        r"[^\s,&'\"]{8,}"
    ),
]


def _mask(match: "re.Match[str]") -> str:
    prefix = match.group(1) if match.re.groups else ""
    return prefix + _REDACTED


def _redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_mask, text)
    return text


class _SecretFilter(logging.Filter):
    """Mask credentials in the rendered message and in cached traceback text."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _redact(message)
        if masked != message:
            # Arguments are already merged into the message.
            record.msg, record.args = masked, ()
        if record.exc_text:
            record.exc_text = _redact(record.exc_text)
        return True


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install the planstudio handler on the root logger.

    Args:
        log_level: Standard level name. Defaults to INFO.
        log_format: ``"json"`` (default) or ``"text"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_SecretFilter())
    handler.addFilter(_RequestIdFilter())
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": fmt})
