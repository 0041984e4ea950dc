import hashlib
import json
import logging
import re
import sys
import time
import uuid
from typing import Any, Dict, Optional, TextIO

from .config import get_settings


# Attributes every LogRecord carries; anything else was passed through ``extra``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_SENSITIVE_KEYS = ("authorization", "cookie", "token", "secret", "password", "api-key", "api_key")


class JsonFormatter(logging.Formatter):
    """JSON formatter with credential redaction for recorded HTTP traffic."""

    def __init__(self):
        super().__init__()
        # Credentials that show up in logged requests and headers
        self.redaction_patterns = [
            (re.compile(r'(?i)\b(Bearer|Basic)\s+([A-Za-z0-9\-._~+/]+=*)'), 'credential'),
            (re.compile(r'(?i)\b(?:authorization|cookie|x-api-key)\s*[=:]\s*["\']?(?!Bearer\b|Basic\b)([^"\s,}]+)'), 'header'),
            (re.compile(r'(?i)\b(?:access_token|refresh_token|api_key|token)=([^&\s"]+)'), 'token'),
        ]

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redact_text(record.getMessage()),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if self._is_sensitive_key(key):
                payload[key] = "[REDACTED]"
            elif isinstance(value, str):
                payload[key] = self._redact_text(value)
            elif isinstance(value, dict):
                payload[key] = self._redact_dict(value)
            else:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self._redact_text(self.formatException(record.exc_info))

        return json.dumps(payload, ensure_ascii=False, default=str)

    def _redact_text(self, text: str) -> str:
        """Replace credential values with a short stable hash so repeated values stay traceable."""
        if not isinstance(text, str):
            return text

        redacted_text = text
        for pattern, field_type in self.redaction_patterns:
            for match in pattern.finditer(redacted_text):
                secret = match.group(match.lastindex or 0)
                if secret and not secret.startswith("[REDACTED"):
                    digest = hashlib.md5(secret.encode()).hexdigest()[:8]
                    redacted_text = redacted_text.replace(secret, f"[REDACTED_{field_type.upper()}_{digest}]")
        return redacted_text

    @staticmethod
    def _is_sensitive_key(key: str) -> bool:
        key_lower = key.lower()
        return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact credential-bearing entries, e.g. logged header maps."""
        redacted_dict: Dict[str, Any] = {}

        for key, value in data.items():
            if self._is_sensitive_key(str(key)):
                redacted_dict[key] = "[REDACTED]"
            elif isinstance(value, str):
                redacted_dict[key] = self._redact_text(value)
            elif isinstance(value, dict):
                redacted_dict[key] = self._redact_dict(value)
            elif isinstance(value, list):
                redacted_dict[key] = [
                    self._redact_dict(item) if isinstance(item, dict)
                    else self._redact_text(item) if isinstance(item, str)
                    else item
                    for item in value
                ]
            else:
                redacted_dict[key] = value

        return redacted_dict


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Route the root logger through :class:`JsonFormatter` (stdout and ``LOG_LEVEL`` by default)."""
    level = level or get_settings().LOG_LEVEL
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def request_id() -> str:
    return uuid.uuid4().hex
