"""Redaction of credentials in logged request and response data.

Header values for authorization, cookie and API-key headers are masked
outright. Bodies are scanned for secret-looking key/value pairs and token
formats before they reach a log record.
"""

from __future__ import annotations

import json
import re
from typing import Any, Final, List, Mapping, Optional, Tuple

SENSITIVE_HEADERS: Final = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "api-key",
        "apikey",
        "x-auth-token",
    }
)

SENSITIVE_KEYS: Final = frozenset(
    {
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "access_token",
        "refresh_token",
        "id_token",
        "client_secret",
        "private_key",
        "secret_key",
        "authorization",
        "credential",
        "credentials",
    }
)

SENSITIVE_PATTERNS: Final[List[Tuple[str, str]]] = [
    (r"(?i)(api[_-]?key|apikey)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-]{20,})['\"]?", "API_KEY"),
    (
        r"(?i)(secret[_-]?key|client[_-]?secret)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-]{20,})['\"]?",
        "SECRET_KEY",
    ),
    (
        r"(?i)(access[_-]?token|refresh[_-]?token)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-\.]{20,})['\"]?",
        "ACCESS_TOKEN",
    ),
    (r"(?i)bearer\s+([a-zA-Z0-9_\-\.=]+)", "BEARER_TOKEN"),
    (r"(?i)(password|passwd|pwd)\s*[:=]\s*['\"]?([^\s'\"&]{4,})['\"]?", "PASSWORD"),
    (r"AKIA[0-9A-Z]{16}", "AWS_ACCESS_KEY"),
    (r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "PRIVATE_KEY"),
    (r"gh[pousr]_[a-zA-Z0-9]{36,}", "GITHUB_TOKEN"),
    (r"glpat-[a-zA-Z0-9\-]{20,}", "GITLAB_TOKEN"),
]

REDACTED: Final = "****"

# Bodies longer than this are truncated in log records
MAX_LOGGED_BODY: Final = 4096


def redact_headers(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Return a copy of ``headers`` with sensitive values replaced by ``"****"``."""
    if not headers:
        return {}
    result: dict[str, str] = {}
    for key, value in headers.items():
        result[key] = REDACTED if key.lower() in SENSITIVE_HEADERS else value
    return result


def redact_string(text: str) -> str:
    """Replace secret-looking substrings with ``[REDACTED:<label>]`` markers."""
    result = text
    for pattern, label in SENSITIVE_PATTERNS:
        result = re.sub(pattern, f"[REDACTED:{label}]", result)
    return result


def redact_data(data: Any, max_depth: int = 10) -> Any:
    """Recursively redact strings, mappings and lists.

    Values under known sensitive keys are masked entirely.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(data, str):
        return redact_string(data)
    if isinstance(data, Mapping):
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if key_lower in SENSITIVE_KEYS:
                result[key] = f"[REDACTED:{key_lower.upper()}]"
            else:
                result[key] = redact_data(value, max_depth - 1)
        return result
    if isinstance(data, (list, tuple)):
        return [redact_data(item, max_depth - 1) for item in data]
    return data


def redact_body(body: Any, max_length: int = MAX_LOGGED_BODY) -> Any:
    """Redact a request or response body for logging.

    JSON text is parsed so sensitive keys can be masked; other text is
    pattern-scanned. Bytes are decoded leniently. Long text is truncated.
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except ValueError:
            text = redact_string(body)
        else:
            if not isinstance(parsed, (dict, list)):
                text = redact_string(body)
            else:
                text = json.dumps(redact_data(parsed), default=str)
        if len(text) > max_length:
            text = text[:max_length] + "...[truncated]"
        return text
    return redact_data(body)
