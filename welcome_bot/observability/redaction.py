"""Redaction helpers to keep credentials out of logs.

Raw Matrix events and config dumps can carry access tokens and attachment
decryption keys (the JWK ``k`` of an EncryptedFile). ``sanitize`` masks them
while keeping the structure of dicts and lists; ``RedactingFilter`` scrubs
formatted log records.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

_REPLACEMENT = "[REDACTED]"
_TRUNC_SUFFIX = "…(truncated)"

# Secret-ish key names, plus the JWK secret "k" and the attachment "iv".
_SECRET_KEY_RE = re.compile(
    r"(^|_)(password|passwd|secret|token|access[_-]?token|api[_-]?key|authorization|k|iv)($|_)",
    flags=re.IGNORECASE,
)

_SENSITIVE_VALUE_RES: list[re.Pattern[str]] = [
    # Synapse access tokens
    re.compile(r"\bsyt_[A-Za-z0-9_]+\b"),
    # Bearer tokens in headers / logs
    re.compile(r"\bBearer\s+[A-Za-z0-9._\-]+\b", flags=re.IGNORECASE),
    # access_token query parameters
    re.compile(r"access_token=[^&\s]+", flags=re.IGNORECASE),
    # Generic 'key=value' patterns
    re.compile(r"\b(?:password|passwd)\s*[:=]\s*\S+", flags=re.IGNORECASE),
    re.compile(r"\b(?:token)\s*[:=]\s*\S+", flags=re.IGNORECASE),
]


def _looks_sensitive_key(key: str) -> bool:
    return bool(_SECRET_KEY_RE.search(key))


def redact_text(text: str, *, max_chars: int = 4000) -> str:
    """Redact sensitive substrings in a text blob and truncate."""
    if text is None:
        return text

    out = text
    for rx in _SENSITIVE_VALUE_RES:
        out = rx.sub(_REPLACEMENT, out)

    if max_chars and len(out) > max_chars:
        out = out[:max_chars] + _TRUNC_SUFFIX

    return out


def sanitize(obj: Any, *, max_depth: int = 6, max_chars: int = 4000) -> Any:
    """Sanitize an object for logging.

    - Dict keys that look like secrets are redacted.
    - String values are scanned for sensitive substrings.
    - Deep structures are truncated by depth.
    """

    if max_depth <= 0:
        return "…"

    if obj is None or isinstance(obj, (int, float, bool)):
        return obj

    if isinstance(obj, bytes):
        return f"<bytes:{len(obj)}>"

    if isinstance(obj, str):
        return redact_text(obj, max_chars=max_chars)

    if isinstance(obj, Mapping):
        out: dict[str, Any] = {}
        for k, v in obj.items():
            ks = str(k)
            if _looks_sensitive_key(ks):
                out[ks] = _REPLACEMENT
            else:
                out[ks] = sanitize(v, max_depth=max_depth - 1, max_chars=max_chars)
        return out

    if isinstance(obj, Sequence):
        items = list(obj)
        if len(items) > 50:
            items = items[:50]
            items.append("…")
        return [sanitize(v, max_depth=max_depth - 1, max_chars=max_chars) for v in items]

    return redact_text(str(obj), max_chars=max_chars)


class RedactingFilter(logging.Filter):
    """Scrub tokens from formatted log messages.

    The record is rewritten in place (``msg`` becomes the redacted, fully
    formatted message and ``args`` is cleared).
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        try:
            message = record.getMessage()
        except Exception:
            # Never break logging.
            return True
        redacted = redact_text(message, max_chars=0)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
