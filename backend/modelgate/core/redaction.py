"""
Secret redaction for audit payloads.

Verification inputs are opaque and may carry API keys, bearer tokens or
connection strings. Everything handed to an audit sink is passed through
`redact_secrets_from_object` first.
"""
import re
from typing import Any, List, Pattern

REDACTED = "[REDACTED]"

SECRET_PATTERNS: List[Pattern[str]] = [
    # Provider API keys
    re.compile(r"sk-ant-[a-zA-Z0-9-]{20,}"),
    re.compile(r"sk-proj-[a-zA-Z0-9_-]{20,}"),
    re.compile(r"sk-[a-zA-Z0-9]{32,}"),
    re.compile(r"(?:sk|pk|rk)_(?:test|live)_[a-zA-Z0-9]+"),
    re.compile(r"(?:pk|rk)_[a-zA-Z0-9]{32,}"),
    # Bearer tokens
    re.compile(r"Bearer\s+[a-zA-Z0-9\-_.~+/=]+", re.IGNORECASE),
    # Database URLs with credentials
    re.compile(r"(?:postgres(?:ql)?|mysql|mongodb(?:\+srv)?)://[^:\s/]+:[^@\s]+@", re.IGNORECASE),
    # Inline "password": "..." style assignments
    re.compile(r"(?:password|secret|api_key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
]

SECRET_KEY_MARKERS = ("password", "secret", "token", "api_key", "apikey", "auth", "credential", "private_key")


def redact_secrets(value: str) -> str:
    """Replace known secret patterns inside a string."""
    if not value:
        return value
    redacted = value
    for pattern in SECRET_PATTERNS:
        redacted = pattern.sub(REDACTED, redacted)
    return redacted


def is_secret_key(key: str) -> bool:
    """Whether a mapping key name suggests its value is a secret."""
    key_lower = key.lower()
    return any(marker in key_lower for marker in SECRET_KEY_MARKERS)


def redact_secrets_from_object(obj: Any) -> Any:
    """
    Recursively redact secrets from dicts, lists, tuples and strings.

    String values under secret-looking keys are replaced entirely; other
    strings are scanned for known secret patterns. Non-string scalars are
    returned unchanged.
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return redact_secrets(obj)
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [redact_secrets_from_object(item) for item in obj]
    if isinstance(obj, dict):
        redacted = {}
        for key, value in obj.items():
            if isinstance(key, str) and is_secret_key(key) and isinstance(value, str):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_secrets_from_object(value)
        return redacted
    return obj
