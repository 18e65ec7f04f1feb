"""API key / payload redaction for safe logging.

Before any store request or response is written to a debug dump the
:func:`redact` function must be applied:

* Values under sensitive keys (``apikey``, ``Authorization``, ...) are
  replaced with a masked placeholder showing at most the last four
  characters of the key.
* ``Bearer <key>`` strings are masked wherever they appear.
* Page bodies longer than :data:`_CONTENT_PREVIEW_CHARS` are truncated to a
  preview with their full length noted, so dumps stay one screen tall.
* The full API key is never present in the output.
"""

from __future__ import annotations

import copy
import re
from typing import Any

# Substrings: if any of these appear in a key name (case-insensitive), the
# value is redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "apikey",
    "api_key",
    "api-key",
})

# Keys whose string values are page bodies.
_CONTENT_KEYS: frozenset[str] = frozenset({"content"})

_CONTENT_PREVIEW_CHARS = 200


def _mask_key(value: str, api_key: str | None) -> str:
    """Replace bearer / key strings with a safe placeholder."""
    if api_key and api_key in value:
        suffix = api_key[-4:] if len(api_key) >= 4 else "****"
        placeholder = f"<redacted:...{suffix}>"
        if api_key in placeholder:
            placeholder = "<redacted>"
        value = value.replace(api_key, placeholder)
    value = re.sub(
        r"(Bearer\s+)\S+",
        lambda m: f"{m.group(1)}<redacted>",
        value,
    )
    return value


def _preview(value: str) -> str:
    if len(value) <= _CONTENT_PREVIEW_CHARS:
        return value
    return f"{value[:_CONTENT_PREVIEW_CHARS]}...<{len(value)}_chars>"


def _redact_value(value: Any, api_key: str | None) -> Any:
    """Redact a single value (recursive for dicts / lists)."""
    if isinstance(value, dict):
        return _redact_dict(value, api_key)
    if isinstance(value, list):
        return [_redact_value(item, api_key) for item in value]
    if isinstance(value, str):
        if api_key:
            value = _mask_key(value, api_key)
        return value
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict, api_key: str | None) -> dict:
    """Recursively redact a dictionary."""
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            if isinstance(value, str):
                result[key] = _mask_key(value, api_key)
                if api_key is None or result[key] == value:
                    result[key] = "<redacted>"
            else:
                result[key] = "<redacted>"
        elif key_lower in _CONTENT_KEYS and isinstance(value, str):
            result[key] = _preview(_redact_value(value, api_key))
        else:
            result[key] = _redact_value(value, api_key)
    return result


def redact(payload: dict, api_key: str | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        The dictionary to sanitize (a request body, a row, or headers).
    api_key:
        The store API key.  If supplied, any occurrence of this exact
        string anywhere in the payload is replaced.

    Returns
    -------
    dict
        A new dictionary; the original *payload* is never mutated.

    Examples
    --------
    >>> redact({"Authorization": "Bearer sk_abc123"})
    {'Authorization': '<redacted>'}
    """
    safe = copy.deepcopy(payload)
    return _redact_dict(safe, api_key)
