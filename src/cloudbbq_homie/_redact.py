"""Helpers for safe debug logging.

The configuration carries broker credentials; this module masks them before
the loaded configuration is written to DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset({"password", "username", "token", "credentials"})


def redact_for_log(value: Any, *, _depth: int = 0) -> Any:
    """Return a copy of *value* with credential fields replaced by ``<redacted>``."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, bytes):
        return value.hex()

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_KEYS and v is not None:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, _depth=_depth + 1) for v in value]

    return repr(value)
