"""Header redaction policy, plus field-name redaction for structured bodies."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

REDACTED = "[REDACTED]"

REDACT_KEYS = frozenset({
    "password", "password_confirmation", "pass", "secret", "token",
    "access_token", "refresh_token", "csrf_token",
    "authorization", "api_key", "apikey",
    "client_secret",
})


class RedactionPolicy:
    """
    Case-insensitive, exact-match set of sensitive header names.

    Matching headers have their whole value list replaced by ``["[REDACTED]"]``;
    every other header keeps its values in their original order.
    """

    def __init__(self, header_names: Iterable[str]):
        self._names = frozenset(
            name.strip().lower() for name in header_names if name and name.strip()
        )

    @property
    def names(self) -> frozenset:
        return self._names

    def is_sensitive(self, header_name: str) -> bool:
        return header_name.strip().lower() in self._names

    def apply(self, headers: Dict[str, List[str]]) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for name, values in headers.items():
            if self.is_sensitive(name):
                out[name] = [REDACTED]
            else:
                out[name] = list(values)
        return out

    def apply_items(self, items: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
        """Group (name, value) pairs by name, then redact."""
        return self.apply(group_header_items(items))


def group_header_items(items: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for name, value in items:
        grouped.setdefault(name, []).append(value)
    return grouped


def redact_fields(obj: Any, keys: Iterable[str] = REDACT_KEYS) -> Any:
    """Copy of a decoded JSON/form value with sensitive field values replaced, at any depth."""
    keys = frozenset(keys)
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower() in keys:
                out[k] = REDACTED
            else:
                out[k] = redact_fields(v, keys)
        return out
    if isinstance(obj, list):
        return [redact_fields(x, keys) for x in obj]
    return obj
