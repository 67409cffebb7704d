"""
Bounded, non-destructive capture of request bodies for the audit trail.

Capture works on a binary stream. Seekable streams are rewound before and
after reading so the application handler still sees the full body.
"""

from __future__ import annotations

import json
import logging
from typing import Any, BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

BODY_OMITTED = "[BODY OMITTED BY CONTENT-TYPE]"
TRUNCATION_MARKER = "...[TRUNCATED]"

_OMITTED_TYPES = ("multipart/form-data", "application/octet-stream")


def is_omitted_content_type(content_type: Optional[str]) -> bool:
    ct = (content_type or "").lower()
    return any(t in ct for t in _OMITTED_TYPES)


def capture_body(content_type: Optional[str], stream: Optional[BinaryIO], max_bytes: int) -> Optional[str]:
    """
    Return the body as text for the audit record.

    - multipart / octet-stream: the omission sentinel, the stream is not touched
    - longer than ``max_bytes`` (when > 0): first ``max_bytes`` bytes + marker
    - unreadable stream or read error: None
    """
    if is_omitted_content_type(content_type):
        return BODY_OMITTED

    if stream is None:
        return None

    try:
        if getattr(stream, "readable", None) is not None and not stream.readable():
            return None

        seekable = _seekable(stream)
        if seekable:
            stream.seek(0)

        data = stream.read()

        if seekable:
            stream.seek(0)
    except (OSError, ValueError) as exc:
        logger.debug("Body capture failed: %s", exc)
        return None

    if data is None:
        return None
    if isinstance(data, str):
        data = data.encode("utf-8")

    if max_bytes > 0 and len(data) > max_bytes:
        return data[:max_bytes].decode("utf-8", errors="replace") + TRUNCATION_MARKER

    return data.decode("utf-8", errors="replace")


def _seekable(stream: BinaryIO) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, OSError, ValueError):
        return False


def decode_body(content_type: Optional[str], raw_body: Optional[str]) -> Any:
    """
    Decode a captured body by content type.

    JSON bodies are parsed (invalid JSON gives None), URL-encoded forms become a
    map, every other content type gives None.
    """
    if raw_body is None:
        return None

    ct = (content_type or "").lower()

    if "application/json" in ct:
        try:
            return json.loads(raw_body)
        except ValueError:
            return None

    if "application/x-www-form-urlencoded" in ct:
        return pairs_to_map(parse_qsl(raw_body, keep_blank_values=True))

    return None


def pairs_to_map(pairs: List[Tuple[str, str]]) -> Dict[str, Any]:
    """A key seen once maps to its value; a repeated key maps to all of its values."""
    out: Dict[str, Any] = {}
    for key, value in pairs:
        if key not in out:
            out[key] = value
        elif isinstance(out[key], list):
            out[key].append(value)
        else:
            out[key] = [out[key], value]
    return out
