"""Sink health counters.

Sinks never raise into the request path; failures are recorded here instead so
operators can see them (``GET /api/centinela/status``).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

FailureCallback = Callable[[str, BaseException], None]


class SinkDiagnostics:
    """Thread-safe per-sink success/failure counters with an optional failure hook."""

    def __init__(self, on_failure: Optional[FailureCallback] = None):
        self._lock = threading.Lock()
        self._on_failure = on_failure
        self._successes: Dict[str, int] = {}
        self._failures: Dict[str, int] = {}
        self._last_error: Dict[str, str] = {}

    def record_success(self, sink: str) -> None:
        with self._lock:
            self._successes[sink] = self._successes.get(sink, 0) + 1

    def record_failure(self, sink: str, exc: BaseException) -> None:
        with self._lock:
            self._failures[sink] = self._failures.get(sink, 0) + 1
            self._last_error[sink] = f"{type(exc).__name__}: {exc}"

        if self._on_failure is None:
            return
        try:
            self._on_failure(sink, exc)
        except Exception:
            logger.exception("Sink failure callback raised for sink=%s", sink)

    def failures(self, sink: str) -> int:
        with self._lock:
            return self._failures.get(sink, 0)

    def successes(self, sink: str) -> int:
        with self._lock:
            return self._successes.get(sink, 0)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            sinks = set(self._successes) | set(self._failures)
            return {
                sink: {
                    "successes": self._successes.get(sink, 0),
                    "failures": self._failures.get(sink, 0),
                    "last_error": self._last_error.get(sink),
                }
                for sink in sorted(sinks)
            }

    def reset(self) -> None:
        with self._lock:
            self._successes.clear()
            self._failures.clear()
            self._last_error.clear()
