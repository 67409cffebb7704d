"""Session storage.

Session data lives behind an explicit store keyed by session id; request code
gets a ``SessionHandle`` bound to its own session through ``request.state``.

NOTE:
- ``InMemorySessionStore`` works per-process only. With several workers, back
  the interface with a shared store instead.
"""

from __future__ import annotations

import copy
import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict

FLASH_KEY = "_flash"
DEFAULT_IDLE_TTL = 1800
DEFAULT_MAX_SESSIONS = 10000


class SessionStore(ABC):
    @abstractmethod
    def get(self, session_id: str, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, session_id: str, key: str, value: Any) -> None: ...

    @abstractmethod
    def delete(self, session_id: str, key: str) -> None: ...

    @abstractmethod
    def clear(self, session_id: str) -> None: ...

    @abstractmethod
    def exists(self, session_id: str) -> bool: ...


class InMemorySessionStore(SessionStore):
    """
    Thread-safe dict-of-dicts store. Values are copied in and out.

    Sessions idle longer than ``idle_ttl`` seconds are dropped, and past
    ``max_sessions`` the least recently used session is evicted first.
    """

    def __init__(
        self,
        idle_ttl: float = DEFAULT_IDLE_TTL,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._lock = threading.Lock()
        self._sessions: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._last_access: Dict[str, float] = {}
        self._idle_ttl = idle_ttl
        self._max_sessions = max_sessions
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            self._evict_idle(self._clock())
            return len(self._sessions)

    def _evict_idle(self, now: float) -> None:
        if self._idle_ttl <= 0:
            return
        # least recently used first, so stop at the first live session
        for session_id in list(self._sessions):
            if now - self._last_access[session_id] < self._idle_ttl:
                break
            self._drop(session_id)

    def _drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)

    def _touch(self, session_id: str, now: float) -> None:
        self._sessions.move_to_end(session_id)
        self._last_access[session_id] = now

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            data = self._sessions.get(session_id)
            if data is None:
                return default
            self._touch(session_id, now)
            if key not in data:
                return default
            return copy.deepcopy(data[key])

    def set(self, session_id: str, key: str, value: Any) -> None:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            self._sessions.setdefault(session_id, {})[key] = copy.deepcopy(value)
            self._touch(session_id, now)
            if self._max_sessions > 0:
                while len(self._sessions) > self._max_sessions:
                    oldest = next(iter(self._sessions))
                    self._drop(oldest)

    def delete(self, session_id: str, key: str) -> None:
        with self._lock:
            self._sessions.get(session_id, {}).pop(key, None)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._drop(session_id)

    def exists(self, session_id: str) -> bool:
        with self._lock:
            self._evict_idle(self._clock())
            return session_id in self._sessions


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionHandle:
    """One session's view of a ``SessionStore``."""

    def __init__(self, store: SessionStore, session_id: str):
        self.store = store
        self.session_id = session_id

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self.session_id, key, default)

    def set(self, key: str, value: Any) -> None:
        self.store.set(self.session_id, key, value)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def remove(self, key: str) -> None:
        self.store.delete(self.session_id, key)

    def clear(self) -> None:
        self.store.clear(self.session_id)

    def flash(self, key: str, value: Any) -> None:
        """Store a value readable once, on a later request."""
        messages = self.get(FLASH_KEY, {})
        messages[key] = value
        self.set(FLASH_KEY, messages)

    def get_flash(self, key: str, default: Any = None) -> Any:
        messages = self.get(FLASH_KEY, {})
        value = messages.pop(key, default)
        self.set(FLASH_KEY, messages)
        return value

    def has_flash(self, key: str) -> bool:
        return key in self.get(FLASH_KEY, {})
