"""CSRF token store.

Tokens are kept per session as ``{token: issued_at}``. A token stays valid for
an hour and may be reused until then; only the ten most recently issued tokens
are retained.
"""

from __future__ import annotations

import logging
import random
import secrets
import time
from typing import Callable, Dict, Optional

from windsurf.services.session_service import SessionHandle

logger = logging.getLogger(__name__)

SESSION_KEY = "_csrf_tokens"
TOKEN_BYTES = 32
TOKEN_TTL_SECONDS = 3600
MAX_TOKENS = 10
HEADER_NAME = "X-CSRF-TOKEN"


def _random_token(nbytes: int = TOKEN_BYTES) -> str:
    try:
        return secrets.token_hex(nbytes)
    except (NotImplementedError, OSError):
        logger.warning("Secure random source unavailable; using pseudo-random CSRF token")
        try:
            return "%0*x" % (nbytes * 2, random.SystemRandom().getrandbits(nbytes * 8))
        except (NotImplementedError, OSError):
            return "%0*x" % (nbytes * 2, random.getrandbits(nbytes * 8))


class CsrfTokenStore:
    """
    Session-scoped CSRF tokens.

    A token is issued when the store is created (``token_value``) and on every
    ``generate()`` call.
    """

    def __init__(
        self,
        session: SessionHandle,
        token_name: str = "csrf_token",
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[], str] = _random_token,
    ):
        self.session = session
        self.token_name = token_name
        self._clock = clock
        self._token_factory = token_factory
        self.token_value = self.generate()

    def _load(self) -> Dict[str, float]:
        tokens = self.session.get(SESSION_KEY, {})
        return dict(tokens) if isinstance(tokens, dict) else {}

    def generate(self) -> str:
        tokens = self._load()
        token = self._token_factory()
        now = self._clock()
        tokens[token] = now

        tokens = {t: ts for t, ts in tokens.items() if now - ts < TOKEN_TTL_SECONDS}

        if len(tokens) > MAX_TOKENS:
            # oldest first; stable sort keeps issue order among equal timestamps
            newest = sorted(tokens.items(), key=lambda item: item[1])[-MAX_TOKENS:]
            tokens = dict(newest)

        self.session.set(SESSION_KEY, tokens)
        return token

    def validate(self, token: Optional[str]) -> bool:
        """True for a known, unexpired token (left in place). Expired tokens are removed."""
        if not token:
            return False

        tokens = self._load()
        if token not in tokens:
            return False

        if self._clock() - tokens[token] < TOKEN_TTL_SECONDS:
            return True

        del tokens[token]
        self.session.set(SESSION_KEY, tokens)
        return False

    def stored_tokens(self) -> Dict[str, float]:
        return self._load()

    def tokens(self) -> Dict[str, str]:
        return {"name": self.token_name, "value": self.token_value}
