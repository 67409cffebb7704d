"""Small ASGI helpers for middleware that needs to look at the request body."""

from __future__ import annotations

from typing import Tuple

from starlette.types import Message, Receive


async def read_body(receive: Receive) -> Tuple[bytes, bool]:
    """
    Drain the request body from ``receive``.

    Returns (body, disconnected). Reading stops at the last body chunk or when
    the client disconnects.
    """
    chunks = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return b"".join(chunks), True
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            return b"".join(chunks), False


def replay_receive(body: bytes, receive: Receive) -> Receive:
    """A receive callable that hands ``body`` downstream once, then defers to ``receive``."""
    delivered = False

    async def _receive() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return _receive
