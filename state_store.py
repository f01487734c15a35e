"""
Short-lived key/value state for the OAuth handshake (CSRF state, redirect port).

Initiate writes, Callback reads. The deployed store is the browser's cookie jar;
MemoryStateStore keeps the same contract in-process.
"""
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from starlette.requests import Request
from starlette.responses import Response

STATE_COOKIE = "oauth_state"
PORT_COOKIE = "redirect_port"


class StateStore(Protocol):
    def put(self, key: str, value: str, ttl: int) -> None: ...

    def get(self, key: str) -> Optional[str]: ...


class CookieStateStore:
    """Reads from the request cookies; writes are queued until commit() sets them on a response."""

    def __init__(self, request: Request, secure: bool = False):
        self._cookies = request.cookies
        self.secure = secure
        self._pending: List[Tuple[str, str, int]] = []

    def put(self, key: str, value: str, ttl: int) -> None:
        self._pending.append((key, value, ttl))

    def get(self, key: str) -> Optional[str]:
        return self._cookies.get(key) or None

    def commit(self, response: Response) -> Response:
        for key, value, ttl in self._pending:
            response.set_cookie(
                key,
                value,
                max_age=ttl,
                path="/",
                httponly=True,
                secure=self.secure,
            )
        self._pending.clear()
        return response


@dataclass
class _Entry:
    value: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryStateStore:
    def __init__(self):
        self._entries: Dict[str, _Entry] = {}

    def put(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = _Entry(value=value, expires_at=time.monotonic() + ttl)

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(time.monotonic()):
            del self._entries[key]
            return None
        return entry.value
