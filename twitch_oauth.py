import logging, secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from settings import Settings
from state_store import PORT_COOKIE, STATE_COOKIE, StateStore

logger = logging.getLogger(__name__)

SCOPES = [
    "chat:read",
    "chat:edit",
    "channel:moderate",
    "channel:manage:moderators",
    "moderator:manage:banned_users",
    "user:read:email",
]

STATE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_"
STATE_LENGTH = 43

PORT_REQUIRED_MESSAGE = "Se requiere un port"
TOKEN_ERROR_MESSAGE = "Error al obtener el token OAuth2. Por favor, inténtalo de nuevo."


class TokenExchangeError(Exception):
    """The token endpoint could not be reached or returned something unusable."""


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ===== handshake helpers =====
def generate_state(length: int = STATE_LENGTH) -> str:
    return "".join(secrets.choice(STATE_ALPHABET) for _ in range(length))

def parse_port(raw: Optional[str]) -> Optional[str]:
    """Return the port as a canonical string, or None if it is not a usable TCP port."""
    if not raw or not (raw.isascii() and raw.isdigit()):
        return None
    port = int(raw)
    if not 0 < port < 65536:
        return None
    return str(port)

def build_authorize_url(settings: Settings, state: str) -> str:
    params = {
        "client_id": settings.CLIENT_ID,
        "redirect_uri": settings.callback_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "state": state,
    }
    return f"{settings.TWITCH_AUTHORIZE_URL}?{urlencode(params)}"

def remember_handshake(store: StateStore, state: str, port: str, ttl: int) -> None:
    store.put(STATE_COOKIE, state, ttl)
    store.put(PORT_COOKIE, port, ttl)

def verify_callback(store: StateStore, code: Optional[str], state: Optional[str]) -> Optional[str]:
    """
    Check a provider callback against the state written by the initiate step.
    Returns the local redirect port, or None if the callback must be rejected.
    """
    if not code:
        return None
    port = parse_port(store.get(PORT_COOKIE))
    if port is None:
        return None
    stored_state = store.get(STATE_COOKIE)
    if not state or not stored_state:
        return None
    if not secrets.compare_digest(state.encode(), stored_state.encode()):
        return None
    return port

def format_expires_at(value: datetime) -> str:
    """ISO-8601 in UTC with milliseconds and a Z suffix (2024-01-01T01:00:00.000Z)."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def build_local_redirect(port: str, tokens: IssuedTokens) -> str:
    params = {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "expires_at": format_expires_at(tokens.expires_at),
    }
    # ":" stays literal so expires_at reads as the plain ISO string
    query = urlencode(params, safe=":")
    return f"http://localhost:{port}?{query}"


# ===== token endpoint =====
class TwitchTokenClient:
    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.transport = transport
        self.clock = clock

    async def exchange_code(self, code: str) -> IssuedTokens:
        """Exchange an authorization code for access+refresh tokens."""
        params = {
            "client_id": self.settings.CLIENT_ID,
            "client_secret": self.settings.CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.callback_uri,
        }
        return await self._request_tokens(params)

    async def refresh(self, refresh_token: str) -> IssuedTokens:
        params = {
            "client_id": self.settings.CLIENT_ID,
            "client_secret": self.settings.CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._request_tokens(params)

    async def _request_tokens(self, params: Dict[str, str]) -> IssuedTokens:
        # Twitch accepts the grant as query parameters on the POST
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.TOKEN_REQUEST_TIMEOUT, transport=self.transport
            ) as client:
                resp = await client.post(self.settings.TWITCH_TOKEN_URL, params=params)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"{params['grant_type']} request failed: {e!r}") from e

        received_at = self.clock()
        if not resp.is_success:
            raise TokenExchangeError(
                f"{params['grant_type']} rejected with HTTP {resp.status_code}: {resp.text[:200]}"
            )
        try:
            tok = TokenResponse.model_validate(resp.json())
        except ValueError as e:
            raise TokenExchangeError(f"unexpected token response: {e}") from e

        return IssuedTokens(
            access_token=tok.access_token,
            refresh_token=tok.refresh_token,
            expires_at=received_at + timedelta(seconds=tok.expires_in),
        )
