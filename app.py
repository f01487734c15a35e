# app.py
import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.routing import APIRoute
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from settings import Settings, get_settings
from state_store import CookieStateStore
from twitch_oauth import (
    PORT_REQUIRED_MESSAGE,
    TOKEN_ERROR_MESSAGE,
    TokenExchangeError,
    TwitchTokenClient,
    build_authorize_url,
    build_local_redirect,
    generate_state,
    parse_port,
    remember_handshake,
    verify_callback,
)

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# =========================
# Dependencies
# =========================

def get_token_client(settings: Annotated[Settings, Depends(get_settings)]) -> TwitchTokenClient:
    return TwitchTokenClient(settings)


def get_state_store(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> CookieStateStore:
    return CookieStateStore(request, secure=settings.secure_cookies)


SettingsDep = Annotated[Settings, Depends(get_settings)]
TokenClientDep = Annotated[TwitchTokenClient, Depends(get_token_client)]
StateStoreDep = Annotated[CookieStateStore, Depends(get_state_store)]


def _bad_request() -> Response:
    return Response(status_code=400)


# =========================
# Twitch OAuth endpoints
# =========================

router = APIRouter(prefix="/auth/twitch", tags=["auth/twitch"])


@router.get("")
async def authorize(settings: SettingsDep, store: StateStoreDep, port: str | None = None):
    """Start the handshake: remember state + local port in cookies, then send the browser to Twitch."""
    redirect_port = parse_port(port)
    if redirect_port is None:
        return PlainTextResponse(PORT_REQUIRED_MESSAGE, status_code=400)

    state = generate_state()
    remember_handshake(store, state, redirect_port, settings.STATE_TTL_SECONDS)
    return store.commit(RedirectResponse(build_authorize_url(settings, state), status_code=302))


@router.get("/callback")
async def callback(
    store: StateStoreDep,
    tokens: TokenClientDep,
    code: str | None = None,
    state: str | None = None,
):
    redirect_port = verify_callback(store, code, state)
    if redirect_port is None:
        return _bad_request()

    try:
        issued = await tokens.exchange_code(code)
    except TokenExchangeError as e:
        logger.error(f"Error al obtener el token OAuth2: {e}")
        return PlainTextResponse(TOKEN_ERROR_MESSAGE, status_code=500)

    logger.info(f"Authorization complete, redirecting to local port {redirect_port}")
    return RedirectResponse(build_local_redirect(redirect_port, issued), status_code=302)


@router.get("/refresh")
async def refresh(
    tokens: TokenClientDep,
    refresh_token: str | None = None,
    port: str | None = None,
):
    if not refresh_token:
        return _bad_request()
    redirect_port = parse_port(port)
    if redirect_port is None:
        return _bad_request()

    try:
        issued = await tokens.refresh(refresh_token)
    except TokenExchangeError as e:
        logger.error(f"Error al obtener el token OAuth2: {e}")
        return PlainTextResponse(TOKEN_ERROR_MESSAGE, status_code=500)

    logger.info(f"Token refreshed, redirecting to local port {redirect_port}")
    return RedirectResponse(build_local_redirect(redirect_port, issued), status_code=302)


# =========================
# FastAPI app (public)
# =========================

def route_table(app: FastAPI) -> list[tuple[str, str]]:
    """(methods, path) for every API route, router routes first."""
    # Newer FastAPI keeps included routers nested instead of copying their routes onto app.routes
    table = []
    for route in [*router.routes, *app.routes]:
        if isinstance(route, APIRoute):
            entry = (",".join(sorted(route.methods)), route.path)
            if entry not in table:
                table.append(entry)
    return table


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.getLogger().setLevel(get_settings().LOG_LEVEL.upper())
    for methods, path in route_table(app):
        logger.info(f"{methods}\t{path}")
    yield


app = FastAPI(title="Twitch OAuth Relay", lifespan=lifespan)
app.include_router(router)


@app.get("/healthz")
async def healthz():
    return {"ok": True}


# Entry point (local dev)
if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT)
