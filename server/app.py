"""Mock JSON API the client is exercised against.

Mirrors the backend contract: users CRUD behind bearer auth, login handing out
an access JWT plus an opaque refresh token, refresh and logout driven by the
refresh-token header.
"""

import json
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from aiohttp import web
from multidict import CIMultiDict
from pydantic import ValidationError

from auth.contracts import CreateUser, JwtPayload, Login, LoginResponse, RefreshTokenResponse, User

from .config import ServerSettings, get_settings
from .database import Database
from .tokens import (
    bearer_token,
    create_access_token,
    create_refresh_token,
    decode_token,
    refresh_token_expiry,
)

log = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@dataclass(frozen=True)
class RecordedCall:
    method: str
    path: str  # relative to the prefix, e.g. "users/me"
    headers: CIMultiDict


DATABASE = web.AppKey("database", Database)
SETTINGS = web.AppKey("settings", ServerSettings)
CALLS = web.AppKey("calls", list)


def _unauthorized() -> web.Response:
    return web.json_response({"message": "Unauthorized"}, status=401)


def _not_found(user_id: int) -> web.Response:
    return web.json_response({"message": f"User with id {user_id} not found"}, status=404)


def _authenticate(request: web.Request) -> JwtPayload | None:
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    payload = decode_token(token, request.app[SETTINGS])
    if payload is None:
        return None
    try:
        return JwtPayload.model_validate(payload)
    except ValidationError:
        return None


async def _body(request: web.Request, model):
    try:
        return model.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        raise web.HTTPBadRequest(
            text=json.dumps({"message": f"Invalid body: {type(e).__name__}"}),
            content_type="application/json",
        ) from e


# ── users ──────────────────────────────────────────────────

async def get_users(request: web.Request) -> web.Response:
    if _authenticate(request) is None:
        return _unauthorized()
    return web.json_response(request.app[DATABASE].list_users())


async def create_user(request: web.Request) -> web.Response:
    data = await _body(request, CreateUser)
    try:
        user_id = request.app[DATABASE].create_user(data.name, data.email)
    except sqlite3.IntegrityError:
        return web.json_response({"message": "Email already registered"}, status=409)
    return web.json_response({"id": user_id}, status=201)


async def get_current_user(request: web.Request) -> web.Response:
    payload = _authenticate(request)
    if payload is None:
        return _unauthorized()
    user = request.app[DATABASE].get_user(payload.user_id)
    if user is None:
        return _not_found(payload.user_id)
    return web.json_response(User.model_validate(user).model_dump())


async def get_user_by_id(request: web.Request) -> web.Response:
    if _authenticate(request) is None:
        return _unauthorized()
    user_id = int(request.match_info["id"])
    user = request.app[DATABASE].get_user(user_id)
    if user is None:
        return _not_found(user_id)
    return web.json_response(user)


async def update_user(request: web.Request) -> web.Response:
    if _authenticate(request) is None:
        return _unauthorized()
    user_id = int(request.match_info["id"])
    data = await _body(request, CreateUser)
    if not request.app[DATABASE].update_user(user_id, data.name, data.email):
        return _not_found(user_id)
    return web.json_response({"id": user_id})


async def delete_user(request: web.Request) -> web.Response:
    if _authenticate(request) is None:
        return _unauthorized()
    request.app[DATABASE].delete_user(int(request.match_info["id"]))
    return web.Response(status=204)


# ── auth ───────────────────────────────────────────────────

async def login(request: web.Request) -> web.Response:
    data = await _body(request, Login)
    db = request.app[DATABASE]
    settings = request.app[SETTINGS]
    user = db.get_user_by_email(data.email)
    if user is None:
        return web.json_response({"message": "Bad credentials"}, status=400)

    refresh = create_refresh_token()
    db.issue_token(refresh, user["id"], refresh_token_expiry(settings))
    body = LoginResponse(
        token=create_access_token(user["id"], settings=settings),
        refresh_token=refresh,
    )
    log.info("User %d logged in", user["id"])
    return web.json_response(body.model_dump(by_alias=True))


async def refresh_token(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS]
    value = request.headers.get(settings.refresh_token_header)
    if value is None:
        return _unauthorized()
    token = request.app[DATABASE].find_token(value)
    if token is None:
        return _unauthorized()
    body = RefreshTokenResponse(token=create_access_token(token["user_id"], settings=settings))
    return web.json_response(body.model_dump())


async def logout(request: web.Request) -> web.Response:
    value = request.headers.get(request.app[SETTINGS].refresh_token_header)
    if value is not None:
        request.app[DATABASE].revoke_token(value)
    return web.Response(status=204)


ROUTES: dict[tuple[str, str], Handler] = {
    ("GET", "users"): get_users,
    ("POST", "users"): create_user,
    ("GET", "users/me"): get_current_user,
    ("GET", r"users/{id:\d+}"): get_user_by_id,
    ("PUT", r"users/{id:\d+}"): update_user,
    ("DELETE", r"users/{id:\d+}"): delete_user,
    ("POST", "authentication/login"): login,
    ("POST", "authentication/logout"): logout,
    ("POST", "tokens/refresh"): refresh_token,
}


@web.middleware
async def record_calls(request: web.Request, handler: Handler) -> web.StreamResponse:
    prefix = request.app[SETTINGS].prefix.rstrip("/")
    path = request.path
    if prefix and path.startswith(prefix):
        path = path[len(prefix):]
    request.app[CALLS].append(RecordedCall(request.method, path.lstrip("/"), request.headers.copy()))
    return await handler(request)


def create_app(
    database: Database | None = None,
    settings: ServerSettings | None = None,
    overrides: dict[tuple[str, str], Handler] | None = None,
) -> web.Application:
    """Build the mock API.

    *overrides* replaces handlers by ``(METHOD, path)`` key, e.g.
    ``{("GET", "users/me"): always_401}``.
    """
    settings = settings or get_settings()
    app = web.Application(middlewares=[record_calls])
    app[SETTINGS] = settings
    app[DATABASE] = database or Database(settings.database_path)
    app[CALLS] = []

    routes = dict(ROUTES)
    routes.update(overrides or {})
    prefix = settings.prefix.rstrip("/")
    for (method, path), handler in routes.items():
        app.router.add_route(method, f"{prefix}/{path}", handler)
    return app
