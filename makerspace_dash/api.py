"""JSON HTTP surface for the dashboard."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from . import constants
from .core import (
    AuthenticationError,
    DashboardError,
    IdentityProvider,
    InvalidInput,
    JobSource,
    PermissionDenied,
    TelemetrySource,
    User,
)
from .descriptions import JobDescriptionService
from .emptying import EmptyingTracker
from .health import HEALTH_KEY, HealthReporter, handle_health

LOGGER = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

TRACKER_KEY = web.AppKey("tracker", EmptyingTracker)
TELEMETRY_KEY = web.AppKey("telemetry", TelemetrySource)
JOBS_KEY = web.AppKey("jobs", JobSource)
DESCRIPTIONS_KEY = web.AppKey("descriptions", JobDescriptionService)
IDENTITY_KEY = web.AppKey("identity", IdentityProvider)
USER_KEY = web.RequestKey("user", User)

PUBLIC_PATHS = frozenset({"/api/auth/signin", "/api/auth/signout", "/healthz"})

ERROR_STATUS: tuple[tuple[type[DashboardError], int], ...] = (
    (InvalidInput, 400),
    (AuthenticationError, 401),
    (PermissionDenied, 403),
)


def json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _access_token(request: web.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(constants.SESSION_COOKIE_NAME) or None


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _current_user(request: web.Request) -> User:
    return request[USER_KEY]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except DashboardError as exc:
        status = next(
            (code for error_type, code in ERROR_STATUS if isinstance(exc, error_type)),
            500,
        )
        if status >= 500:
            LOGGER.warning("%s %s failed: %s", request.method, request.path, exc)
        return json_error(str(exc), status)
    except Exception as exc:
        LOGGER.exception("Unhandled error serving %s %s", request.method, request.path)
        return json_error(str(exc) or "Internal server error", 500)


@web.middleware
async def auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.path in PUBLIC_PATHS:
        return await handler(request)

    token = _access_token(request)
    user = await request.app[IDENTITY_KEY].get_user(token) if token else None
    if user is None:
        return json_error("Unauthorized", 401)

    request[USER_KEY] = user
    return await handler(request)


# ----------------------------------------------------------------------
# Auth
# ----------------------------------------------------------------------
async def sign_in(request: web.Request) -> web.Response:
    body = await _read_json(request)
    email = str(body.get("email") or "").strip()
    password = str(body.get("password") or "")
    if not email or not password:
        raise InvalidInput("Email and password are required.")

    token = await request.app[IDENTITY_KEY].sign_in(email, password)
    response = web.json_response({"ok": True})
    response.set_cookie(
        constants.SESSION_COOKIE_NAME,
        token,
        httponly=True,
        samesite="Lax",
        path="/",
    )
    return response


async def sign_out(request: web.Request) -> web.Response:
    token = _access_token(request)
    if token:
        await request.app[IDENTITY_KEY].sign_out(token)
    response = web.json_response({"ok": True})
    response.del_cookie(constants.SESSION_COOKIE_NAME, path="/")
    return response


# ----------------------------------------------------------------------
# Telemetry passthrough
# ----------------------------------------------------------------------
async def list_printers(request: web.Request) -> web.Response:
    printers = await request.app[TELEMETRY_KEY].list_printers()
    return web.json_response({"printers": [printer.as_dict() for printer in printers]})


async def list_jobs(request: web.Request) -> web.Response:
    try:
        limit = int(request.query.get("limit", constants.DEFAULT_JOB_LIMIT))
    except ValueError:
        limit = constants.DEFAULT_JOB_LIMIT
    jobs = await request.app[JOBS_KEY].list_jobs(limit)
    return web.json_response({"jobs": [job.as_dict() for job in jobs]})


# ----------------------------------------------------------------------
# Descriptions and ownership
# ----------------------------------------------------------------------
async def get_descriptions(request: web.Request) -> web.Response:
    user = _current_user(request)
    ids = request.query.get("jobIds", "").split(",")
    descriptions = await request.app[DESCRIPTIONS_KEY].get_descriptions(ids)
    return web.json_response({"descriptions": descriptions, "currentUserId": user.id})


async def save_description(request: web.Request) -> web.Response:
    user = _current_user(request)
    body = await _read_json(request)
    await request.app[DESCRIPTIONS_KEY].save_description(
        user.id, str(body.get("jobId") or ""), body.get("description")
    )
    return web.json_response({"ok": True})


async def claim_jobs(request: web.Request) -> web.Response:
    user = _current_user(request)
    body = await _read_json(request)
    job_ids = body.get("jobIds")
    if not isinstance(job_ids, list):
        job_ids = []
    result = await request.app[DESCRIPTIONS_KEY].claim(user.id, job_ids)
    return web.json_response(result.as_dict())


async def unclaim_job(request: web.Request) -> web.Response:
    user = _current_user(request)
    body = await _read_json(request)
    await request.app[DESCRIPTIONS_KEY].unclaim(user.id, str(body.get("jobId") or ""))
    return web.json_response({"ok": True})


# ----------------------------------------------------------------------
# Emptying state
# ----------------------------------------------------------------------
async def refresh_emptying(request: web.Request) -> web.Response:
    annotated = await request.app[TRACKER_KEY].refresh()
    return web.json_response({"printers": [item.as_dict() for item in annotated]})


async def set_emptying_flag(request: web.Request) -> web.Response:
    body = await _read_json(request)
    printer_id = str(body.get("printerId") or "").strip()
    await request.app[TRACKER_KEY].set_flag(printer_id, bool(body.get("needsEmptying")))
    return web.json_response({"ok": True})


def create_app(
    *,
    tracker: EmptyingTracker,
    telemetry: TelemetrySource,
    jobs: JobSource,
    descriptions: JobDescriptionService,
    identity: IdentityProvider,
    health: HealthReporter,
) -> web.Application:
    app = web.Application(middlewares=[error_middleware, auth_middleware])
    app[TRACKER_KEY] = tracker
    app[TELEMETRY_KEY] = telemetry
    app[JOBS_KEY] = jobs
    app[DESCRIPTIONS_KEY] = descriptions
    app[IDENTITY_KEY] = identity
    app[HEALTH_KEY] = health

    app.router.add_post("/api/auth/signin", sign_in)
    app.router.add_post("/api/auth/signout", sign_out)
    app.router.add_get("/api/bambu/printers", list_printers)
    app.router.add_get("/api/bambu/jobs", list_jobs)
    app.router.add_get("/api/descriptions", get_descriptions)
    app.router.add_post("/api/descriptions", save_description)
    app.router.add_post("/api/descriptions/claim", claim_jobs)
    app.router.add_post("/api/descriptions/unclaim", unclaim_job)
    app.router.add_get("/api/printers/emptying", refresh_emptying)
    app.router.add_post("/api/printers/emptying", set_emptying_flag)
    app.router.add_get("/healthz", handle_health)
    return app
