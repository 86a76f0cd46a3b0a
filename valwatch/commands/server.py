"""HTTP command surface — lets a chat bot forward commands and read state.

Runs as an ``aiohttp`` web server alongside the monitoring loop.
Exposes:
- ``POST /commands``               → run a ``!command`` for a subscriber
- ``GET /api/validators``          → the registry in its persisted layout
- ``GET /api/validators/{address}`` → one record
- ``GET /api/health``              → cycle counters
"""

from __future__ import annotations

import base64
import hmac
import json
from typing import Any

from aiohttp import web

from valwatch.commands.handler import CommandHandler, Reply
from valwatch.validators.detector import ChangeDetector
from valwatch.validators.registry import ValidatorRegistry


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username = request.app.get("auth_username")
    password = request.app.get("auth_password")
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="Validator Watch"'},
            )
    return await handler(request)


def render_reply(reply: Reply) -> dict[str, Any]:
    if isinstance(reply, str):
        return {"handled": True, "title": "", "body": reply, "fields": {}}
    return {
        "handled": True,
        "severity": reply.severity.name,
        "title": reply.title,
        "body": reply.body,
        "fields": reply.fields,
    }


async def _handle_command(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return web.json_response({"error": "expected an object"}, status=400)
    user_id = str(payload.get("user_id", "")).strip()
    text = str(payload.get("text", "")).strip()
    if not user_id or not text:
        return web.json_response({"error": "user_id and text are required"}, status=400)

    commands: CommandHandler = request.app["commands"]
    reply = await commands.handle(text, user_id)
    if reply is None:
        return web.json_response({"handled": False})
    return web.json_response(render_reply(reply))


async def _handle_validators(request: web.Request) -> web.Response:
    registry: ValidatorRegistry = request.app["registry"]
    return web.json_response(registry.to_document())


async def _handle_validator(request: web.Request) -> web.Response:
    registry: ValidatorRegistry = request.app["registry"]
    record = registry.get(request.match_info["address"])
    if record is None:
        return web.json_response({"error": "validator not tracked"}, status=404)
    return web.json_response(record.model_dump(mode="json", by_alias=True))


async def _handle_health(request: web.Request) -> web.Response:
    registry: ValidatorRegistry = request.app["registry"]
    detector: ChangeDetector | None = request.app.get("detector")
    data: dict[str, Any] = {
        "tracked": len(registry),
        "active": len(registry.active_addresses()),
    }
    if detector is not None:
        data["running"] = detector.running
        data["cycle_count"] = detector.cycle_count
        data["last_era"] = detector.last_era
        data["last_cycle_at"] = (
            detector.last_cycle_at.isoformat() if detector.last_cycle_at else None
        )
    return web.json_response(data)


def create_command_app(
    commands: CommandHandler,
    registry: ValidatorRegistry,
    detector: ChangeDetector | None = None,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app["commands"] = commands
    app["registry"] = registry
    app["detector"] = detector
    app["auth_username"] = username
    app["auth_password"] = password
    app.router.add_post("/commands", _handle_command)
    app.router.add_get("/api/validators", _handle_validators)
    app.router.add_get("/api/validators/{address}", _handle_validator)
    app.router.add_get("/api/health", _handle_health)
    return app


async def start_command_server(
    commands: CommandHandler,
    registry: ValidatorRegistry,
    detector: ChangeDetector | None = None,
    host: str = "127.0.0.1",
    port: int = 8080,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the command server. Returns the runner for cleanup."""
    app = create_command_app(
        commands, registry, detector, username=username, password=password,
    )
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
