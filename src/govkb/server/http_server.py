"""GOVKB HTTP Server -- JSON API and Streamable HTTP MCP transport.

Lets the browser chat layer (or any other host) reach the knowledgebase
over HTTP: REST routes for match/learn/admin, plus the MCP server mounted
at /mcp. Every route except /health honours the optional API key, sent as
an ``x-api-key`` header or ``api_key`` query parameter.
"""

import contextlib
import logging
import secrets
from collections.abc import AsyncIterator
from pathlib import Path

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from govkb import bridge
from govkb.crypto import govkb_home

logger = logging.getLogger("govkb.server.http")


def _api_key_path() -> Path:
    return govkb_home() / "api_key"


def get_or_create_api_key() -> str:
    """Load the API key from $GOVKB_HOME/api_key, or generate one."""
    path = _api_key_path()
    if path.exists():
        return path.read_text().strip()
    key = secrets.token_urlsafe(32)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(key + "\n")
    path.chmod(0o600)
    return key


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_http_app(server, api_key: str | None = None) -> Starlette:
    """Create the Starlette ASGI app.

    Args:
        server: The MCP Server instance from mcp_server.py.
        api_key: Optional API key for authentication. None disables auth.
    """
    session_manager = StreamableHTTPSessionManager(
        app=server,
        json_response=True,
        stateless=True,
    )

    def _authorized(request: Request) -> bool:
        if not api_key:
            return True
        provided = request.headers.get("x-api-key") or request.query_params.get("api_key")
        return provided == api_key

    def _unauthorized() -> JSONResponse:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    async def mcp_asgi_app(scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI app for the /mcp endpoint -- delegates to StreamableHTTPSessionManager."""
        if not _authorized(Request(scope, receive)):
            await _unauthorized()(scope, receive, send)
            return
        await session_manager.handle_request(scope, receive, send)

    async def health(request: Request):
        return JSONResponse({"status": "ok", "server": "govkb"})

    def _context_or_none(body: dict):
        context = body.get("context") or {}
        return context if isinstance(context, dict) else None

    async def match(request: Request):
        if not _authorized(request):
            return _unauthorized()
        body = await _json_body(request)
        if body is None or not str(body.get("question") or "").strip():
            return JSONResponse({"error": "question is required"}, status_code=400)
        context = _context_or_none(body)
        if context is None:
            return JSONResponse({"error": "context must be an object"}, status_code=400)
        result = bridge.find_match(str(body["question"]), context)
        return JSONResponse({"match": result})

    async def learn(request: Request):
        if not _authorized(request):
            return _unauthorized()
        body = await _json_body(request)
        if body is None or "question" not in body or "answer" not in body:
            return JSONResponse({"error": "question and answer are required"}, status_code=400)
        context = _context_or_none(body)
        if context is None:
            return JSONResponse({"error": "context must be an object"}, status_code=400)
        admitted = bridge.learn(
            str(body["question"]),
            str(body["answer"]),
            context,
            body.get("source") or "ai-response",
        )
        return JSONResponse({"admitted": admitted})

    async def stats(request: Request):
        if not _authorized(request):
            return _unauthorized()
        return JSONResponse(bridge.stats())

    async def entries(request: Request):
        if not _authorized(request):
            return _unauthorized()
        return JSONResponse(bridge.export_entries())

    async def import_entries(request: Request):
        if not _authorized(request):
            return _unauthorized()
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "body must be a JSON array of entries"}, status_code=400)
        if isinstance(payload, dict):
            payload = payload.get("entries")
        if not isinstance(payload, list):
            return JSONResponse({"error": "body must be a JSON array of entries"}, status_code=400)
        return JSONResponse({"imported": bridge.import_entries(payload)})

    async def remove_entry(request: Request):
        if not _authorized(request):
            return _unauthorized()
        entry_id = request.path_params["entry_id"]
        if not bridge.remove_entry(entry_id):
            return JSONResponse({"error": f"Entry {entry_id} not found"}, status_code=404)
        return JSONResponse({"removed": entry_id})

    async def clear(request: Request):
        if not _authorized(request):
            return _unauthorized()
        bridge.clear()
        return JSONResponse({"cleared": True})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            yield

    app = Starlette(
        routes=[
            Mount("/mcp", app=mcp_asgi_app),
            Route("/health", endpoint=health),
            Route("/match", endpoint=match, methods=["POST"]),
            Route("/learn", endpoint=learn, methods=["POST"]),
            Route("/stats", endpoint=stats),
            Route("/entries", endpoint=entries),
            Route("/entries/import", endpoint=import_entries, methods=["POST"]),
            Route("/entries/{entry_id}", endpoint=remove_entry, methods=["DELETE"]),
            Route("/clear", endpoint=clear, methods=["POST"]),
        ],
        lifespan=lifespan,
    )
    return app


async def run_http(host: str, port: int, api_key: str | None) -> None:
    """Create the HTTP app around the MCP server and run it under uvicorn."""
    import uvicorn

    from govkb.server.mcp_server import server

    bridge.get_store()
    app = create_http_app(server, api_key=api_key)
    logger.info("Serving GOVKB HTTP API on %s:%d (auth %s)", host, port, "on" if api_key else "off")
    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    srv = uvicorn.Server(config)
    try:
        await srv.serve()
    finally:
        bridge.reset_store()
