import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from cluster_services.auth import extract_api_key, is_dev_mode, validate_api_key
from cluster_services.config import (
    API_VERSION,
    LOG_FORMAT,
    LOG_LEVEL,
    MAX_BODY_BYTES,
    PORT,
    SERVER_NAME,
    SERVER_VERSION,
)
from cluster_services.errors import RateLimitError
from cluster_services.handlers import HANDLERS, ToolContext, create_context, execute_tool
from cluster_services.tools import TOOL_DEFINITIONS, TOOL_NAMES

logger = logging.getLogger(__name__)

API_PREFIX = f"/api/{API_VERSION}"

AVAILABLE_ROUTES = [
    "GET /health",
    f"GET {API_PREFIX}/tools",
    f"POST {API_PREFIX}/tools/:toolName",
]

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-API-Key"


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str


class ToolListResponse(BaseModel):
    tools: List[str]
    version: str
    definitions: List[Dict[str, Any]]


def _base_domain(hostname: str) -> str:
    parts = hostname.split(".")
    return ".".join(parts[-2:]) if len(parts) >= 2 else hostname


def _cors_headers(request: Request) -> Dict[str, str]:
    """CORS headers for *request*; the origin is reflected only for the same base domain."""
    headers = {
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }
    origin = request.headers.get("origin")
    host = request.headers.get("host")
    if origin and host:
        try:
            origin_host = urlsplit(origin).hostname
            host_name = urlsplit(f"https://{host}").hostname
        except ValueError:
            origin_host = host_name = None
        if origin_host and host_name and _base_domain(origin_host) == _base_domain(host_name):
            headers["Access-Control-Allow-Origin"] = origin
            headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def _is_https(request: Request) -> bool:
    protocol = request.headers.get("x-forwarded-proto") or request.url.scheme
    return protocol == "https" or request.url.hostname in LOCAL_HOSTS


def _body_too_large() -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": "Request body too large"})


def _client_key(request: Request, api_key: Optional[str]) -> str:
    if api_key:
        return api_key
    return request.client.host if request.client else "unknown"


def create_app(context: Optional[ToolContext] = None) -> FastAPI:
    """Build the HTTP REST shim around a :class:`ToolContext`."""
    ctx = context or create_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx.rate_limiter.start()
        logger.info("HTTP API ready: %s/tools (%d tools)", API_PREFIX, len(TOOL_NAMES))
        yield
        await ctx.aclose()

    app = FastAPI(title="Cluster Services API", version=SERVER_VERSION, lifespan=lifespan)
    app.state.context = ctx

    # -----------------------------------------------------------------------
    # HTTPS enforcement, CORS, rate limiting and API key authentication
    # -----------------------------------------------------------------------
    # /health is public.  Everything under /api is rate limited per API key
    # (falling back to the caller's IP) and then authenticated.

    @app.middleware("http")
    async def gateway(request: Request, call_next):
        if not _is_https(request):
            return JSONResponse(
                status_code=403,
                content={
                    "error": "HTTPS required",
                    "message": "This API only accepts HTTPS requests for security",
                },
            )

        cors = _cors_headers(request)
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors)

        if request.url.path.startswith("/api"):
            api_key = extract_api_key(request.headers)
            try:
                ctx.rate_limiter.check(f"http:{_client_key(request, api_key)}")
            except RateLimitError as exc:
                return JSONResponse(
                    status_code=429,
                    content={"error": "Rate limit exceeded", "message": str(exc)},
                    headers=cors,
                )

            if not api_key and not is_dev_mode():
                return JSONResponse(
                    status_code=401,
                    content={
                        "error": "Missing API key",
                        "message": "Provide via Authorization: Bearer <key> or X-API-Key header",
                    },
                    headers=cors,
                )
            if not validate_api_key(api_key):
                logger.warning(
                    "Rejected invalid API key for %s from %s",
                    request.url.path,
                    request.client.host if request.client else "unknown",
                )
                return JSONResponse(
                    status_code=403, content={"error": "Invalid API key"}, headers=cors
                )

        response = await call_next(request)
        response.headers.update(cors)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Not found",
                    "message": f"Route {request.method} {request.url.path} not found",
                    "availableRoutes": AVAILABLE_ROUTES,
                },
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint for Kubernetes probes"""
        return HealthResponse(
            status="healthy",
            service=SERVER_NAME,
            version=API_VERSION,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get(f"{API_PREFIX}/tools", response_model=ToolListResponse)
    async def list_tools():
        return ToolListResponse(tools=TOOL_NAMES, version=API_VERSION, definitions=TOOL_DEFINITIONS)

    @app.post(f"{API_PREFIX}/tools/{{tool_name}}")
    async def call_tool(tool_name: str, request: Request):
        """Run one tool with the JSON request body as its arguments."""
        if tool_name not in HANDLERS:
            return JSONResponse(status_code=404, content={"error": f"Unknown tool: {tool_name}"})

        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > MAX_BODY_BYTES:
            return _body_too_large()

        # Stop reading as soon as the limit is passed.
        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > MAX_BODY_BYTES:
                return _body_too_large()

        arguments: Any = {}
        if body.strip():
            try:
                arguments = json.loads(body)
            except ValueError:
                return JSONResponse(status_code=400, content={"error": "Malformed JSON body"})
        if not isinstance(arguments, dict):
            return JSONResponse(
                status_code=400, content={"error": "Request body must be a JSON object"}
            )

        result = await execute_tool(tool_name, arguments, ctx)
        if result.is_error:
            return JSONResponse(status_code=500, content=result.payload)
        return JSONResponse(content=result.payload)

    # Legacy unversioned routes
    @app.get("/api/tools")
    async def legacy_list_tools():
        return RedirectResponse(f"{API_PREFIX}/tools", status_code=301)

    @app.post("/api/tools/{tool_name}")
    async def legacy_call_tool(tool_name: str):
        return RedirectResponse(f"{API_PREFIX}/tools/{tool_name}", status_code=307)

    return app


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    logger.info("Starting %s HTTP API on port %d (API version %s)", SERVER_NAME, PORT, API_VERSION)
    uvicorn.run(create_app(), host="0.0.0.0", port=PORT)


if __name__ == "__main__":
    main()
