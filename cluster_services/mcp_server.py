"""MCP server for cluster service discovery and inspection.

Exposes the seven read-only tools over the Model Context Protocol.  Every
tool is a thin wrapper that forwards its arguments to
:func:`cluster_services.handlers.execute_tool`::

    MCP client  ──►  @mcp.tool wrapper  ──►  execute_tool(name, args, context)
                                                    │
                        ┌───────────────────────────┼────────────────────┐
                        ▼                           ▼                    ▼
                 KubernetesClient             HttpClient (probes)   ServiceDiscovery

Successful calls return the JSON payload as text.  Failed calls raise
``ToolError`` carrying the JSON error envelope so the protocol-level
``isError`` flag is set.

Usage (local development)::

    python -m cluster_services.mcp_server                       # stdio
    MCP_TRANSPORT=streamable-http python -m cluster_services.mcp_server
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from cluster_services.config import (
    LOG_FORMAT,
    LOG_LEVEL,
    MCP_PORT,
    MCP_TRANSPORT,
    SERVER_NAME,
)
from cluster_services.handlers import ToolContext, create_context, execute_tool

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thread-safe singleton: tool context
# ---------------------------------------------------------------------------

_context: Optional[ToolContext] = None
_context_lock = threading.Lock()


def get_context() -> ToolContext:
    """Lazily build the shared :class:`ToolContext` (thread-safe)."""
    global _context
    if _context is not None:
        return _context
    with _context_lock:
        if _context is None:
            _context = create_context()
            logger.info(
                "Tool context ready (%d registry entries)", len(_context.registry)
            )
        return _context


async def _invoke(name: str, arguments: Dict[str, Any]) -> str:
    context = get_context()
    context.rate_limiter.start()

    # Omitted optional arguments arrive as None; drop them so defaults apply.
    args = {key: value for key, value in arguments.items() if value is not None}
    result = await execute_tool(name, args, context)
    if result.is_error:
        raise ToolError(result.to_json())
    return result.to_json()


# ---------------------------------------------------------------------------
# FastMCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    name=SERVER_NAME,
    instructions=(
        "Read-only discovery and inspection of services running in a "
        "Kubernetes cluster.  List services, check their health, discover "
        "their HTTP endpoints and documentation, and issue safe test calls "
        "(GET, HEAD, OPTIONS only) against cluster-internal URLs."
    ),
)


@mcp.tool()
async def list_services(
    namespace: Optional[str] = None, serviceType: Optional[str] = None
) -> str:
    """List all services deployed in the Kubernetes cluster.

    Args:
        namespace: Kubernetes namespace (default: 'default').
        serviceType: Filter by service type ('Service' or 'Deployment').
    """
    return await _invoke("list_services", {"namespace": namespace, "serviceType": serviceType})


@mcp.tool()
async def get_service_info(
    serviceName: str,
    namespace: Optional[str] = None,
    includeEndpoints: Optional[bool] = None,
) -> str:
    """Get detailed information about a specific service.

    Args:
        serviceName: Name of the service.
        namespace: Kubernetes namespace (default: 'default').
        includeEndpoints: Include endpoint details (default: true).
    """
    return await _invoke(
        "get_service_info",
        {"serviceName": serviceName, "namespace": namespace, "includeEndpoints": includeEndpoints},
    )


@mcp.tool()
async def get_service_health(
    serviceName: str,
    namespace: Optional[str] = None,
    checkEndpoint: Optional[str] = None,
) -> str:
    """Check the health status of a service.

    Combines pod readiness with an HTTP probe of the health endpoint.

    Args:
        serviceName: Name of the service.
        namespace: Kubernetes namespace.
        checkEndpoint: Specific health check endpoint to test (default: /health).
    """
    return await _invoke(
        "get_service_health",
        {"serviceName": serviceName, "namespace": namespace, "checkEndpoint": checkEndpoint},
    )


@mcp.tool()
async def discover_endpoints(
    serviceName: str,
    namespace: Optional[str] = None,
    method: Optional[str] = None,
) -> str:
    """Discover API endpoints for a service.

    Args:
        serviceName: Name of the service.
        namespace: Kubernetes namespace.
        method: Discovery method: 'auto', 'manual', or 'swagger' (default: auto).
    """
    return await _invoke(
        "discover_endpoints",
        {"serviceName": serviceName, "namespace": namespace, "method": method},
    )


@mcp.tool()
async def get_endpoint_schema(
    serviceName: str,
    endpoint: str,
    method: Optional[str] = None,
    namespace: Optional[str] = None,
) -> str:
    """Get request/response schema for a specific endpoint.

    Args:
        serviceName: Name of the service.
        endpoint: API endpoint path (e.g., '/api/v1/orders').
        method: HTTP method (GET, POST, etc.; default GET).
        namespace: Kubernetes namespace.
    """
    return await _invoke(
        "get_endpoint_schema",
        {
            "serviceName": serviceName,
            "endpoint": endpoint,
            "method": method,
            "namespace": namespace,
        },
    )


@mcp.tool()
async def test_endpoint(
    serviceName: str,
    endpoint: str,
    method: Optional[str] = None,
    namespace: Optional[str] = None,
    queryParams: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, Any]] = None,
    timeout: Optional[int] = None,
) -> str:
    """Make a safe, read-only test API call (GET, HEAD, OPTIONS only).

    Args:
        serviceName: Name of the service.
        endpoint: API endpoint path.
        method: HTTP method (only safe methods allowed; default GET).
        namespace: Kubernetes namespace.
        queryParams: Query parameters.
        headers: HTTP headers.
        timeout: Timeout in milliseconds (100-30000, default 5000).
    """
    return await _invoke(
        "test_endpoint",
        {
            "serviceName": serviceName,
            "endpoint": endpoint,
            "method": method,
            "namespace": namespace,
            "queryParams": queryParams,
            "headers": headers,
            "timeout": timeout,
        },
    )


@mcp.tool()
async def get_api_documentation(
    serviceName: str,
    namespace: Optional[str] = None,
    format: Optional[str] = None,
) -> str:
    """Retrieve API documentation if available.

    Args:
        serviceName: Name of the service.
        namespace: Kubernetes namespace.
        format: 'swagger', 'openapi', 'markdown', or 'auto' (default).
    """
    return await _invoke(
        "get_api_documentation",
        {"serviceName": serviceName, "namespace": namespace, "format": format},
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    # stdout carries the protocol on stdio; logs go to stderr.
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, stream=sys.stderr)
    if MCP_TRANSPORT == "stdio":
        logger.info("Starting %s MCP server on stdio", SERVER_NAME)
        mcp.run(transport="stdio")
    else:
        logger.info("Starting %s MCP server (%s) on port %d", SERVER_NAME, MCP_TRANSPORT, MCP_PORT)
        mcp.run(transport=MCP_TRANSPORT, host="0.0.0.0", port=MCP_PORT)


if __name__ == "__main__":
    main()
