"""Service discovery and inspection gateway for Kubernetes clusters.

Lets an AI coding assistant look at what is running in a cluster: list
services, read their status, probe their health, discover their HTTP API
shape, and issue read-only test calls.  The same seven tools are served
over MCP (:mod:`cluster_services.mcp_server`) and over an authenticated
HTTP REST shim (:mod:`server.app`).

Architecture::

    MCP client ──► mcp_server ─┐
                               ├──► handlers.execute_tool ──► arguments (validation)
    HTTP client ──► server.app ┘            │
                                            ├──► rate_limiter
                                            ├──► registry
                                            ├──► kubernetes_client ──► CoreV1Api / AppsV1Api
                                            ├──► discovery ──► registry → swagger → annotations → default
                                            └──► http_client ──► url_guard-checked probes

Tools:
    list_services          – Services and Deployments in a namespace
    get_service_info       – one Service with its Deployment and Pods
    get_service_health     – pod readiness plus an HTTP health probe
    discover_endpoints     – endpoint list from the best available source
    get_endpoint_schema    – request/response skeleton for one endpoint
    test_endpoint          – GET/HEAD/OPTIONS probe with port fallback
    get_api_documentation  – Swagger/OpenAPI/Markdown docs if published
"""

__version__ = "1.0.0"
