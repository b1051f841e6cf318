"""Tool handlers: one coroutine per exposed tool.

Each handler receives a validated argument record (see
:mod:`cluster_services.arguments`) and a :class:`ToolContext` holding the
injected collaborators, and returns a JSON-serializable payload.  Handlers
may raise; :func:`execute_tool` is the single boundary that turns every
exception into the uniform error envelope::

    {"error": "<sanitized message>"}          # plus "success": false for test_endpoint

Transport adapters (the MCP listener and the HTTP shim) only ever call
:func:`execute_tool`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

import yaml
from kubernetes import client

from cluster_services.arguments import (
    ApiDocumentationArgs,
    DiscoverEndpointsArgs,
    EndpointSchemaArgs,
    ListServicesArgs,
    ServiceHealthArgs,
    ServiceInfoArgs,
    TestEndpointArgs,
)
from cluster_services.config import DEFAULT_SERVICE_PORT, FALLBACK_PORTS, PROBE_TIMEOUT_MS
from cluster_services.discovery import ServiceDiscovery
from cluster_services.errors import (
    ClusterServicesError,
    HttpError,
    KubernetesError,
    ValidationError,
    sanitize_error,
)
from cluster_services.http_client import HttpClient
from cluster_services.kubernetes_client import KubernetesClient
from cluster_services.rate_limiter import RateLimiter
from cluster_services.registry import ServiceRegistry, cluster_base_url, load_registry
from cluster_services.url_guard import validate_url

logger = logging.getLogger(__name__)

#: Documentation locations probed by ``get_api_documentation``, in order.
DOC_PATHS: List[Tuple[str, str]] = [
    ("/swagger.json", "swagger"),
    ("/swagger.yaml", "swagger"),
    ("/openapi.json", "openapi"),
    ("/openapi.yaml", "openapi"),
    ("/api-docs", "swagger"),
    ("/v3/api-docs", "openapi"),
    ("/api/swagger.json", "swagger"),
    ("/docs", "markdown"),
    ("/README.md", "markdown"),
]


# ---------------------------------------------------------------------------
# Context and result envelope
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    payload: Dict[str, Any]
    is_error: bool = False

    def to_json(self) -> str:
        return json.dumps(self.payload, indent=2, default=str)


@dataclass
class ToolContext:
    """Collaborators shared by every tool call for the process lifetime."""

    kubernetes: KubernetesClient
    http: HttpClient
    registry: ServiceRegistry
    rate_limiter: RateLimiter
    discovery: Optional[ServiceDiscovery] = None

    def __post_init__(self) -> None:
        if self.discovery is None:
            self.discovery = ServiceDiscovery(self.kubernetes, self.http, self.registry)

    async def aclose(self) -> None:
        await self.rate_limiter.stop()
        await self.http.aclose()


def create_context(registry_path: Optional[str] = None) -> ToolContext:
    """Build a context from environment configuration."""
    return ToolContext(
        kubernetes=KubernetesClient(),
        http=HttpClient(),
        registry=load_registry(registry_path),
        rate_limiter=RateLimiter(),
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Kubernetes object helpers
# ---------------------------------------------------------------------------


def _service_ports(service: client.V1Service) -> List[client.V1ServicePort]:
    return list((service.spec.ports if service.spec else None) or [])


def _main_port(service: client.V1Service) -> int:
    ports = _service_ports(service)
    return (ports[0].port if ports else None) or DEFAULT_SERVICE_PORT


def _label_selector(service: client.V1Service) -> Optional[str]:
    selector = service.spec.selector if service.spec else None
    if not selector:
        return None
    return ",".join(f"{key}={value}" for key, value in selector.items())


def _pod_is_ready(pod: client.V1Pod) -> bool:
    status = pod.status
    if status is None or status.phase != "Running":
        return False
    return any(c.type == "Ready" and c.status == "True" for c in status.conditions or [])


def deployment_status(deployment: client.V1Deployment) -> str:
    """``stopped`` when scaled to zero, ``running`` when fully ready, else ``pending``."""
    status = deployment.status
    desired = deployment.spec.replicas if deployment.spec else None
    if desired is None:
        desired = (status.replicas if status else None) or 0
    ready = (status.ready_replicas if status else None) or 0
    if desired == 0:
        return "stopped"
    if ready == desired:
        return "running"
    return "pending"


async def _optional_deployment(
    ctx: ToolContext, name: str, namespace: str
) -> Optional[client.V1Deployment]:
    try:
        return await ctx.kubernetes.get_deployment(name, namespace)
    except KubernetesError as exc:
        logger.debug("No deployment for %s/%s: %s", namespace, name, exc)
        return None


async def _selected_pods(
    ctx: ToolContext, service: client.V1Service, namespace: str
) -> List[client.V1Pod]:
    selector = _label_selector(service)
    if selector is None:
        return []
    return await ctx.kubernetes.list_pods(namespace, label_selector=selector)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def list_services(args: ListServicesArgs, ctx: ToolContext) -> Dict[str, Any]:
    logger.info("list_services: namespace=%r serviceType=%r", args.namespace, args.service_type)
    ctx.rate_limiter.check(f"list:{args.namespace}")

    services = await ctx.kubernetes.list_services(args.namespace)
    deployments = await ctx.kubernetes.list_deployments(args.namespace)

    items: List[Dict[str, Any]] = []
    for svc in services:
        name = svc.metadata.name if svc.metadata else "unknown"
        namespace = (svc.metadata.namespace if svc.metadata else None) or args.namespace
        items.append(
            {
                "name": name,
                "namespace": namespace,
                "type": "Service",
                "status": "running",
                "endpoints": [cluster_base_url(name, namespace, _main_port(svc))],
                "ports": [
                    {"port": p.port or 0, "protocol": p.protocol or "TCP"}
                    for p in _service_ports(svc)
                ],
                "labels": (svc.metadata.labels if svc.metadata else None) or {},
            }
        )

    for deploy in deployments:
        items.append(
            {
                "name": deploy.metadata.name if deploy.metadata else "unknown",
                "namespace": (deploy.metadata.namespace if deploy.metadata else None)
                or args.namespace,
                "type": "Deployment",
                "status": deployment_status(deploy),
                "endpoints": [],
                "ports": [],
                "labels": (deploy.metadata.labels if deploy.metadata else None) or {},
            }
        )

    if args.service_type:
        items = [item for item in items if item["type"] == args.service_type]
    return {"services": items}


async def get_service_info(args: ServiceInfoArgs, ctx: ToolContext) -> Dict[str, Any]:
    name, namespace = args.service_name, args.namespace
    logger.info("get_service_info: service=%s/%s", namespace, name)
    ctx.rate_limiter.check(f"info:{name}")

    service = await ctx.kubernetes.get_service(name, namespace)
    deployment = await _optional_deployment(ctx, name, namespace)
    pods = await _selected_pods(ctx, service, namespace)

    entry = ctx.registry.lookup(name, namespace)
    main_port = _main_port(service)

    dep_spec = deployment.spec if deployment else None
    dep_status = deployment.status if deployment else None
    replicas = (dep_spec.replicas if dep_spec else None) or 0
    ready_replicas = (dep_status.ready_replicas if dep_status else None) or 0

    metadata = service.metadata or client.V1ObjectMeta()
    result: Dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "type": "Service",
        "baseUrl": ctx.registry.base_url_for(name, namespace, main_port),
        "status": {
            "ready": ready_replicas > 0 and ready_replicas == replicas,
            "replicas": replicas,
            "availableReplicas": (dep_status.available_replicas if dep_status else None) or 0,
            "conditions": [
                {"type": c.type, "status": c.status, "message": c.message or ""}
                for c in (dep_status.conditions if dep_status else None) or []
            ],
        },
        "pods": {
            "total": len(pods),
            "ready": sum(1 for pod in pods if _pod_is_ready(pod)),
        },
        "labels": metadata.labels or {},
        "annotations": metadata.annotations or {},
        "createdAt": metadata.creation_timestamp.isoformat()
        if metadata.creation_timestamp
        else "",
    }

    if args.include_endpoints:
        path = (entry or {}).get("healthEndpoint") or "/"
        result["endpoints"] = [
            {
                "url": cluster_base_url(name, namespace, p.port or main_port),
                "port": p.port or main_port,
                "protocol": p.protocol or "TCP",
                "path": path,
            }
            for p in _service_ports(service)
        ]

    containers = (
        dep_spec.template.spec.containers
        if dep_spec and dep_spec.template and dep_spec.template.spec
        else None
    )
    if containers:
        result["image"] = containers[0].image
    return result


async def get_service_health(args: ServiceHealthArgs, ctx: ToolContext) -> Dict[str, Any]:
    name, namespace = args.service_name, args.namespace
    logger.info("get_service_health: service=%s/%s", namespace, name)
    ctx.rate_limiter.check(f"health:{name}")

    service = await ctx.kubernetes.get_service(name, namespace)
    pods = await _selected_pods(ctx, service, namespace)
    running = sum(1 for pod in pods if _pod_is_ready(pod))

    if not pods or running == 0:
        k8s_status = "down"
    elif running == len(pods):
        k8s_status = "ok"
    else:
        k8s_status = "degraded"

    entry = ctx.registry.lookup(name, namespace)
    endpoint = args.check_endpoint or (entry or {}).get("healthEndpoint") or "/health"
    base_url = ctx.registry.base_url_for(name, namespace, _main_port(service))

    try:
        url = validate_url(base_url + endpoint).geturl()
        probe = await ctx.http.get(url, timeout_ms=PROBE_TIMEOUT_MS)
        http_check = {
            "endpoint": endpoint,
            "statusCode": probe["statusCode"],
            "responseTime": probe["responseTime"],
            "status": "ok" if 200 <= probe["statusCode"] < 400 else "error",
        }
    except (HttpError, ValidationError) as exc:
        logger.info("Health probe for %s/%s failed: %s", namespace, name, exc)
        http_check = {"endpoint": endpoint, "statusCode": 0, "responseTime": 0, "status": "error"}

    healthy = k8s_status == "ok" and http_check["status"] == "ok"
    return {
        "serviceName": name,
        "status": "healthy" if healthy else "unhealthy",
        "checks": {
            "kubernetes": {"podsRunning": running, "podsTotal": len(pods), "status": k8s_status},
            "http": http_check,
        },
        "lastChecked": _now_iso(),
    }


async def discover_endpoints(args: DiscoverEndpointsArgs, ctx: ToolContext) -> Dict[str, Any]:
    logger.info(
        "discover_endpoints: service=%s/%s mode=%s", args.namespace, args.service_name, args.mode
    )
    ctx.rate_limiter.check(f"discover:{args.service_name}")
    return dict(await ctx.discovery.discover(args.service_name, args.namespace, args.mode))


async def get_endpoint_schema(args: EndpointSchemaArgs, ctx: ToolContext) -> Dict[str, Any]:
    logger.info(
        "get_endpoint_schema: service=%s/%s %s %s",
        args.namespace,
        args.service_name,
        args.method,
        args.endpoint,
    )
    ctx.rate_limiter.check(f"schema:{args.service_name}:{args.endpoint}")

    discovered = await ctx.discovery.discover(args.service_name, args.namespace, "auto")
    match = next(
        (
            ep
            for ep in discovered["endpoints"]
            if ep["path"] == args.endpoint and ep["method"].upper() == args.method
        ),
        None,
    )

    if match is None:
        return {
            "endpoint": args.endpoint,
            "method": args.method,
            "description": "Endpoint schema not available",
            "request": {
                "headers": {},
                "queryParams": [],
                "pathParams": [],
                "authentication": {"type": "unknown", "required": False},
            },
            "response": {
                "statusCodes": [
                    {"code": 200, "description": "Success"},
                    {"code": 404, "description": "Not found"},
                    {"code": 500, "description": "Server error"},
                ],
            },
            "note": "Endpoint not found in discovery. Schema may need to be manually configured.",
        }

    params = match.get("parameters") or []
    body_params = [p for p in params if p["location"] == "body"]
    authentication = match.get("authentication") or "unknown"

    request: Dict[str, Any] = {
        "headers": {},
        "queryParams": [p for p in params if p["location"] == "query"],
        "pathParams": [p for p in params if p["location"] == "path"],
        "authentication": {"type": authentication, "required": authentication != "none"},
    }
    if body_params:
        request["body"] = {
            "schema": {
                "type": "object",
                "properties": {p["name"]: {"type": p["type"]} for p in body_params},
                "required": [p["name"] for p in body_params if p["required"]],
            }
        }

    response: Dict[str, Any] = {
        "statusCodes": [
            {"code": 200, "description": "Success"},
            {"code": 400, "description": "Bad request"},
            {"code": 404, "description": "Not found"},
            {"code": 500, "description": "Server error"},
        ],
    }
    if match.get("responseType"):
        response["schema"] = {"type": match["responseType"]}

    return {
        "endpoint": args.endpoint,
        "method": args.method,
        "description": match.get("description", ""),
        "request": request,
        "response": response,
    }


def _probe_url(base_url: str, endpoint: str, query_params: Mapping[str, str]) -> str:
    url = base_url + endpoint
    if query_params:
        url += "?" + urlencode(query_params)
    return validate_url(url).geturl()


async def test_endpoint(args: TestEndpointArgs, ctx: ToolContext) -> Dict[str, Any]:
    """Issue one read-only probe, falling back across common ports.

    Registered services get a single attempt against their registry base
    URL.  Unregistered services are tried on each of ``FALLBACK_PORTS`` in
    order, but only for GET; the first response of any status wins.  Every
    candidate URL passes the URL guard before it is used.
    """
    name, namespace = args.service_name, args.namespace
    logger.info(
        "test_endpoint: service=%s/%s %s %s", namespace, name, args.method, args.endpoint
    )
    ctx.rate_limiter.check(f"test:{name}:{args.endpoint}")

    entry = ctx.registry.lookup(name, namespace)
    if entry is not None:
        candidates = [entry["baseUrl"]]
    else:
        candidates = [cluster_base_url(name, namespace, port) for port in FALLBACK_PORTS]
    if args.method != "GET":
        candidates = candidates[:1]

    first_error: Optional[HttpError] = None
    for index, base_url in enumerate(candidates):
        try:
            url = _probe_url(base_url, args.endpoint, args.query_params)
        except ValidationError:
            if index == 0:
                raise
            logger.warning("Skipping fallback %s: rejected by URL guard", base_url)
            continue

        try:
            response = await ctx.http.request(
                args.method, url, headers=args.headers, timeout_ms=args.timeout_ms
            )
        except HttpError as exc:
            first_error = first_error or exc
            logger.info("Probe of %s failed: %s", url, exc)
            continue

        result: Dict[str, Any] = {
            "url": url,
            "success": 200 <= response["statusCode"] < 400,
            "statusCode": response["statusCode"],
            "headers": response["headers"],
            "responseTime": response["responseTime"],
        }
        if response.get("body") is not None:
            result["body"] = response["body"]
        return result

    if first_error is None:
        raise HttpError(f"No candidate URL to probe for service '{name}'")
    raise first_error


test_endpoint.__test__ = False  # type: ignore[attr-defined]


def _parse_document(content: Any, doc_format: str) -> Any:
    if doc_format == "markdown" or not isinstance(content, str):
        return content
    try:
        return json.loads(content)
    except ValueError:
        pass
    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError:
        return content
    return parsed if isinstance(parsed, dict) else content


async def get_api_documentation(
    args: ApiDocumentationArgs, ctx: ToolContext
) -> Dict[str, Any]:
    name, namespace = args.service_name, args.namespace
    logger.info("get_api_documentation: service=%s/%s format=%s", namespace, name, args.format)
    ctx.rate_limiter.check(f"docs:{name}")

    base_url = ctx.registry.base_url_for(name, namespace)
    found: Optional[Tuple[Any, str]] = None

    for path, doc_format in DOC_PATHS:
        if args.format != "auto" and args.format != doc_format:
            continue
        try:
            url = validate_url(base_url + path).geturl()
        except ValidationError as exc:
            logger.debug("Documentation probe for %s rejected by URL guard: %s", name, exc)
            break
        try:
            response = await ctx.http.get(url, timeout_ms=PROBE_TIMEOUT_MS)
        except HttpError as exc:
            logger.debug("No documentation at %s: %s", url, exc)
            continue
        if response["statusCode"] == 200 and response.get("body"):
            found = (response["body"], doc_format)
            break

    if found is None:
        discovered = await ctx.discovery.discover(name, namespace, "swagger")
        if discovered.get("documentation"):
            found = (discovered["documentation"], "swagger")

    if found is None:
        return {
            "serviceName": name,
            "documentation": None,
            "availableFormats": [],
            "message": "No API documentation found for this service",
        }

    raw, doc_format = found
    content = _parse_document(raw, doc_format)
    documentation: Dict[str, Any] = {
        "format": doc_format,
        "content": content,
        "lastUpdated": _now_iso(),
    }
    if isinstance(content, dict) and isinstance(content.get("info"), dict):
        version = content["info"].get("version")
        if version is not None:
            documentation["version"] = str(version)

    return {
        "serviceName": name,
        "documentation": documentation,
        "availableFormats": [doc_format],
    }


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

Handler = Callable[[Any, ToolContext], Awaitable[Dict[str, Any]]]

HANDLERS: Dict[str, Tuple[Any, Handler]] = {
    "list_services": (ListServicesArgs, list_services),
    "get_service_info": (ServiceInfoArgs, get_service_info),
    "get_service_health": (ServiceHealthArgs, get_service_health),
    "discover_endpoints": (DiscoverEndpointsArgs, discover_endpoints),
    "get_endpoint_schema": (EndpointSchemaArgs, get_endpoint_schema),
    "test_endpoint": (TestEndpointArgs, test_endpoint),
    "get_api_documentation": (ApiDocumentationArgs, get_api_documentation),
}

#: Extra fields merged into a tool's error envelope.
ERROR_FIELDS: Dict[str, Dict[str, Any]] = {"test_endpoint": {"success": False}}


def error_result(tool_name: str, error: BaseException) -> ToolResult:
    payload = dict(ERROR_FIELDS.get(tool_name, {}))
    payload["error"] = sanitize_error(error)
    return ToolResult(payload, is_error=True)


async def execute_tool(
    name: str, arguments: Optional[Mapping[str, Any]], context: ToolContext
) -> ToolResult:
    """Validate *arguments*, run the named tool, and wrap the outcome."""
    entry = HANDLERS.get(name)
    if entry is None:
        return ToolResult({"error": f"Unknown tool: {name}"}, is_error=True)
    record_cls, handler = entry

    try:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ValidationError("Tool arguments must be an object")
        record = record_cls.from_args(arguments)
        payload = await handler(record, context)
    except ClusterServicesError as exc:
        logger.warning("%s failed: %s: %s", name, type(exc).__name__, exc)
        return error_result(name, exc)
    except Exception as exc:
        logger.exception("%s failed unexpectedly", name)
        return error_result(name, exc)

    return ToolResult(payload)
