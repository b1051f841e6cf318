"""Best-effort endpoint discovery for cluster services.

Resolution is an ordered fold over discovery sources; the first source
that succeeds wins and results are never merged::

    registry (entry with endpoints)
        ──► swagger / OpenAPI document   (modes: auto, swagger)
            ──► Service annotation       (all modes)
                ──► hardcoded default    (always succeeds)

Each source is an *attempt* that either returns a
:class:`ServiceDiscoveryResult` or raises :class:`DiscoveryAttemptError`.
Attempt failures are logged and skipped, so :meth:`ServiceDiscovery.discover`
never raises for a reachable or unreachable service alike.  The
``discoveryMethod`` field of the result names the source that produced it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypedDict

import yaml

from cluster_services.config import ENDPOINTS_ANNOTATION, PROBE_TIMEOUT_MS
from cluster_services.errors import HttpError, KubernetesError, ValidationError
from cluster_services.http_client import HttpClient
from cluster_services.kubernetes_client import KubernetesClient
from cluster_services.registry import ServiceRegistry
from cluster_services.url_guard import validate_url

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

DISCOVERY_MODES = ("auto", "manual", "swagger")

#: Well-known locations of an OpenAPI / Swagger document, probed in order.
SWAGGER_PATHS = [
    "/swagger.json",
    "/swagger.yaml",
    "/api-docs",
    "/openapi.json",
    "/v3/api-docs",
    "/api/swagger.json",
]

OPENAPI_METHODS = ("get", "post", "put", "delete", "patch", "head", "options")
PARAMETER_LOCATIONS = ("query", "path", "body")
SUCCESS_CODES = ("200", "201", "204")


class EndpointParameter(TypedDict):
    name: str
    type: str
    required: bool
    location: str  # query | path | body


class DiscoveredEndpoint(TypedDict, total=False):
    path: str
    method: str
    description: str
    parameters: List[EndpointParameter]
    responseType: str
    authentication: str  # none | jwt | basic | unknown


class ServiceDiscoveryResult(TypedDict, total=False):
    serviceName: str
    baseUrl: str
    endpoints: List[DiscoveredEndpoint]
    discoveryMethod: str  # registry | swagger | annotations | default
    documentation: str


class DiscoveryAttemptError(Exception):
    """One discovery source could not produce a result."""


DEFAULT_ENDPOINTS: List[DiscoveredEndpoint] = [
    {"path": "/health", "method": "GET", "description": "Health check endpoint"},
    {"path": "/api/health", "method": "GET", "description": "API health check endpoint"},
]


# ---------------------------------------------------------------------------
# OpenAPI / Swagger parsing
# ---------------------------------------------------------------------------


def decode_document(body: Any) -> Dict[str, Any]:
    """Turn a probe body (already-decoded JSON or raw text) into a mapping."""
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            try:
                body = yaml.safe_load(body)
            except yaml.YAMLError as exc:
                raise DiscoveryAttemptError(f"document is neither JSON nor YAML: {exc}") from exc
    if not isinstance(body, dict):
        raise DiscoveryAttemptError("document is not a mapping")
    return body


def _response_for(responses: Dict[Any, Any], code: str) -> Any:
    # YAML documents may key responses by int.
    return responses.get(code) or responses.get(int(code))


def _extract_parameters(raw_params: Any) -> List[EndpointParameter]:
    params: List[EndpointParameter] = []
    if not isinstance(raw_params, list):
        return params

    for raw in raw_params:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        location = raw.get("in") or "query"
        if location == "formData":
            location = "body"
        if location not in PARAMETER_LOCATIONS:
            continue
        schema = raw.get("schema") if isinstance(raw.get("schema"), dict) else {}
        params.append(
            {
                "name": str(raw["name"]),
                "type": str(schema.get("type") or raw.get("type") or "string"),
                "required": bool(raw.get("required", False)),
                "location": location,
            }
        )
    return params


def _merge_parameters(
    path_level: List[EndpointParameter], operation_level: List[EndpointParameter]
) -> List[EndpointParameter]:
    merged = {(p["name"], p["location"]): p for p in path_level}
    merged.update({(p["name"], p["location"]): p for p in operation_level})
    return list(merged.values())


def _request_body_parameters(request_body: Any) -> List[EndpointParameter]:
    if not isinstance(request_body, dict):
        return []
    content = request_body.get("content")
    if not isinstance(content, dict):
        return []
    media = content.get("application/json") or {}
    schema = media.get("schema") if isinstance(media, dict) else None
    if not isinstance(schema, dict) or not isinstance(schema.get("properties"), dict):
        return []

    required = schema.get("required")
    if not isinstance(required, list):
        required = []
    return [
        {
            "name": str(name),
            "type": str((prop or {}).get("type") or "string") if isinstance(prop, dict) else "string",
            "required": name in required,
            "location": "body",
        }
        for name, prop in schema["properties"].items()
    ]


def _extract_response_type(
    responses: Any, produces: Sequence[str]
) -> Optional[str]:
    if not isinstance(responses, dict):
        return None
    for code in SUCCESS_CODES:
        response = _response_for(responses, code)
        if not isinstance(response, dict):
            continue
        content = response.get("content")
        if isinstance(content, dict):
            media = content.get("application/json")
            if isinstance(media, dict) and media.get("schema"):
                return "application/json"
        elif response.get("schema") and "application/json" in produces:
            return "application/json"
        return None
    return None


def _detect_authentication(security: Any) -> str:
    if not security:
        return "none"
    return "unknown"


def parse_openapi_document(
    document: Dict[str, Any], service_name: str, base_url: str
) -> ServiceDiscoveryResult:
    """Normalize an OpenAPI 3 or Swagger 2 document into a discovery result."""
    paths = document.get("paths")
    if not isinstance(paths, dict):
        raise DiscoveryAttemptError("document has no paths")

    global_produces = document.get("produces") or []
    endpoints: List[DiscoveredEndpoint] = []

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        path_params = _extract_parameters(path_item.get("parameters"))

        for method, operation in path_item.items():
            if str(method).lower() not in OPENAPI_METHODS or not isinstance(operation, dict):
                continue

            endpoint: DiscoveredEndpoint = {
                "path": str(path),
                "method": str(method).upper(),
                "authentication": _detect_authentication(operation.get("security")),
            }
            description = operation.get("summary") or operation.get("description")
            if description:
                endpoint["description"] = str(description)

            params = _merge_parameters(path_params, _extract_parameters(operation.get("parameters")))
            params.extend(_request_body_parameters(operation.get("requestBody")))
            if params:
                endpoint["parameters"] = params

            response_type = _extract_response_type(
                operation.get("responses"), operation.get("produces") or global_produces
            )
            if response_type:
                endpoint["responseType"] = response_type

            endpoints.append(endpoint)

    if not endpoints:
        raise DiscoveryAttemptError("document declares no operations")

    result: ServiceDiscoveryResult = {
        "serviceName": service_name,
        "baseUrl": base_url,
        "endpoints": endpoints,
        "discoveryMethod": "swagger",
    }
    info = document.get("info")
    if isinstance(info, dict) and info.get("description"):
        result["documentation"] = str(info["description"])
    return result


def _normalize_annotation_endpoint(raw: Any) -> Optional[DiscoveredEndpoint]:
    if not isinstance(raw, dict) or not isinstance(raw.get("path"), str):
        return None
    endpoint: DiscoveredEndpoint = {
        "path": raw["path"],
        "method": str(raw.get("method") or "GET").upper(),
    }
    for key in ("description", "responseType", "authentication"):
        if isinstance(raw.get(key), str):
            endpoint[key] = raw[key]  # type: ignore[literal-required]
    if isinstance(raw.get("parameters"), list):
        endpoint["parameters"] = [
            {
                "name": str(p["name"]),
                "type": str(p.get("type") or "string"),
                "required": bool(p.get("required", False)),
                "location": p.get("location") if p.get("location") in PARAMETER_LOCATIONS else "query",
            }
            for p in raw["parameters"]
            if isinstance(p, dict) and p.get("name")
        ]
    return endpoint


# ---------------------------------------------------------------------------
# Discovery engine
# ---------------------------------------------------------------------------

DiscoveryAttempt = Callable[[], Awaitable[ServiceDiscoveryResult]]


class ServiceDiscovery:
    def __init__(
        self,
        kubernetes: KubernetesClient,
        http: HttpClient,
        registry: ServiceRegistry,
        annotation: str = ENDPOINTS_ANNOTATION,
        probe_timeout_ms: int = PROBE_TIMEOUT_MS,
    ) -> None:
        self._kubernetes = kubernetes
        self._http = http
        self._registry = registry
        self._annotation = annotation
        self._probe_timeout_ms = probe_timeout_ms

    def attempts(
        self, service_name: str, namespace: str, mode: str
    ) -> List[Tuple[str, DiscoveryAttempt]]:
        """The ordered discovery sources for *mode*."""
        base_url = self._registry.base_url_for(service_name, namespace)
        sources: List[Tuple[str, DiscoveryAttempt]] = [
            ("registry", lambda: self._from_registry(service_name, namespace)),
        ]
        if mode in ("auto", "swagger"):
            sources.append(("swagger", lambda: self._from_swagger(service_name, base_url)))
        sources.append(
            ("annotations", lambda: self._from_annotations(service_name, namespace, base_url))
        )
        return sources

    async def discover(
        self, service_name: str, namespace: str = "default", mode: str = "auto"
    ) -> ServiceDiscoveryResult:
        if mode not in DISCOVERY_MODES:
            raise ValidationError("Method must be 'auto', 'manual', or 'swagger'")

        for source, attempt in self.attempts(service_name, namespace, mode):
            try:
                result = await attempt()
            except DiscoveryAttemptError as exc:
                logger.debug(
                    "Discovery via %s failed for %s/%s: %s", source, namespace, service_name, exc
                )
                continue
            logger.info(
                "Discovered %d endpoints for %s/%s via %s",
                len(result["endpoints"]),
                namespace,
                service_name,
                source,
            )
            return result

        return {
            "serviceName": service_name,
            "baseUrl": self._registry.base_url_for(service_name, namespace),
            "endpoints": [dict(ep) for ep in DEFAULT_ENDPOINTS],  # type: ignore[misc]
            "discoveryMethod": "default",
        }

    # -- sources --------------------------------------------------------------

    async def _from_registry(self, service_name: str, namespace: str) -> ServiceDiscoveryResult:
        entry = self._registry.lookup(service_name, namespace)
        if entry is None or not entry.get("endpoints"):
            raise DiscoveryAttemptError("no registry entry with endpoints")

        endpoints: List[DiscoveredEndpoint] = []
        for ep in entry["endpoints"]:
            endpoint: DiscoveredEndpoint = {"path": ep["path"], "method": ep["method"]}
            if ep.get("description"):
                endpoint["description"] = ep["description"]
            endpoints.append(endpoint)

        return {
            "serviceName": service_name,
            "baseUrl": entry["baseUrl"],
            "endpoints": endpoints,
            "discoveryMethod": "registry",
        }

    async def _from_swagger(self, service_name: str, base_url: str) -> ServiceDiscoveryResult:
        for path in SWAGGER_PATHS:
            try:
                url = validate_url(base_url + path).geturl()
            except ValidationError as exc:
                raise DiscoveryAttemptError(f"URL rejected by guard: {exc}") from exc

            try:
                response = await self._http.get(url, timeout_ms=self._probe_timeout_ms)
            except HttpError as exc:
                logger.debug("No OpenAPI document at %s: %s", url, exc)
                continue

            if response["statusCode"] == 200 and response.get("body"):
                try:
                    document = decode_document(response["body"])
                    return parse_openapi_document(document, service_name, base_url)
                except (TypeError, AttributeError, KeyError, ValueError) as exc:
                    raise DiscoveryAttemptError(f"malformed document at {url}: {exc}") from exc

        raise DiscoveryAttemptError("Swagger/OpenAPI document not found")

    async def _from_annotations(
        self, service_name: str, namespace: str, base_url: str
    ) -> ServiceDiscoveryResult:
        try:
            service = await self._kubernetes.get_service(service_name, namespace)
        except KubernetesError as exc:
            raise DiscoveryAttemptError(str(exc)) from exc

        annotations = (service.metadata.annotations if service.metadata else None) or {}
        raw = annotations.get(self._annotation)
        if not raw:
            raise DiscoveryAttemptError(f"no {self._annotation} annotation")

        try:
            decoded = json.loads(raw)
        except ValueError as exc:
            raise DiscoveryAttemptError(f"annotation is not valid JSON: {exc}") from exc
        items = decoded if isinstance(decoded, list) else []
        endpoints = [ep for ep in (_normalize_annotation_endpoint(item) for item in items) if ep]
        return {
            "serviceName": service_name,
            "baseUrl": base_url,
            "endpoints": endpoints,
            "discoveryMethod": "annotations",
        }
