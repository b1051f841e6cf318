"""Typed argument records for the seven tools.

Every tool call arrives as an untyped JSON mapping.  ``from_args`` runs
all validators and returns a frozen record, so handlers only ever see
clean values.  Unknown keys are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from cluster_services.config import DEFAULT_NAMESPACE
from cluster_services.discovery import DISCOVERY_MODES
from cluster_services.errors import ValidationError
from cluster_services.validation import (
    validate_endpoint,
    validate_headers,
    validate_http_method,
    validate_namespace,
    validate_query_params,
    validate_schema_method,
    validate_service_name,
    validate_timeout,
)

SERVICE_TYPES = ("Service", "Deployment")
DOC_FORMATS = ("swagger", "openapi", "markdown", "auto")


def _optional_str(value: Any, label: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    return value


def _bool(value: Any, label: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{label} must be a boolean")
    return value


@dataclass(frozen=True)
class ListServicesArgs:
    namespace: str = DEFAULT_NAMESPACE
    service_type: Optional[str] = None

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "ListServicesArgs":
        service_type = _optional_str(args.get("serviceType"), "Service type")
        if service_type is not None and service_type not in SERVICE_TYPES:
            raise ValidationError("Service type must be 'Service' or 'Deployment'")
        return cls(
            namespace=validate_namespace(args.get("namespace")),
            service_type=service_type,
        )


@dataclass(frozen=True)
class ServiceInfoArgs:
    service_name: str
    namespace: str = DEFAULT_NAMESPACE
    include_endpoints: bool = True

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "ServiceInfoArgs":
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            namespace=validate_namespace(args.get("namespace")),
            include_endpoints=_bool(args.get("includeEndpoints"), "includeEndpoints", True),
        )


@dataclass(frozen=True)
class ServiceHealthArgs:
    service_name: str
    namespace: str = DEFAULT_NAMESPACE
    check_endpoint: Optional[str] = None

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "ServiceHealthArgs":
        check_endpoint = args.get("checkEndpoint")
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            namespace=validate_namespace(args.get("namespace")),
            check_endpoint=validate_endpoint(check_endpoint) if check_endpoint else None,
        )


@dataclass(frozen=True)
class DiscoverEndpointsArgs:
    service_name: str
    namespace: str = DEFAULT_NAMESPACE
    mode: str = "auto"

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "DiscoverEndpointsArgs":
        mode = args.get("method") or "auto"
        if mode not in DISCOVERY_MODES:
            raise ValidationError("Method must be 'auto', 'manual', or 'swagger'")
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            namespace=validate_namespace(args.get("namespace")),
            mode=mode,
        )


@dataclass(frozen=True)
class EndpointSchemaArgs:
    service_name: str
    endpoint: str
    method: str = "GET"
    namespace: str = DEFAULT_NAMESPACE

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "EndpointSchemaArgs":
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            endpoint=validate_endpoint(args.get("endpoint")),
            method=validate_schema_method(args.get("method")),
            namespace=validate_namespace(args.get("namespace")),
        )


@dataclass(frozen=True)
class TestEndpointArgs:
    __test__ = False  # not a pytest test class

    service_name: str
    endpoint: str
    method: str = "GET"
    namespace: str = DEFAULT_NAMESPACE
    query_params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    timeout_ms: int = 5000

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "TestEndpointArgs":
        method = args.get("method")
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            endpoint=validate_endpoint(args.get("endpoint")),
            method=validate_http_method("GET" if method is None else method),
            namespace=validate_namespace(args.get("namespace")),
            query_params=validate_query_params(args.get("queryParams")),
            headers=validate_headers(args.get("headers")),
            timeout_ms=validate_timeout(args.get("timeout")),
        )


@dataclass(frozen=True)
class ApiDocumentationArgs:
    service_name: str
    namespace: str = DEFAULT_NAMESPACE
    format: str = "auto"

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "ApiDocumentationArgs":
        doc_format = args.get("format") or "auto"
        if doc_format not in DOC_FORMATS:
            raise ValidationError(
                "Format must be 'swagger', 'openapi', 'markdown', or 'auto'"
            )
        return cls(
            service_name=validate_service_name(args.get("serviceName")),
            namespace=validate_namespace(args.get("namespace")),
            format=doc_format,
        )
