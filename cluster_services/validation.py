"""Validators for untrusted tool arguments.

Each ``validate_*`` function takes a raw JSON value and either returns the
cleaned value or raises :class:`~cluster_services.errors.ValidationError`.
They perform no I/O.
"""

from __future__ import annotations

import re
from typing import Any, Dict

from cluster_services.config import (
    DEFAULT_NAMESPACE,
    DEFAULT_TIMEOUT_MS,
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
)
from cluster_services.errors import ValidationError

#: RFC 1123 label, as Kubernetes requires for Service and Namespace names.
DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
ENDPOINT_PATH_RE = re.compile(r"^/[a-zA-Z0-9/\-_.]*$")

#: Methods ``test_endpoint`` may issue.  Anything else could change state.
SAFE_HTTP_METHODS = ("GET", "HEAD", "OPTIONS")

#: Verbs an endpoint schema may describe.
KNOWN_HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


def validate_service_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Service name must be a non-empty string")

    if not DNS_LABEL_RE.fullmatch(name):
        raise ValidationError(
            "Service name must be a valid Kubernetes name "
            "(lowercase alphanumeric and hyphens)"
        )
    return name.strip()


def validate_namespace(namespace: Any) -> str:
    """Return a valid namespace; absent or blank means ``DEFAULT_NAMESPACE``."""
    if namespace is None:
        return DEFAULT_NAMESPACE
    if not isinstance(namespace, str):
        raise ValidationError("Namespace must be a string")

    namespace = namespace.strip()
    if not namespace:
        return DEFAULT_NAMESPACE
    if not DNS_LABEL_RE.fullmatch(namespace):
        raise ValidationError(
            "Namespace must be a valid Kubernetes name "
            "(lowercase alphanumeric and hyphens)"
        )
    return namespace


def validate_http_method(method: Any) -> str:
    """Accept only read-only methods, case-insensitively."""
    if not isinstance(method, str):
        raise ValidationError("HTTP method must be a string")

    upper = method.strip().upper()
    if upper not in SAFE_HTTP_METHODS:
        raise ValidationError(
            "Only safe HTTP methods are allowed: " + ", ".join(SAFE_HTTP_METHODS)
        )
    return upper


def validate_schema_method(method: Any) -> str:
    if method is None:
        return "GET"
    if not isinstance(method, str):
        raise ValidationError("HTTP method must be a string")

    upper = method.strip().upper()
    if upper not in KNOWN_HTTP_METHODS:
        raise ValidationError(f"Unknown HTTP method: {method}")
    return upper


def validate_endpoint(endpoint: Any) -> str:
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValidationError("Endpoint must be a non-empty string")

    path = endpoint.strip()
    if not path.startswith("/"):
        raise ValidationError("Endpoint must start with '/'")
    if not ENDPOINT_PATH_RE.fullmatch(path):
        raise ValidationError("Endpoint contains invalid characters")
    return path


def validate_timeout(timeout: Any) -> int:
    """Return a timeout in milliseconds, defaulting to 5000."""
    if timeout is None:
        return DEFAULT_TIMEOUT_MS
    # bool is an int subclass; reject it explicitly.
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValidationError("Timeout must be a number")
    if isinstance(timeout, float) and not timeout.is_integer():
        raise ValidationError("Timeout must be a whole number of milliseconds")
    if timeout < MIN_TIMEOUT_MS or timeout > MAX_TIMEOUT_MS:
        raise ValidationError(
            f"Timeout must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS} milliseconds"
        )
    return int(timeout)


def _validate_string_mapping(value: Any, label: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{label} must be an object")

    result: Dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ValidationError(f"{label} keys must be strings")
        if item is None or isinstance(item, (dict, list)):
            raise ValidationError(f"{label} value for '{key}' must be a scalar")
        if isinstance(item, bool):
            result[key] = "true" if item else "false"
        else:
            result[key] = str(item)
    return result


def validate_query_params(params: Any) -> Dict[str, str]:
    return _validate_string_mapping(params, "Query parameters")


def validate_headers(headers: Any) -> Dict[str, str]:
    return _validate_string_mapping(headers, "Headers")
