"""Error taxonomy for the cluster services gateway.

Every failure a tool handler can surface is one of the classes below.
Handlers catch them at the boundary and run the message through
:func:`sanitize_error` before it is placed in the error envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

#: Substrings that mark a message as leaking configuration or credentials.
SENSITIVE_KEYWORDS = ("kubeconfig", "secret", "token", "password", "credential")

CONFIGURATION_ERROR_MESSAGE = "Configuration error: Unable to access cluster resources"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


class ClusterServicesError(Exception):
    """Base class for every error the gateway raises on purpose."""


class ValidationError(ClusterServicesError):
    """Malformed or unsafe input.  Never retried."""


class KubernetesError(ClusterServicesError):
    """A control-plane call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceNotFoundError(KubernetesError):
    def __init__(self, service_name: str, namespace: Optional[str] = None) -> None:
        ns = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"Service '{service_name}' not found{ns}", status_code=404)
        self.service_name = service_name
        self.namespace = namespace


class HttpError(ClusterServicesError):
    """An outbound probe failed before any HTTP response arrived.

    ``status_code`` is ``0`` for connection-class failures (refused,
    timeout, DNS), which is the "no response received" sentinel.
    """

    def __init__(self, message: str, status_code: int = 0, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RateLimitError(ClusterServicesError):
    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)


def sanitize_error(error: BaseException) -> str:
    """Return a caller-safe message for *error*.

    Messages of the gateway's own errors are passed through unless they
    mention configuration or credential material.  Anything else is an
    internal fault and is replaced by a generic message.
    """
    if not isinstance(error, ClusterServicesError):
        return UNEXPECTED_ERROR_MESSAGE

    message = str(error)
    lowered = message.lower()
    if any(keyword in lowered for keyword in SENSITIVE_KEYWORDS):
        logger.debug("Redacted sensitive error message from %s", type(error).__name__)
        return CONFIGURATION_ERROR_MESSAGE
    return message
