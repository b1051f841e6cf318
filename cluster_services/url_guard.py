"""SSRF guard for every outbound probe URL.

Probes are built partly from caller input, so before any request leaves
the process its URL must resolve to a cluster-internal Service host in an
allow-listed namespace, on an allow-listed port.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Pattern
from urllib.parse import SplitResult, urljoin, urlsplit

from cluster_services.config import ALLOWED_NAMESPACES, ALLOWED_PORTS
from cluster_services.errors import ValidationError

ALLOWED_SCHEMES = ("http", "https")


def build_host_patterns(namespaces: Iterable[str]) -> List[Pattern[str]]:
    return [
        re.compile(
            r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?\." + re.escape(namespace) + r"\.svc\.cluster\.local$"
        )
        for namespace in namespaces
    ]


ALLOWED_HOST_PATTERNS: List[Pattern[str]] = build_host_patterns(ALLOWED_NAMESPACES)


def is_cluster_internal(hostname: str) -> bool:
    hostname = hostname.lower()
    return any(pattern.fullmatch(hostname) for pattern in ALLOWED_HOST_PATTERNS)


def validate_url(
    candidate: str,
    base: Optional[str] = None,
    allowed_ports: Optional[Iterable[int]] = None,
) -> SplitResult:
    """Parse *candidate* (relative to *base* if given) and enforce the guard.

    Returns the parsed URL.  Raises ``ValidationError`` if the URL cannot be
    parsed, uses a scheme other than http/https, names a host outside the
    allowed cluster namespaces, or carries a port outside the allow-list.
    """
    ports = list(ALLOWED_PORTS if allowed_ports is None else allowed_ports)
    try:
        url = urljoin(base, candidate) if base else candidate
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as exc:
        raise ValidationError(f"Invalid URL: {exc}") from exc

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError("Only HTTP and HTTPS protocols are allowed")

    hostname = parsed.hostname or ""
    if not is_cluster_internal(hostname):
        raise ValidationError(
            "Only cluster-internal services are allowed "
            "(must match *.svc.cluster.local pattern)"
        )

    if port is not None and port not in ports:
        raise ValidationError(
            f"Port {port} is not allowed. Allowed ports: "
            + ", ".join(str(p) for p in ports)
        )

    return parsed
