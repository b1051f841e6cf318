"""Configuration constants for the cluster services gateway.

All values are overridable via environment variables so that the same
image can be used across dev / staging / prod without code changes.

Authentication settings (``API_KEYS``, ``DEV_MODE``) are not read here;
:mod:`cluster_services.auth` reads them on every request.
"""

import os
from typing import List


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# ---------------------------------------------------------------------------
# Kubernetes
# ---------------------------------------------------------------------------

#: Namespace used when a tool call does not name one.
DEFAULT_NAMESPACE: str = os.getenv("KUBERNETES_NAMESPACE", "default")

#: Set by the kubelet inside every pod; its presence selects in-cluster
#: service-account credentials instead of a kubeconfig file.
IN_CLUSTER: bool = os.getenv("KUBERNETES_SERVICE_HOST") is not None

KUBECONFIG_PATH: str = os.getenv("KUBECONFIG", "")

#: Service annotation holding a JSON-encoded endpoint list.
ENDPOINTS_ANNOTATION: str = os.getenv(
    "ENDPOINTS_ANNOTATION", "mcp.clusterflux.io/endpoints"
)

# ---------------------------------------------------------------------------
# Outbound probes
# ---------------------------------------------------------------------------

#: Port assumed for a service that declares none and has no registry entry.
DEFAULT_SERVICE_PORT: int = 8080

#: Ports tried, in order, by ``test_endpoint`` for unregistered services.
FALLBACK_PORTS: List[int] = [8080, 3000, 3001]

DEFAULT_TIMEOUT_MS: int = 5000
MIN_TIMEOUT_MS: int = 100
MAX_TIMEOUT_MS: int = 30000

#: Fixed timeout for discovery, documentation, and health probes.
PROBE_TIMEOUT_MS: int = 3000

#: Namespaces whose ``*.svc.cluster.local`` hosts may be probed.
ALLOWED_NAMESPACES: List[str] = _csv(
    os.getenv("ALLOWED_NAMESPACES", "default,kube-system,monitoring")
)

ALLOWED_PORTS: List[int] = [
    int(port) for port in _csv(os.getenv("ALLOWED_PORTS", "80,443,8080,3000,3001,9090"))
]

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

RATE_LIMIT_ENABLED: bool = _flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_WINDOW_MS: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
RATE_LIMIT_SWEEP_SECONDS: float = float(os.getenv("RATE_LIMIT_SWEEP_SECONDS", "300"))

# ---------------------------------------------------------------------------
# Service registry
# ---------------------------------------------------------------------------

#: Optional YAML or JSON file with pre-configured services.
SERVICE_REGISTRY_FILE: str = os.getenv("SERVICE_REGISTRY_FILE", "")

# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

SERVER_NAME: str = "cluster-services"
SERVER_VERSION: str = "1.0.0"
API_VERSION: str = "v1"

#: HTTP REST shim listen port.
PORT: int = int(os.getenv("PORT", "8080"))

#: ``stdio`` | ``sse`` | ``streamable-http``
MCP_TRANSPORT: str = os.getenv("MCP_TRANSPORT", "stdio")
MCP_PORT: int = int(os.getenv("MCP_PORT", "8000"))

#: Largest request body the HTTP shim accepts.
MAX_BODY_BYTES: int = 1024 * 1024
