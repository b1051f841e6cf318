"""Static service registry.

Operators can pre-configure known services so that tools use their exact
base URL, health path, and endpoint list instead of live discovery.  The
registry is loaded once at start-up from ``SERVICE_REGISTRY_FILE`` and is
read-only afterwards.

File format (YAML or JSON)::

    services:
      - name: homepage
        namespace: default
        port: 8080
        baseUrl: http://homepage.default.svc.cluster.local:8080
        healthEndpoint: /health
        endpoints:
          - {path: /health, method: GET, description: Health check}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, TypedDict

import yaml

from cluster_services.config import DEFAULT_SERVICE_PORT, SERVICE_REGISTRY_FILE
from cluster_services.errors import ValidationError
from cluster_services.validation import (
    validate_endpoint,
    validate_namespace,
    validate_service_name,
)

logger = logging.getLogger(__name__)


class RegistryEndpoint(TypedDict, total=False):
    path: str
    method: str
    description: str


class ServiceRegistryEntry(TypedDict, total=False):
    name: str
    namespace: str
    port: int
    baseUrl: str
    healthEndpoint: str
    endpoints: List[RegistryEndpoint]


def cluster_base_url(name: str, namespace: str, port: int = DEFAULT_SERVICE_PORT) -> str:
    """Cluster-internal DNS URL for a Service."""
    return f"http://{name}.{namespace}.svc.cluster.local:{port}"


class ServiceRegistry:
    def __init__(self, entries: Optional[Iterable[ServiceRegistryEntry]] = None) -> None:
        self._entries: List[ServiceRegistryEntry] = list(entries or [])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def lookup(self, name: str, namespace: str) -> Optional[ServiceRegistryEntry]:
        """Return the first entry matching ``(name, namespace)``."""
        for entry in self._entries:
            if entry["name"] == name and entry["namespace"] == namespace:
                return entry
        return None

    def base_url_for(self, name: str, namespace: str, port: Optional[int] = None) -> str:
        entry = self.lookup(name, namespace)
        if entry is not None:
            return entry["baseUrl"]
        return cluster_base_url(name, namespace, port or DEFAULT_SERVICE_PORT)


def _parse_entry(raw: Any, index: int) -> ServiceRegistryEntry:
    if not isinstance(raw, dict):
        raise ValidationError(f"Registry entry #{index} must be a mapping")

    name = validate_service_name(raw.get("name"))
    namespace = validate_namespace(raw.get("namespace"))
    port = raw.get("port", DEFAULT_SERVICE_PORT)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValidationError(f"Registry entry '{name}' has an invalid port")

    entry: ServiceRegistryEntry = {
        "name": name,
        "namespace": namespace,
        "port": port,
        "baseUrl": str(raw.get("baseUrl") or cluster_base_url(name, namespace, port)).rstrip("/"),
    }
    if raw.get("healthEndpoint"):
        entry["healthEndpoint"] = validate_endpoint(raw["healthEndpoint"])

    endpoints: List[RegistryEndpoint] = []
    for item in raw.get("endpoints") or []:
        if not isinstance(item, dict) or "path" not in item:
            raise ValidationError(f"Registry entry '{name}' has an endpoint without a path")
        endpoint: RegistryEndpoint = {
            "path": str(item["path"]),
            "method": str(item.get("method", "GET")).upper(),
        }
        if item.get("description"):
            endpoint["description"] = str(item["description"])
        endpoints.append(endpoint)
    if endpoints:
        entry["endpoints"] = endpoints
    return entry


def parse_registry(data: Any) -> ServiceRegistry:
    """Build a registry from a decoded document (list or ``{services: [...]}``)."""
    if data is None:
        return ServiceRegistry()
    if isinstance(data, dict):
        data = data.get("services") or []
    if not isinstance(data, list):
        raise ValidationError("Service registry must be a list of services")
    return ServiceRegistry(_parse_entry(raw, i) for i, raw in enumerate(data))


def load_registry(path: Optional[str] = None) -> ServiceRegistry:
    """Load the registry file named by *path* or ``SERVICE_REGISTRY_FILE``.

    No configured file means an empty registry.  A configured file that
    cannot be read or parsed raises.
    """
    path = path if path is not None else SERVICE_REGISTRY_FILE
    if not path:
        return ServiceRegistry()

    with open(path) as handle:
        data = yaml.safe_load(handle)
    registry = parse_registry(data)
    logger.info("Loaded %d service registry entries from %s", len(registry), path)
    return registry
