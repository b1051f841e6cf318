"""Read-only Kubernetes facade for Services, Deployments, and Pods.

Wraps the official ``kubernetes`` client.  Its API objects are blocking,
so every call runs in a worker thread via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from cluster_services.config import IN_CLUSTER, KUBECONFIG_PATH
from cluster_services.errors import KubernetesError, ServiceNotFoundError

logger = logging.getLogger(__name__)


def _api_error_message(exc: ApiException) -> str:
    return exc.reason or str(exc.status)


class KubernetesClient:
    """Async wrapper over ``CoreV1Api`` and ``AppsV1Api``.

    Credentials are loaded lazily on the first call: in-cluster
    service-account credentials when running in a pod, otherwise the
    kubeconfig file (``KUBECONFIG`` or ``~/.kube/config``), falling back to
    in-cluster.  Pre-built API objects may be passed in instead.
    """

    def __init__(
        self,
        core_v1: Optional[client.CoreV1Api] = None,
        apps_v1: Optional[client.AppsV1Api] = None,
        in_cluster: bool = IN_CLUSTER,
        kubeconfig_path: str = KUBECONFIG_PATH,
    ) -> None:
        self._core_v1 = core_v1
        self._apps_v1 = apps_v1
        self._in_cluster = in_cluster
        self._kubeconfig_path = kubeconfig_path or None
        self._init_lock = threading.Lock()

    # -- lazy initialisation --------------------------------------------------

    def _load_configuration(self) -> client.Configuration:
        configuration = client.Configuration()
        loaders: List[Tuple[str, Callable[[], None]]] = [
            (
                "kubeconfig",
                lambda: config.load_kube_config(
                    config_file=self._kubeconfig_path,
                    client_configuration=configuration,
                ),
            ),
            (
                "in-cluster",
                lambda: config.load_incluster_config(client_configuration=configuration),
            ),
        ]
        if self._in_cluster:
            loaders.reverse()

        for source, load in loaders:
            try:
                load()
            except (config.ConfigException, OSError) as exc:
                logger.debug("Could not load %s Kubernetes config: %s", source, exc)
                continue
            logger.info("Loaded Kubernetes configuration from %s", source)
            return configuration

        raise KubernetesError(
            "Failed to load Kubernetes configuration. "
            "Ensure kubeconfig is available or running in-cluster."
        )

    def _apis(self) -> Tuple[client.CoreV1Api, client.AppsV1Api]:
        if self._core_v1 is not None and self._apps_v1 is not None:
            return self._core_v1, self._apps_v1
        with self._init_lock:
            if self._core_v1 is None or self._apps_v1 is None:
                api_client = client.ApiClient(self._load_configuration())
                self._core_v1 = self._core_v1 or client.CoreV1Api(api_client)
                self._apps_v1 = self._apps_v1 or client.AppsV1Api(api_client)
            return self._core_v1, self._apps_v1

    async def _call(self, action: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as exc:
            raise KubernetesError(
                f"Failed to {action}: {_api_error_message(exc)}", exc.status
            ) from exc
        except TransportError as exc:
            raise KubernetesError(f"Failed to {action}: cluster API unreachable") from exc

    # -- Services -------------------------------------------------------------

    async def list_services(self, namespace: str = "default") -> List[client.V1Service]:
        core_v1, _ = self._apis()
        result = await self._call("list services", core_v1.list_namespaced_service, namespace)
        return list(result.items or [])

    async def get_service(self, name: str, namespace: str = "default") -> client.V1Service:
        core_v1, _ = self._apis()
        try:
            return await self._call(
                "get service", core_v1.read_namespaced_service, name, namespace
            )
        except KubernetesError as exc:
            if exc.status_code == 404:
                raise ServiceNotFoundError(name, namespace) from exc
            raise

    # -- Deployments ----------------------------------------------------------

    async def list_deployments(self, namespace: str = "default") -> List[client.V1Deployment]:
        _, apps_v1 = self._apis()
        result = await self._call(
            "list deployments", apps_v1.list_namespaced_deployment, namespace
        )
        return list(result.items or [])

    async def get_deployment(self, name: str, namespace: str = "default") -> client.V1Deployment:
        _, apps_v1 = self._apis()
        try:
            return await self._call(
                "get deployment", apps_v1.read_namespaced_deployment, name, namespace
            )
        except KubernetesError as exc:
            if exc.status_code == 404:
                raise KubernetesError(
                    f"Deployment '{name}' not found in namespace '{namespace}'", 404
                ) from exc
            raise

    # -- Pods -----------------------------------------------------------------

    async def list_pods(
        self, namespace: str = "default", label_selector: Optional[str] = None
    ) -> List[client.V1Pod]:
        core_v1, _ = self._apis()
        kwargs = {"label_selector": label_selector} if label_selector else {}
        result = await self._call("list pods", core_v1.list_namespaced_pod, namespace, **kwargs)
        return list(result.items or [])
