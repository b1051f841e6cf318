"""
Shared fixtures for the cluster-services test suite

Fakes mirror the real collaborators: Kubernetes objects are genuine
kubernetes.client models and outbound probes go through httpx.MockTransport,
so handlers run unmodified against them
"""

from typing import Dict, Iterable, List, Optional

import httpx
import pytest
from kubernetes import client

from cluster_services.errors import KubernetesError, ServiceNotFoundError
from cluster_services.handlers import ToolContext
from cluster_services.http_client import HttpClient
from cluster_services.rate_limiter import RateLimiter
from cluster_services.registry import ServiceRegistry

TEST_API_KEY = "test-key"


# Environment variables

@pytest.fixture(autouse=True)
def env_vars(monkeypatch):
    """Pin the auth settings read at call time

    autouse=True ensures no test accidentally runs in dev mode
    """
    monkeypatch.setenv("API_KEYS", TEST_API_KEY)
    monkeypatch.delenv("DEV_MODE", raising=False)
    monkeypatch.delenv("DISABLE_AUTH", raising=False)
    return {"API_KEYS": TEST_API_KEY}


# Kubernetes objects

def make_service(
    name: str,
    namespace: str = "default",
    ports: Iterable[int] = (8080,),
    selector: Optional[Dict[str, str]] = None,
    annotations: Optional[Dict[str, str]] = None,
    labels: Optional[Dict[str, str]] = None,
) -> client.V1Service:
    return client.V1Service(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=labels or {"app": name},
            annotations=annotations,
        ),
        spec=client.V1ServiceSpec(
            ports=[client.V1ServicePort(port=port, protocol="TCP") for port in ports] or None,
            selector=selector,
        ),
    )


def make_deployment(
    name: str,
    namespace: str = "default",
    replicas: int = 1,
    ready: int = 1,
    image: str = "registry.local/app:1.0",
) -> client.V1Deployment:
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels={"app": name}),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={"app": name}),
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(containers=[client.V1Container(name=name, image=image)])
            ),
        ),
        status=client.V1DeploymentStatus(
            replicas=replicas,
            ready_replicas=ready,
            available_replicas=ready,
            conditions=[
                client.V1DeploymentCondition(
                    type="Available", status="True" if ready else "False", message="ok"
                )
            ],
        ),
    )


def make_pod(
    name: str,
    labels: Dict[str, str],
    namespace: str = "default",
    phase: str = "Running",
    ready: bool = True,
) -> client.V1Pod:
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        status=client.V1PodStatus(
            phase=phase,
            conditions=[
                client.V1PodCondition(type="Ready", status="True" if ready else "False")
            ],
        ),
    )


class FakeKubernetesClient:
    """In-memory stand-in for KubernetesClient with the same async surface"""

    def __init__(self, services=(), deployments=(), pods=()):
        self.services: List[client.V1Service] = list(services)
        self.deployments: List[client.V1Deployment] = list(deployments)
        self.pods: List[client.V1Pod] = list(pods)
        self.error: Optional[Exception] = None

    def _check(self):
        if self.error is not None:
            raise self.error

    async def list_services(self, namespace="default"):
        self._check()
        return [s for s in self.services if s.metadata.namespace == namespace]

    async def get_service(self, name, namespace="default"):
        self._check()
        for svc in self.services:
            if svc.metadata.name == name and svc.metadata.namespace == namespace:
                return svc
        raise ServiceNotFoundError(name, namespace)

    async def list_deployments(self, namespace="default"):
        self._check()
        return [d for d in self.deployments if d.metadata.namespace == namespace]

    async def get_deployment(self, name, namespace="default"):
        self._check()
        for dep in self.deployments:
            if dep.metadata.name == name and dep.metadata.namespace == namespace:
                return dep
        raise KubernetesError(f"Deployment '{name}' not found in namespace '{namespace}'", 404)

    async def list_pods(self, namespace="default", label_selector=None):
        self._check()
        wanted = dict(
            pair.split("=", 1) for pair in (label_selector or "").split(",") if pair
        )
        return [
            pod
            for pod in self.pods
            if pod.metadata.namespace == namespace
            and all((pod.metadata.labels or {}).get(k) == v for k, v in wanted.items())
        ]


# Outbound probes

class ProbeRouter:
    """Routes MockTransport requests by exact URL

    Unrouted URLs behave like a service that is not listening
    """

    def __init__(self):
        self.routes = {}
        self.requests: List[httpx.Request] = []

    def add(self, url, status=200, json=None, text=None, headers=None):
        self.routes[url] = lambda request: httpx.Response(
            status, json=json, text=text, headers=headers
        )

    def refuse(self, url):
        def _raise(request):
            raise httpx.ConnectError("Connection refused", request=request)

        self.routes[url] = _raise

    def timeout(self, url):
        def _raise(request):
            raise httpx.ReadTimeout("timed out", request=request)

        self.routes[url] = _raise

    @property
    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            raise httpx.ConnectError("Connection refused", request=request)
        return route(request)


class ManualClock:
    """Monotonic clock the tests advance by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def probes():
    return ProbeRouter()


@pytest.fixture()
def http_client(probes):
    return HttpClient(transport=httpx.MockTransport(probes.handler))


@pytest.fixture()
def kube():
    return FakeKubernetesClient()


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def registry():
    return ServiceRegistry()


@pytest.fixture()
def rate_limiter(clock):
    return RateLimiter(window_ms=60000, max_requests=100, enabled=True, clock=clock)


@pytest.fixture()
def context(kube, http_client, registry, rate_limiter):
    return ToolContext(
        kubernetes=kube,
        http=http_client,
        registry=registry,
        rate_limiter=rate_limiter,
    )


# FastAPI test client

@pytest.fixture()
def make_api_client(context):
    """Factory for an httpx AsyncClient wired to a fresh app around *context*"""
    from server.app import create_app

    def _make(base_url="http://localhost", ctx=None):
        app = create_app(ctx or context)
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=base_url)

    return _make


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {TEST_API_KEY}"}
