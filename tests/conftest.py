from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from ix_npm_sync.api_client import NPMClient
from ix_npm_sync.models import ContainerEvent, ContainerRecord

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
FAR_FUTURE = "2099-01-01T00:00:00.000Z"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unit tests never read the developer's NPM settings."""
    import os

    for key in list(os.environ):
        if key.startswith(("NPM_", "APP_OVERRIDE_")) or key in {
            "APP_BLACKLIST",
            "DOMAIN_NAME",
            "CERT_ID",
            "TOKEN_REFRESH_INTERVAL",
            "SETTLE_DELAY",
            "NAMESPACE_PREFIX",
            "LOG_FILE",
            "LOG_FILE_LEVEL",
        }:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("IX_NPM_ENV_FILE", "/nonexistent/.env")


def make_container(
    container_id: str,
    *,
    name: str | None = None,
    app: str = "radarr",
    service: str | None = None,
    ports: Sequence[int] = (),
    network_mode: str = "bridge",
    project: str | None = None,
) -> ContainerRecord:
    svc = service or app
    return ContainerRecord(
        id=container_id,
        names=(name or f"ix-{app}_{svc}_1",),
        labels={
            "com.docker.compose.project": project if project is not None else f"ix-{app}",
            "com.docker.compose.service": svc,
        },
        network_mode=network_mode,
        ports=tuple(ports),
    )


def start_event(container_id: str, *, project: str = "ix-radarr") -> ContainerEvent:
    return ContainerEvent(
        type="container",
        action="start",
        actor_id=container_id,
        attributes={"com.docker.compose.project": project},
    )


class FakeProvider:
    def __init__(self, containers: Iterable[ContainerRecord] = (), events: Iterable[ContainerEvent] = ()) -> None:
        self.containers = list(containers)
        self.event_list = list(events)
        self.list_calls: list[str | None] = []
        self.closed = False

    async def list_containers(self, *, project: str | None = None) -> list[ContainerRecord]:
        self.list_calls.append(project)
        return [c for c in self.containers if project is None or c.project == project]

    async def get_container(self, container_id: str) -> ContainerRecord | None:
        return next((c for c in self.containers if c.id == container_id), None)

    async def events(self) -> AsyncIterator[ContainerEvent]:
        for event in self.event_list:
            yield event

    def close(self) -> None:
        self.closed = True


class NPMStub:
    """Scriptable stand-in for the Nginx Proxy Manager API behind httpx.MockTransport."""

    def __init__(self) -> None:
        self.create_status = 200
        self.refresh_status = 200
        self.proxy_status = 201
        self.unreachable: set[tuple[str, str]] = set()
        self.requests: list[httpx.Request] = []
        self.issued = 0
        self.expires: object = FAR_FUTURE

    def _token(self) -> dict[str, Any]:
        self.issued += 1
        return {"token": f"tok-{self.issued}", "expires": self.expires}

    def paths(self, method: str | None = None) -> list[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if key == ("POST", "/api/tokens"):
            if self.create_status >= 400:
                return httpx.Response(self.create_status, json={"error": {"message": "nope"}})
            return httpx.Response(self.create_status, json=self._token())
        if key == ("GET", "/api/tokens"):
            if self.refresh_status >= 400:
                return httpx.Response(self.refresh_status, json={"error": {"message": "expired"}})
            return httpx.Response(self.refresh_status, json=self._token())
        if key == ("POST", "/api/nginx/proxy-hosts"):
            return httpx.Response(self.proxy_status, json={"id": 1})
        return httpx.Response(404, json={"error": {"message": "Not Found"}})


@pytest.fixture
def npm_stub() -> NPMStub:
    return NPMStub()


@pytest.fixture
def npm_api(npm_stub: NPMStub) -> NPMClient:
    return NPMClient(base_url="http://npm.invalid:81", transport=httpx.MockTransport(npm_stub))


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


def docker_available() -> bool:
    try:
        import docker

        client = docker.from_env()
        client.ping()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def require_docker() -> bool:
    if not docker_available():
        pytest.skip("Docker daemon not available")
    return True
