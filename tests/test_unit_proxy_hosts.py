from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime

import pytest

from ix_npm_sync.api_client import NPMClient, NPMNetworkError, NPMProxyHostError
from ix_npm_sync.credentials import CredentialManager
from ix_npm_sync.models import IdentityCredential, ProxyHostRequest, Scheme
from ix_npm_sync.proxy_hosts import ProxyHostClient
from tests.conftest import NPMStub

REQUEST = ProxyHostRequest(
    domain_name="radarr.example.com",
    forward_scheme=Scheme.HTTP,
    forward_host="radarr.ix-radarr.svc.cluster.local",
    forward_port=7878,
    certificate_id=3,
)


@pytest.fixture
def proxy_client(npm_api: NPMClient, clock: Callable[[], datetime]) -> ProxyHostClient:
    credentials = CredentialManager(npm_api, IdentityCredential(identity="admin", secret="pw"), clock=clock)
    return ProxyHostClient(npm_api, credentials)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 201, 400])
async def test_success_and_conflict_are_not_errors(
    proxy_client: ProxyHostClient, npm_stub: NPMStub, status: int
) -> None:
    npm_stub.proxy_status = status
    await proxy_client.ensure_proxy_host(REQUEST)
    assert npm_stub.paths() == ["/api/tokens", "/api/nginx/proxy-hosts"]


@pytest.mark.asyncio
async def test_request_body_and_bearer(proxy_client: ProxyHostClient, npm_stub: NPMStub) -> None:
    await proxy_client.ensure_proxy_host(REQUEST)

    req = npm_stub.requests[-1]
    assert req.headers["Authorization"] == "Bearer tok-1"
    assert json.loads(req.content) == {
        "domain_names": ["radarr.example.com"],
        "forward_scheme": "http",
        "forward_host": "radarr.ix-radarr.svc.cluster.local",
        "forward_port": 7878,
        "certificate_id": 3,
        "block_exploits": "true",
        "caching_enabled": "true",
        "http2_support": "true",
        "enabled": "true",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 404, 500, 502])
async def test_other_statuses_raise_proxy_host_error(
    proxy_client: ProxyHostClient, npm_stub: NPMStub, status: int
) -> None:
    npm_stub.proxy_status = status
    with pytest.raises(NPMProxyHostError) as exc_info:
        await proxy_client.ensure_proxy_host(REQUEST)
    assert exc_info.value.status_code == status
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_no_response_raises_network_error(proxy_client: ProxyHostClient, npm_stub: NPMStub) -> None:
    npm_stub.unreachable.add(("POST", "/api/nginx/proxy-hosts"))
    with pytest.raises(NPMNetworkError):
        await proxy_client.ensure_proxy_host(REQUEST)
    # No retry inside the client.
    assert npm_stub.paths("POST").count("/api/nginx/proxy-hosts") == 1
