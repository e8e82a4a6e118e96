from __future__ import annotations

import itertools
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .configmanager import ConfigManager
from .models import Token

logger = ConfigManager.get_logger(__name__)


class NPMError(RuntimeError):
    retryable = False


class NPMAuthError(NPMError):
    """The identity/secret pair was rejected."""


class NPMTokenError(NPMError):
    """No usable token, or the token exchange/refresh was rejected."""


class NPMNetworkError(NPMError):
    """No response was received from Nginx Proxy Manager."""

    retryable = True


class NPMProxyHostError(NPMError):
    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _normalize_api_base_url(base_url: str) -> str:
    url = base_url.strip()
    if not url:
        raise ValueError("base_url is required")
    url = url.rstrip("/")
    if url.endswith("/api"):
        return url
    return url + "/api"


def _bearer(token: str) -> dict[str, str]:
    if not token:
        raise NPMTokenError("token is required")
    return {"Authorization": f"Bearer {token}"}


@dataclass
class NPMClient:
    """Minimal async Nginx Proxy Manager API client.

    Stateless with respect to auth: every authorized call takes the bearer token explicitly,
    token ownership lives in `CredentialManager`.
    """

    base_url: str
    verify_tls: bool = True
    timeout_s: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None

    def __post_init__(self) -> None:
        self.base_url = _normalize_api_base_url(self.base_url)
        logger.debug(
            "Initializing NPMClient base_url=%s verify_tls=%s timeout_s=%s",
            self.base_url,
            self.verify_tls,
            self.timeout_s,
        )
        self._request_seq = itertools.count(1)

        async def _log_request(request: httpx.Request) -> None:
            if not logger.isEnabledFor(10):
                return
            req_id = next(self._request_seq)
            request.extensions["ix_npm.req_id"] = req_id
            request.extensions["ix_npm.start"] = time.perf_counter()
            logger.debug("HTTP -> #%s %s %s", req_id, request.method, request.url)

        async def _log_response(response: httpx.Response) -> None:
            if not logger.isEnabledFor(10):
                return
            req = response.request
            start = req.extensions.get("ix_npm.start")
            ms: float | None = None
            if isinstance(start, (int, float)):
                ms = (time.perf_counter() - float(start)) * 1000.0
            logger.debug(
                "HTTP <- #%s %s %s status=%s elapsed_ms=%s",
                req.extensions.get("ix_npm.req_id"),
                req.method,
                req.url,
                response.status_code,
                f"{ms:.1f}" if ms is not None else None,
            )

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            verify=self.verify_tls,
            headers={"accept": "application/json"},
            transport=self.transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> NPMClient:
        return self

    async def __aexit__(self, _exc_type, _exc, _tb) -> None:  # type: ignore[no-untyped-def]
        await self.aclose()

    async def _web_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.debug("HTTP transport error on %s %s: %s", method, path, str(e))
            raise NPMNetworkError(f"No response from {self.base_url} for {method} {path}: {e}") from e

    async def create_token(self, identity: str, secret: str) -> Token:
        """Exchange identity/secret for a token via `POST /tokens`."""
        if not identity:
            raise ValueError("identity is required")
        if not secret:
            raise ValueError("secret is required")
        logger.info("Requesting a new token for %s", identity)
        resp = await self._web_request("POST", "tokens", json={"identity": identity, "secret": secret})
        if resp.status_code in (401, 403):
            logger.warning("Login failed with status_code=%s", resp.status_code)
            raise NPMAuthError(f"Login failed ({resp.status_code})")
        if resp.status_code >= 400:
            raise NPMTokenError(self._status_message(resp))
        return self._token_from_response(resp)

    async def refresh_token(self, token: str) -> Token:
        """Trade a still-accepted token for a fresh one via `GET /tokens`."""
        logger.debug("Refreshing NPM token")
        resp = await self._web_request("GET", "tokens", headers=_bearer(token))
        if resp.status_code in (401, 403):
            logger.warning("Token refresh failed with status_code=%s", resp.status_code)
            raise NPMTokenError(f"Not authenticated ({resp.status_code})")
        if resp.status_code >= 400:
            raise NPMTokenError(self._status_message(resp))
        return self._token_from_response(resp)

    async def create_proxy_host(self, token: str, payload: Mapping[str, Any]) -> httpx.Response:
        """`POST /nginx/proxy-hosts`. The status code is left for the caller to interpret."""
        logger.debug("POST nginx/proxy-hosts (json body keys=%s)", sorted(payload.keys()))
        return await self._web_request("POST", "nginx/proxy-hosts", json=dict(payload), headers=_bearer(token))

    @staticmethod
    def _token_from_response(resp: httpx.Response) -> Token:
        try:
            data = resp.json()
        except ValueError as e:
            raise NPMTokenError(f"Invalid token response: {e}") from e
        if not isinstance(data, dict):
            raise NPMTokenError(f"Expected object token response, got {type(data).__name__}")
        try:
            return Token.from_api(data)
        except ValueError as e:
            raise NPMTokenError(f"Invalid token response: {e}") from e

    @staticmethod
    def _status_message(resp: httpx.Response) -> str:
        msg = f"HTTP {resp.status_code} for {resp.request.method} {resp.request.url}"
        try:
            payload = resp.json()
        except ValueError:
            return msg
        return f"{msg}: {payload}"
