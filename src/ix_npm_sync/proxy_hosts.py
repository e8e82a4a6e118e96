from __future__ import annotations

from .api_client import NPMClient, NPMProxyHostError
from .configmanager import ConfigManager
from .credentials import CredentialManager
from .models import ProxyHostRequest

logger = ConfigManager.get_logger(__name__)

STATUS_EXPLANATIONS: dict[int, str] = {
    200: "OK: The request was successful.",
    201: "Created: The request was successful and a resource was created.",
    400: "Bad Request: The request was invalid or cannot be otherwise served - "
    "this may mean the proxy host already exists, or some config error.",
    401: "Unauthorized: Authentication is required and has failed or has not yet been provided.",
    403: "Forbidden: The request was valid, but the server is refusing action.",
    404: "Not Found: The requested resource could not be found.",
    405: "Method Not Allowed: A request method is not supported for the requested resource.",
    408: "Request Timeout: The server timed out waiting for the request.",
    500: "Internal Server Error: An error has occurred in the server.",
    502: "Bad Gateway: The server was acting as a gateway or proxy and received an invalid response "
    "from the upstream server.",
    503: "Service Unavailable: The server is not ready to handle the request.",
    504: "Gateway Timeout: The server was acting as a gateway or proxy and did not receive a timely "
    "response from the upstream server.",
}


class ProxyHostClient:
    """Idempotent "make sure this proxy host exists" on top of `NPMClient`.

    400 is NPM's answer for an existing host with the same domain, so it counts as done.
    No retries here.
    """

    def __init__(self, api: NPMClient, credentials: CredentialManager) -> None:
        self._api = api
        self._credentials = credentials

    async def ensure_proxy_host(self, request: ProxyHostRequest) -> None:
        token = await self._credentials.ensure_valid_token()
        payload = request.to_payload()
        logger.debug("Sending proxy host request %s", payload)
        resp = await self._api.create_proxy_host(token.value, payload)

        status = resp.status_code
        logger.debug("HTTP %s: %s", status, STATUS_EXPLANATIONS.get(status, "Unknown status code"))
        if status in (200, 201):
            logger.info(
                "Proxy host for %s created (%s://%s:%s)",
                request.domain_name,
                request.forward_scheme.value,
                request.forward_host,
                request.forward_port,
            )
            return
        if status == 400:
            logger.warning("Proxy host for %s already exists or conflicts (HTTP 400); leaving as is", request.domain_name)
            return
        raise NPMProxyHostError(
            f"Error creating proxy host for {request.domain_name}: HTTP {status} "
            f"({STATUS_EXPLANATIONS.get(status, 'Unknown error')})",
            status_code=status,
        )
