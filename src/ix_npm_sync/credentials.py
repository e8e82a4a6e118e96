from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from .api_client import NPMClient, NPMError, NPMTokenError
from .configmanager import ConfigManager
from .models import IdentityCredential, Token, TokenCredential
from .models.credential import EXPIRED, Credential

logger = ConfigManager.get_logger(__name__)

TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)


class TokenState(str, Enum):
    UNINITIALIZED = "uninitialized"
    TOKEN_VALID = "token-valid"
    TOKEN_STALE = "token-stale"
    UNAUTHENTICATED = "unauthenticated"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_token_valid(token: Token | None, now: datetime) -> bool:
    return token is not None and token.expires > now + TOKEN_EXPIRY_BUFFER


class CredentialManager:
    """Owns the single current NPM token.

    The token is an immutable `Token` swapped as a whole, so readers on the event loop
    never see a half-updated value. Concurrent refreshes are not serialized; NPM hands out
    a fresh token for every valid request, so a duplicate refresh is harmless.
    """

    def __init__(
        self,
        api: NPMClient,
        credential: Credential,
        *,
        refresh_interval_min: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._api = api
        self._clock = clock
        self._refresh_interval_min = refresh_interval_min
        self._refresh_task: asyncio.Task[None] | None = None
        self._failed = False
        self._identity: IdentityCredential | None = None
        self._token: Token | None = None
        if isinstance(credential, IdentityCredential):
            self._identity = credential
        elif isinstance(credential, TokenCredential):
            # Unknown lifetime: force the refresh path before first use.
            self._token = Token(value=credential.token, expires=EXPIRED)
        else:
            raise TypeError(f"Unsupported credential: {type(credential).__name__}")

    @property
    def token(self) -> Token | None:
        return self._token

    @property
    def state(self) -> TokenState:
        if is_token_valid(self._token, self._clock()):
            return TokenState.TOKEN_VALID
        if self._failed:
            return TokenState.UNAUTHENTICATED
        if self._token is None:
            return TokenState.UNINITIALIZED
        return TokenState.TOKEN_STALE

    async def ensure_valid_token(self) -> Token:
        token = self._token
        if token is not None and is_token_valid(token, self._clock()):
            return token
        return await self.refresh_token()

    async def refresh_token(self) -> Token:
        """Refresh the current token, falling back to a new login when possible.

        On failure the previous token is kept and the error propagates.
        """
        current = self._token
        if current is not None:
            try:
                return self._install(await self._api.refresh_token(current.value))
            except NPMError as e:
                if self._identity is None:
                    self._failed = True
                    logger.error("Token refresh failed and no identity/secret to fall back to (%s)", str(e))
                    raise
                logger.warning("Token refresh failed (%s); requesting a new token", str(e))

        if self._identity is None:
            self._failed = True
            raise NPMTokenError("No token available and no identity/secret configured")

        try:
            token = await self._api.create_token(self._identity.identity, self._identity.secret)
        except NPMError as e:
            self._failed = True
            logger.error("Failed to obtain a new token (%s)", str(e))
            raise
        return self._install(token)

    def _install(self, token: Token) -> Token:
        self._token = token
        self._failed = False
        logger.debug("Installed token expiring at %s", token.expires.isoformat())
        return token

    def start_refresh_timer(self) -> None:
        if self._refresh_interval_min <= 0:
            logger.info("Periodic token refresh disabled")
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        logger.info("Refreshing token every %s minute(s)", self._refresh_interval_min)
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    def stop_refresh_timer(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _refresh_loop(self) -> None:
        interval_s = self._refresh_interval_min * 60
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.refresh_token()
            except NPMError as e:
                logger.warning("Scheduled token refresh failed; keeping the current token (%s)", str(e))
            else:
                logger.info("Token refreshed")
