import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .auth import TokenEndpoint
from .errors import (
    ExchangeFailedError,
    ReauthRequiredError,
    RemoteUnavailableError,
    UnauthenticatedError,
)
from .token_manager import DEFAULT_EXPIRY_MARGIN_SECONDS, Credentials, TokenManager

logger = logging.getLogger(__name__)

RequestBuilder = Callable[[Credentials], httpx.Request]


@dataclass(frozen=True)
class AuthStatus:
    authenticated: bool
    expires_at: Optional[float] = None
    expired: bool = False
    reauth_required: bool = False


class SessionManager:
    """Sends requests with a valid access token, refreshing it first when needed.

    Credentials live in the TokenManager; this class only reads them and writes
    refreshed ones back. Concurrent callers share a single refresh exchange.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        token_endpoint: TokenEndpoint,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        expiry_margin: float = DEFAULT_EXPIRY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.token_manager = token_manager
        self.token_endpoint = token_endpoint
        self.http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.expiry_margin = float(expiry_margin)
        self.clock = clock

        self._refresh_lock = asyncio.Lock()
        self._reauth_required = False

    def needs_refresh(self, credentials: Credentials) -> bool:
        return TokenManager.is_expired(credentials, skew_seconds=self.expiry_margin, now=self.clock())

    def auth_status(self) -> AuthStatus:
        credentials = self.token_manager.load()
        if credentials is None:
            return AuthStatus(authenticated=False, reauth_required=self._reauth_required)
        return AuthStatus(
            authenticated=True,
            expires_at=credentials.expires_at,
            expired=self.needs_refresh(credentials),
        )

    def logout(self) -> None:
        self.token_manager.clear()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def authorized_request(self, build_request: RequestBuilder) -> httpx.Response:
        credentials = self._load()
        if self.needs_refresh(credentials):
            credentials = await self._refresh()

        request = build_request(credentials)
        try:
            return await self.http.send(request)
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(f"Spotify request timed out: {request.method} {request.url.path}") from e
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"Spotify request failed: {e}") from e

    def _load(self) -> Credentials:
        credentials = self.token_manager.load()
        if credentials is None:
            if self._reauth_required:
                raise ReauthRequiredError("Spotify session expired; please authenticate again.")
            raise UnauthenticatedError("Not signed in to Spotify. Run the authentication first.")
        # Fresh credentials from a new authorization clear an earlier failure.
        self._reauth_required = False
        return credentials

    async def _refresh(self) -> Credentials:
        async with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            current = self._load()
            if not self.needs_refresh(current):
                return current

            if not current.refresh_token:
                raise self._invalidate("no refresh token available")

            logger.info("Access token expires at %s; refreshing", current.expires_at)
            try:
                refreshed = await self.token_endpoint.refresh(refresh_token=current.refresh_token)
            except ExchangeFailedError as e:
                raise self._invalidate(str(e)) from e

            self.token_manager.save(refreshed)
            return refreshed

    def _invalidate(self, reason: str) -> ReauthRequiredError:
        logger.warning("Spotify refresh failed, credentials discarded: %s", reason)
        self.token_manager.clear()
        self._reauth_required = True
        return ReauthRequiredError("Spotify session could not be refreshed; please authenticate again.")
