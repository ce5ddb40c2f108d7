"""Google Calendar OAuth session management using Authlib.

This module keeps a user's calendar access authorized with:
- Authorization Code flow with PKCE (S256) and CSRF state
- Token refresh before the expiry margin, single-flight per user
- Refresh token rotation and best-effort revocation

Tokens are persisted through an IntegrationStore; the PKCE verifier and
state live in a ScratchStore between initiating and completing a flow.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.common.security import generate_token
from authlib.integrations.httpx_client import AsyncOAuth2Client

from meeting_scheduler.config import SchedulerSettings
from meeting_scheduler.oauth.exceptions import (
    InvalidStateError,
    NotConnectedError,
    ProviderUnavailableError,
    ReauthRequiredError,
    TokenExchangeError,
)
from meeting_scheduler.oauth.storage import (
    IntegrationRecord,
    IntegrationStore,
    OAuthToken,
    ScratchStore,
)

logger = logging.getLogger(__name__)

STATE_LENGTH = 32
CODE_VERIFIER_LENGTH = 128
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class AuthorizationRequest:
    """Consent URL to send the user to, with the state it carries."""

    url: str
    state: str


def parse_callback_url(callback_url: str) -> tuple[str, str]:
    """Extract `code` and `state` from an OAuth redirect URL.

    Args:
        callback_url: The full redirect URL the provider sent the user to.

    Returns:
        Tuple of (code, state).

    Raises:
        InvalidStateError: If the provider returned an error or the URL
            is missing `code` or `state`.
    """
    params = parse_qs(urlparse(callback_url).query)

    if "error" in params:
        raise InvalidStateError(f"Authorization denied: {params['error'][0]}")

    code = params.get("code", [None])[0]
    state = params.get("state", [None])[0]
    if not code or not state:
        raise InvalidStateError("Callback URL is missing 'code' or 'state'")

    return code, state


class RefreshLocks:
    """Per-user refresh locks shared by every session manager in a process.

    Pass one registry to every manager built for the same user in a process
    so only one of them refreshes at a time.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthSessionManager:
    """Calendar OAuth session for a single user.

    Handles the PKCE authorization flow, keeps the stored access token
    fresh, and revokes access on disconnect.

    Example:
        >>> session = OAuthSessionManager(
        ...     SchedulerSettings.from_env(),
        ...     JsonFileIntegrationStore(),
        ...     MemoryScratchStore(),
        ...     user_id="me",
        ... )
        >>> request = await session.initiate_authorization()
        >>> print(f"Visit: {request.url}")
        >>> code, state = parse_callback_url(input("Paste redirect URL: "))
        >>> await session.complete_authorization(code, state)
        >>> access_token = await session.get_valid_access_token()
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        store: IntegrationStore,
        scratch: ScratchStore,
        user_id: str = "default",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], datetime] | None = None,
        refresh_locks: RefreshLocks | None = None,
    ):
        """Initialize the session manager.

        Args:
            settings: OAuth client settings and endpoint URLs.
            store: Where the user's integration record is persisted.
            scratch: Short-lived storage for PKCE verifier and state.
            user_id: Owner of the integration record.
            transport: Optional httpx transport (used by tests).
            now: Clock returning an aware UTC datetime.
            refresh_locks: Registry shared with other managers of the same
                user. Defaults to one private to this manager.
        """
        self.settings = settings
        self.store = store
        self.scratch = scratch
        self.user_id = user_id
        self._now = now or _utcnow

        client_kwargs: dict[str, Any] = {}
        if transport is not None:
            client_kwargs["transport"] = transport

        self._client = AsyncOAuth2Client(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scope=settings.scope,
            redirect_uri=settings.redirect_uri,
            code_challenge_method="S256",
            token_endpoint_auth_method="client_secret_post",
            **client_kwargs,
        )

        self._refresh_locks = refresh_locks or RefreshLocks()
        self.refresh_count = 0

    def _refresh_lock(self) -> asyncio.Lock:
        return self._refresh_locks.get(self.user_id)

    def _scratch_key(self) -> str:
        return f"oauth:pkce:{self.user_id}"

    # =========================================================================
    # Authorization
    # =========================================================================

    async def initiate_authorization(self) -> AuthorizationRequest:
        """Start the OAuth flow.

        Returns:
            AuthorizationRequest with the consent URL for the user to visit.
        """
        state = generate_token(STATE_LENGTH)
        code_verifier = generate_token(CODE_VERIFIER_LENGTH)

        await self.scratch.set(
            self._scratch_key(),
            {"state": state, "code_verifier": code_verifier},
            self.settings.state_ttl,
        )

        # prompt=consent forces a refresh token on every grant
        url, _ = self._client.create_authorization_url(
            self.settings.authorize_url,
            state=state,
            code_verifier=code_verifier,
            access_type="offline",
            prompt="consent",
        )

        logger.info(f"Authorization initiated for {self.user_id}")
        return AuthorizationRequest(url=url, state=state)

    async def complete_authorization(self, code: str, state: str) -> OAuthToken:
        """Exchange the callback code for tokens and store them.

        Args:
            code: Authorization code from the redirect callback.
            state: State from the redirect callback.

        Returns:
            The stored OAuthToken.

        Raises:
            InvalidStateError: If state is unknown, expired or mismatched.
            TokenExchangeError: If the provider rejects the exchange.
        """
        key = self._scratch_key()
        entry = await self.scratch.get(key)

        if entry is None or not hmac.compare_digest(
            entry.get("state", "").encode(), (state or "").encode()
        ):
            await self.scratch.delete(key)
            logger.warning(f"State mismatch on authorization callback for {self.user_id}")
            raise InvalidStateError("Invalid state parameter - possible CSRF attack")

        code_verifier = entry.get("code_verifier")
        if not code_verifier:
            raise InvalidStateError("Code verifier not found")

        try:
            response = await self._client.fetch_token(
                self.settings.token_url,
                grant_type="authorization_code",
                code=code,
                code_verifier=code_verifier,
            )
        except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
            raise TokenExchangeError(f"Failed to exchange code for tokens: {e}") from e
        finally:
            await self.scratch.delete(key)

        previous = await self.store.load(self.user_id)
        fallback_refresh = previous.provider_refresh_token if previous else None
        token = self._token_from_response(response, fallback_refresh)
        if not response.get("refresh_token"):
            logger.warning("Provider did not return a refresh token")

        record = previous or IntegrationRecord(user_id=self.user_id)
        await self.store.save(record.with_token(token, self._now()))

        logger.info(f"Calendar connected for {self.user_id} with scopes: {token.scope}")
        return token

    # =========================================================================
    # Tokens
    # =========================================================================

    async def _load_connected(self) -> IntegrationRecord:
        record = await self.store.load(self.user_id)
        if record is None or not record.is_connected:
            raise NotConnectedError(self.user_id)
        return record

    def _needs_refresh(self, record: IntegrationRecord) -> bool:
        return record.to_token().expires_within(self.settings.expiry_margin, self._now())

    async def get_valid_access_token(self) -> str:
        """Get an access token, refreshing it first if it is about to expire.

        Returns:
            A usable access token.

        Raises:
            NotConnectedError: If the user has no connected integration.
            ReauthRequiredError: If the refresh token is rejected.
            ProviderUnavailableError: If the token endpoint fails transiently.
        """
        record = await self._load_connected()
        if not self._needs_refresh(record):
            return record.provider_token

        async with self._refresh_lock():
            # Another caller may have refreshed while we waited
            record = await self._load_connected()
            if not self._needs_refresh(record):
                return record.provider_token

            token = await self._refresh_locked(record)
            return token.access_token

    async def refresh(self, refresh_token: str | None = None) -> OAuthToken:
        """Exchange a refresh token for a new access token.

        Args:
            refresh_token: Refresh token to use. Defaults to the stored one.

        Returns:
            The refreshed OAuthToken.

        Raises:
            NotConnectedError: If the user has no connected integration.
            ReauthRequiredError: If the provider rejects the refresh token.
            ProviderUnavailableError: If the token endpoint fails transiently.
        """
        async with self._refresh_lock():
            record = await self._load_connected()
            return await self._refresh_locked(record, refresh_token)

    async def force_refresh(self, stale_access_token: str) -> OAuthToken:
        """Refresh after the provider rejected `stale_access_token`.

        If a concurrent caller already replaced the stale token, the stored
        token is returned without another provider call.
        """
        async with self._refresh_lock():
            record = await self._load_connected()
            if record.provider_token != stale_access_token:
                return record.to_token()
            return await self._refresh_locked(record)

    async def _refresh_locked(
        self, record: IntegrationRecord, refresh_token: str | None = None
    ) -> OAuthToken:
        refresh_token = refresh_token or record.provider_refresh_token
        if not refresh_token:
            raise ReauthRequiredError("No refresh token stored. Reconnect Google Calendar.")

        logger.info(f"Refreshing access token for {self.user_id}")
        try:
            response = await self._client.refresh_token(
                self.settings.token_url,
                refresh_token=refresh_token,
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status == 429:
                raise ProviderUnavailableError(
                    f"Token endpoint unavailable (HTTP {status}), try again later"
                ) from e
            raise ReauthRequiredError(f"Refresh token rejected by provider: {e}") from e
        except (AuthlibBaseError, ValueError) as e:
            raise ReauthRequiredError(f"Refresh token rejected by provider: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"Token refresh request failed: {e}") from e

        try:
            token = self._token_from_response(response, refresh_token)
        except TokenExchangeError as e:
            raise ReauthRequiredError(str(e)) from e

        if token.refresh_token != refresh_token:
            logger.info("Provider rotated the refresh token")

        await self.store.save(record.with_token(token, self._now()))
        self.refresh_count += 1
        return token

    def _token_from_response(
        self, response: dict[str, Any], fallback_refresh: str | None
    ) -> OAuthToken:
        access_token = response.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response did not include an access token")

        expires_in = int(response.get("expires_in") or DEFAULT_EXPIRES_IN)
        return OAuthToken(
            access_token=access_token,
            refresh_token=response.get("refresh_token") or fallback_refresh,
            expires_at=self._now() + timedelta(seconds=expires_in),
            scope=response.get("scope") or self.settings.scope,
        )

    # =========================================================================
    # Revocation
    # =========================================================================

    async def revoke(self, token: str | None = None) -> bool:
        """Revoke a token at the provider. Never raises.

        Args:
            token: Token to revoke. Defaults to the stored refresh token,
                which revokes the whole grant, or the access token.

        Returns:
            True if the provider confirmed or the token was already invalid.
        """
        if token is None:
            record = await self.store.load(self.user_id)
            if record is not None:
                token = record.provider_refresh_token or record.provider_token

        if not token:
            logger.warning("No token to revoke")
            return False

        try:
            response = await self._client.request(
                "POST",
                self.settings.revoke_url,
                data={"token": token},
                withhold_token=True,
            )
        except Exception as e:
            logger.warning(f"Failed to revoke token remotely: {e}")
            return False

        # 400 means the token was already revoked or expired
        if response.status_code in (200, 400):
            logger.info("Token revoked successfully")
            return True

        logger.warning(f"Failed to revoke token remotely: HTTP {response.status_code}")
        return False

    async def disconnect(self) -> None:
        """Revoke remotely (best effort) and mark the integration disconnected."""
        record = await self.store.load(self.user_id)
        if record is None:
            logger.info(f"No integration to disconnect for {self.user_id}")
            return

        if record.provider_token or record.provider_refresh_token:
            await self.revoke()

        await self.store.save(record.disconnected())
        logger.info(f"Calendar disconnected for {self.user_id}")

    async def get_token_info(self) -> dict[str, Any]:
        """Get information about the stored token.

        Returns:
            Dictionary with token status, scopes, expiry, etc.
        """
        record = await self.store.load(self.user_id)
        if record is None or not record.is_connected:
            return {"status": "no_token"}

        now = self._now()
        expires_at = record.token_expires_at
        if expires_at:
            expires_str = str(timedelta(seconds=max(0, int((expires_at - now).total_seconds()))))
            is_expired = expires_at <= now
        else:
            expires_str = "unknown"
            is_expired = False

        return {
            "status": "valid" if not is_expired else "expired",
            "scopes": record.scope.split(),
            "expires_in": expires_str,
            "needs_refresh": self._needs_refresh(record),
            "has_refresh_token": bool(record.provider_refresh_token),
            "refresh_count": self.refresh_count,
            "last_refresh": (
                record.last_token_refresh.isoformat() if record.last_token_refresh else None
            ),
        }

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> OAuthSessionManager:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
