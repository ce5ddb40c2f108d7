"""Google Calendar OAuth session management."""

from meeting_scheduler.oauth.exceptions import (
    InvalidStateError,
    NotConnectedError,
    OAuthSessionError,
    ProviderUnavailableError,
    ReauthRequiredError,
    TokenExchangeError,
    TokenExpiredError,
)
from meeting_scheduler.oauth.session import (
    AuthorizationRequest,
    OAuthSessionManager,
    RefreshLocks,
    parse_callback_url,
)
from meeting_scheduler.oauth.storage import (
    IntegrationRecord,
    IntegrationStore,
    JsonFileIntegrationStore,
    MemoryIntegrationStore,
    MemoryScratchStore,
    OAuthToken,
    ScratchStore,
)

__all__ = [
    "OAuthSessionManager",
    "AuthorizationRequest",
    "RefreshLocks",
    "parse_callback_url",
    "OAuthToken",
    "IntegrationRecord",
    "IntegrationStore",
    "MemoryIntegrationStore",
    "JsonFileIntegrationStore",
    "ScratchStore",
    "MemoryScratchStore",
    "OAuthSessionError",
    "InvalidStateError",
    "NotConnectedError",
    "ProviderUnavailableError",
    "ReauthRequiredError",
    "TokenExpiredError",
    "TokenExchangeError",
]
