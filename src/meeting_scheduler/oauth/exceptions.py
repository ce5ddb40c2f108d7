"""Calendar OAuth session exceptions."""


class OAuthSessionError(Exception):
    """Base exception for calendar OAuth session errors."""

    pass


class InvalidStateError(OAuthSessionError):
    """Raised when the callback state does not match the stored value."""

    pass


class NotConnectedError(OAuthSessionError):
    """Raised when no connected integration exists for the user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"Google Calendar is not connected for user {user_id}. "
            "Run 'meeting-scheduler auth login' to connect."
        )


class ReauthRequiredError(OAuthSessionError):
    """Raised when the refresh token is rejected and the user must reconnect."""

    pass


class TokenExpiredError(OAuthSessionError):
    """Raised when the provider rejects an access token as expired."""

    pass


class TokenExchangeError(OAuthSessionError):
    """Raised when the authorization code cannot be exchanged for tokens."""

    pass


class ProviderUnavailableError(OAuthSessionError):
    """Raised when the token endpoint fails transiently; the grant is still valid."""

    pass
