"""Google Calendar API exceptions."""


class GatewayError(Exception):
    """Raised when the Calendar API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class InsufficientPermissionsError(GatewayError):
    """Raised when the token lacks permission for the calendar (HTTP 403)."""

    pass
