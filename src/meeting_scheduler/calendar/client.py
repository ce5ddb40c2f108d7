"""Google Calendar API gateway implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx

from meeting_scheduler.calendar.exceptions import GatewayError, InsufficientPermissionsError
from meeting_scheduler.oauth.exceptions import ReauthRequiredError, TokenExpiredError
from meeting_scheduler.oauth.session import OAuthSessionManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 250


@dataclass
class Calendar:
    """Represents a Google Calendar."""

    id: str
    summary: str
    primary: bool = False
    time_zone: str | None = None


@dataclass
class CalendarEvent:
    """Represents a Google Calendar event."""

    id: str
    start: datetime | None = None
    end: datetime | None = None
    attendees: list[str] = field(default_factory=list)
    summary: str = ""
    description: str | None = None
    html_link: str | None = None
    all_day: bool = False

    @property
    def is_timed(self) -> bool:
        """Check if the event has a concrete start and end time."""
        return not self.all_day and self.start is not None and self.end is not None


class CalendarGateway:
    """Google Calendar REST client authorized through an OAuthSessionManager.

    A fresh access token is requested from the session for every call. A
    401 response triggers exactly one refresh and one retry.

    Usage:
        async with CalendarGateway(session) as gateway:
            calendar = await gateway.get_primary_calendar()
            events = await gateway.list_events(calendar.id, time_min, time_max)
    """

    def __init__(
        self,
        session: OAuthSessionManager,
        *,
        base_url: str | None = None,
        time_zone: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            session: Source of access tokens.
            base_url: Calendar API root. Defaults to the session settings.
            time_zone: IANA zone sent with created events and used for all-day dates.
            transport: Optional httpx transport (used by tests).
            timeout: Request timeout in seconds.
        """
        self._session = session
        self.base_url = (base_url or session.settings.calendar_api_url).rstrip("/")
        self.time_zone = time_zone or session.settings.time_zone
        self._tz = ZoneInfo(self.time_zone)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    # =========================================================================
    # Requests
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authorized API request, refreshing once on 401.

        Raises:
            ReauthRequiredError: If the request is still unauthorized after a refresh.
            InsufficientPermissionsError: On 403.
            GatewayError: On any other error response or transport failure.
        """
        access_token = await self._session.get_valid_access_token()
        try:
            return await self._send(method, path, access_token, params=params, json=json)
        except TokenExpiredError:
            logger.info(f"{method} {path} returned 401, refreshing token and retrying")

        token = await self._session.force_refresh(access_token)
        try:
            return await self._send(method, path, token.access_token, params=params, json=json)
        except TokenExpiredError as e:
            raise ReauthRequiredError(
                "Calendar API rejected the refreshed token. Reconnect Google Calendar."
            ) from e

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.request(
                method, url, headers=headers, params=params, json=json
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"Request failed: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")

        if response.status_code == 401:
            raise TokenExpiredError("Access token rejected by Calendar API")
        elif response.status_code == 403:
            raise InsufficientPermissionsError(
                f"Insufficient permissions for Google Calendar: {self._error_message(response)}",
                status_code=403,
            )
        elif not response.is_success:
            raise GatewayError(
                f"Calendar API error: {self._error_message(response)}",
                status_code=response.status_code,
            )

        return response.json()

    def _error_message(self, response: httpx.Response) -> str:
        """Extract the provider's error message from a response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase

        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message") or response.reason_phrase
        if isinstance(error, str):
            return data.get("error_description") or error
        return response.reason_phrase

    # =========================================================================
    # Calendars
    # =========================================================================

    async def list_calendars(self) -> list[Calendar]:
        """List calendars visible to the authenticated account.

        Returns:
            List of Calendar objects.
        """
        results = await self._request("GET", "/users/me/calendarList")
        return [self._parse_calendar(item) for item in results.get("items", [])]

    async def get_primary_calendar(self) -> Calendar:
        """Get the account's primary calendar.

        Raises:
            GatewayError: If no calendar is marked primary.
        """
        for calendar in await self.list_calendars():
            if calendar.primary:
                return calendar
        raise GatewayError("Primary calendar not found")

    def _parse_calendar(self, data: dict) -> Calendar:
        """Parse calendar from API response."""
        return Calendar(
            id=data["id"],
            summary=data.get("summary", ""),
            primary=data.get("primary", False),
            time_zone=data.get("timeZone"),
        )

    # =========================================================================
    # Events
    # =========================================================================

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[CalendarEvent]:
        """List events in a time range.

        A single bounded request; events past `max_results` are not fetched.

        Args:
            calendar_id: Calendar ID or "primary".
            time_min: Start of time range.
            time_max: End of time range.
            max_results: Maximum number of events to return.

        Returns:
            List of CalendarEvent objects ordered by start time.
        """
        params = {
            "timeMin": self._format_datetime(time_min),
            "timeMax": self._format_datetime(time_max),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        results = await self._request("GET", self._events_path(calendar_id), params=params)
        events = [self._parse_event(item) for item in results.get("items", [])]

        logger.debug(f"Fetched {len(events)} events from {calendar_id}")
        return events

    async def create_event(
        self,
        calendar_id: str,
        summary: str,
        description: str | None,
        start: datetime,
        end: datetime,
        attendees: list[str] | None = None,
    ) -> CalendarEvent:
        """Create a timed event.

        Args:
            calendar_id: Calendar ID or "primary".
            summary: Event title.
            description: Event description.
            start: Start time.
            end: End time.
            attendees: Attendee email addresses.

        Returns:
            Created CalendarEvent, including its shareable html_link.
        """
        body: dict[str, Any] = {
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": start.isoformat(), "timeZone": self.time_zone},
            "end": {"dateTime": end.isoformat(), "timeZone": self.time_zone},
            "attendees": [{"email": email} for email in attendees or []],
            "reminders": {"useDefault": True},
        }

        result = await self._request("POST", self._events_path(calendar_id), json=body)
        event = self._parse_event(result)

        logger.info(f"Created event {event.id} in {calendar_id}")
        return event

    def _events_path(self, calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}/events"

    def _format_datetime(self, dt: datetime) -> str:
        """Format datetime for API."""
        return dt.isoformat() + "Z" if dt.tzinfo is None else dt.isoformat()

    def _parse_time(self, data: dict) -> tuple[datetime | None, bool]:
        """Parse a start/end object, returning (value, is_date_only)."""
        if "dateTime" in data:
            value = datetime.fromisoformat(data["dateTime"].replace("Z", "+00:00"))
            if value.tzinfo is None:
                value = value.replace(tzinfo=self._tz)
            return value, False
        if "date" in data:
            day = date.fromisoformat(data["date"])
            return datetime.combine(day, time.min, tzinfo=self._tz), True
        return None, False

    def _parse_event(self, data: dict) -> CalendarEvent:
        """Parse event from API response."""
        start, start_all_day = self._parse_time(data.get("start", {}))
        end, _ = self._parse_time(data.get("end", {}))

        return CalendarEvent(
            id=data["id"],
            start=start,
            end=end,
            attendees=[a.get("email", "") for a in data.get("attendees", [])],
            summary=data.get("summary", ""),
            description=data.get("description"),
            html_link=data.get("htmlLink"),
            all_day=start_all_day,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> CalendarGateway:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
