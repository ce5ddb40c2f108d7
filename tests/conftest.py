"""Shared fixtures: a fixed clock and scripted Google endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from meeting_scheduler.config import SchedulerSettings
from meeting_scheduler.oauth import (
    IntegrationRecord,
    MemoryIntegrationStore,
    MemoryScratchStore,
    OAuthSessionManager,
)
from meeting_scheduler.oauth.storage import STATUS_CONNECTED

# Monday
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

TOKEN_PATH = "/token"
REVOKE_PATH = "/revoke"
CALENDAR_LIST_PATH = "/calendar/v3/users/me/calendarList"
EVENTS_PATH = "/calendar/v3/calendars/primary/events"


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGoogle:
    """Scripted OAuth and Calendar endpoints for httpx.MockTransport.

    Each route holds a queue of (status, json) replies; the last reply
    repeats once the queue is down to one entry.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[tuple[int, Any]]] = {}

    def add(self, method: str, path: str, *replies: tuple[int, Any]) -> None:
        self.routes.setdefault((method, path), []).extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": {"message": "Not Found"}})

        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


def form_body(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body."""
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def token_reply(access_token: str = "new-access-token", **extra) -> tuple[int, dict]:
    body = {
        "access_token": access_token,
        "expires_in": 3600,
        "token_type": "Bearer",
        "scope": "https://www.googleapis.com/auth/calendar",
    }
    body.update(extra)
    return 200, body


def connected_record(
    expires_in: timedelta = timedelta(hours=1),
    access_token: str = "stored-access-token",
    refresh_token: str | None = "stored-refresh-token",
) -> IntegrationRecord:
    return IntegrationRecord(
        user_id="user-1",
        status=STATUS_CONNECTED,
        provider_token=access_token,
        provider_refresh_token=refresh_token,
        token_expires_at=NOW + expires_in,
        scope="https://www.googleapis.com/auth/calendar",
    )


@pytest.fixture
def settings():
    return SchedulerSettings(
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:8080/callback",
        time_zone="UTC",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def store():
    return MemoryIntegrationStore()


@pytest.fixture
def scratch():
    return MemoryScratchStore()


@pytest.fixture
def session(settings, store, scratch, google, clock):
    return OAuthSessionManager(
        settings,
        store,
        scratch,
        user_id="user-1",
        transport=google.transport,
        now=clock,
    )
