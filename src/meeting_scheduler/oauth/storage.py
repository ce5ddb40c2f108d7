"""Token records and the stores that hold them.

Two kinds of storage back the OAuth session:
- Integration stores persist one IntegrationRecord per user (tokens + status).
- Scratch stores hold the short-lived PKCE verifier and CSRF state between
  initiating and completing an authorization.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from meeting_scheduler.config import INTEGRATIONS_FILE
from meeting_scheduler.oauth.exceptions import OAuthSessionError

logger = logging.getLogger(__name__)

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class OAuthToken:
    """Represents a calendar access token."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str = ""

    def expires_within(self, margin: timedelta, now: datetime) -> bool:
        """Check if the token expires within `margin` of `now`."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at - margin


@dataclass(frozen=True)
class IntegrationRecord:
    """Persisted calendar integration for one user."""

    user_id: str
    status: str = STATUS_DISCONNECTED
    provider_token: str | None = None
    provider_refresh_token: str | None = None
    token_expires_at: datetime | None = None
    scope: str = ""
    last_token_refresh: datetime | None = None

    @property
    def is_connected(self) -> bool:
        return self.status == STATUS_CONNECTED and bool(self.provider_token)

    def to_token(self) -> OAuthToken:
        return OAuthToken(
            access_token=self.provider_token or "",
            refresh_token=self.provider_refresh_token,
            expires_at=self.token_expires_at,
            scope=self.scope,
        )

    def with_token(self, token: OAuthToken, refreshed_at: datetime) -> IntegrationRecord:
        """Return a connected copy carrying `token`."""
        return replace(
            self,
            status=STATUS_CONNECTED,
            provider_token=token.access_token,
            provider_refresh_token=token.refresh_token,
            token_expires_at=token.expires_at,
            scope=token.scope,
            last_token_refresh=refreshed_at,
        )

    def disconnected(self) -> IntegrationRecord:
        """Return a disconnected copy with tokens cleared."""
        return replace(
            self,
            status=STATUS_DISCONNECTED,
            provider_token=None,
            provider_refresh_token=None,
            token_expires_at=None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "status": self.status,
            "provider_token": self.provider_token,
            "provider_refresh_token": self.provider_refresh_token,
            "token_expires_at": _format_dt(self.token_expires_at),
            "scope": self.scope,
            "last_token_refresh": _format_dt(self.last_token_refresh),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IntegrationRecord:
        return cls(
            user_id=data["user_id"],
            status=data.get("status", STATUS_DISCONNECTED),
            provider_token=data.get("provider_token"),
            provider_refresh_token=data.get("provider_refresh_token"),
            token_expires_at=_parse_dt(data.get("token_expires_at")),
            scope=data.get("scope", ""),
            last_token_refresh=_parse_dt(data.get("last_token_refresh")),
        )


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# =========================================================================
# Integration stores
# =========================================================================


class IntegrationStore(ABC):
    """Abstract per-user integration record store."""

    @abstractmethod
    async def load(self, user_id: str) -> IntegrationRecord | None:
        """Load the record for `user_id`, or None if there is none."""
        pass

    @abstractmethod
    async def save(self, record: IntegrationRecord) -> None:
        """Insert or replace the record for `record.user_id`."""
        pass


class MemoryIntegrationStore(IntegrationStore):
    """Integration store held in process memory."""

    def __init__(self, records: list[IntegrationRecord] | None = None):
        self._records: dict[str, IntegrationRecord] = {r.user_id: r for r in records or []}

    async def load(self, user_id: str) -> IntegrationRecord | None:
        return self._records.get(user_id)

    async def save(self, record: IntegrationRecord) -> None:
        self._records[record.user_id] = record


class JsonFileIntegrationStore(IntegrationStore):
    """Integration store backed by a single JSON file keyed by user id.

    Example:
        >>> store = JsonFileIntegrationStore("data/integrations.json")
        >>> record = await store.load("me")
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else INTEGRATIONS_FILE
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise OAuthSessionError(f"Integration file {self.path} is corrupt: {e}") from e

    def _write_all(self, data: dict[str, dict[str, Any]]) -> None:
        # Readers only ever see the old file or the complete new one
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def load(self, user_id: str) -> IntegrationRecord | None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
        entry = data.get(user_id)
        if entry is None:
            logger.info(f"No integration record found for {user_id}")
            return None
        return IntegrationRecord.from_dict(entry)

    async def save(self, record: IntegrationRecord) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[record.user_id] = record.to_dict()
            await asyncio.to_thread(self._write_all, data)
        logger.debug(f"Integration record saved for {record.user_id} ({record.status})")


# =========================================================================
# Scratch stores
# =========================================================================


class ScratchStore(ABC):
    """Short-lived key-value storage with per-entry TTL."""

    @abstractmethod
    async def set(self, key: str, value: dict[str, str], ttl: timedelta) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> dict[str, str] | None:
        """Return the value, or None if missing or expired."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class MemoryScratchStore(ScratchStore):
    """In-memory scratch store.

    Expiry is measured on a monotonic clock, which can be replaced in tests.
    """

    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[float, dict[str, str]]] = {}

    async def set(self, key: str, value: dict[str, str], ttl: timedelta) -> None:
        self._entries[key] = (self._clock() + ttl.total_seconds(), dict(value))

    async def get(self, key: str) -> dict[str, str] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        deadline, value = entry
        if self._clock() >= deadline:
            del self._entries[key]
            return None
        return dict(value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)
