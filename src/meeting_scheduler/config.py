"""Centralized scheduler configuration.

Runtime files live in the meeting-scheduler repo root:
    .env                        - OAuth client settings (GOOGLE_CLIENT_ID, etc.)
    data/integrations.json      - Per-user calendar integration records

This module auto-loads the .env file on import, making the OAuth client
settings available to the CLI and any code that builds SchedulerSettings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

# __file__ is src/meeting_scheduler/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = REPO_ROOT / "data"

ENV_FILE = REPO_ROOT / ".env"
INTEGRATIONS_FILE = DATA_DIR / "integrations.json"

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

DEFAULT_REDIRECT_URI = "http://localhost:8080/auth/google-calendar/callback"
DEFAULT_TIMEZONE = "UTC"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def ensure_data_dir() -> Path:
    """Create the data directory if it doesn't exist.

    Returns:
        Path to data directory.
    """
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR


@dataclass(frozen=True)
class SchedulerSettings:
    """OAuth client and calendar settings injected into the session manager.

    Example:
        >>> settings = SchedulerSettings(client_id="abc", client_secret="xyz")
        >>> settings.expiry_margin
        datetime.timedelta(seconds=300)
    """

    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(CALENDAR_SCOPES))
    authorize_url: str = GOOGLE_AUTHORIZE_URL
    token_url: str = GOOGLE_TOKEN_URL
    revoke_url: str = GOOGLE_REVOKE_URL
    calendar_api_url: str = GOOGLE_CALENDAR_API_URL
    time_zone: str = DEFAULT_TIMEZONE
    expiry_margin: timedelta = timedelta(minutes=5)
    state_ttl: timedelta = timedelta(minutes=10)

    @property
    def scope(self) -> str:
        """Space-separated scope string for the authorization request."""
        return " ".join(self.scopes)

    @classmethod
    def from_env(cls) -> SchedulerSettings:
        """Build settings from environment variables.

        Raises:
            ValueError: If GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET is missing.
        """
        client_id = os.environ.get("GOOGLE_CLIENT_ID")
        client_secret = os.environ.get("GOOGLE_CLIENT_SECRET")

        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", client_id),
                ("GOOGLE_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Missing OAuth settings: {', '.join(missing)}. "
                f"Set them in the environment or in {ENV_FILE}."
            )

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=os.environ.get("GOOGLE_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            time_zone=os.environ.get("MEETING_TIMEZONE", DEFAULT_TIMEZONE),
        )


def get_config_status() -> dict:
    """Get status of the scheduler configuration.

    Returns:
        Dictionary with configuration status.
    """
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "google": {
            "client_id": bool(os.environ.get("GOOGLE_CLIENT_ID")),
            "client_secret": bool(os.environ.get("GOOGLE_CLIENT_SECRET")),
            "redirect_uri": os.environ.get("GOOGLE_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        },
        "time_zone": os.environ.get("MEETING_TIMEZONE", DEFAULT_TIMEZONE),
        "integrations_file": INTEGRATIONS_FILE.exists(),
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
