"""Service settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_HOLD_MINUTES = 15
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_EMAIL_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class BookingSettings:
    """Runtime knobs for the reservation core.

    Attributes:
        hold_minutes: Lifetime of a HOLD before the seat returns to the pool.
        app_url: Public base URL used in customer links.
        email_from: Sender address; the email sink is disabled when unset.
        email_api_key: Email provider API key.
        email_api_url: Email provider endpoint.
    """

    hold_minutes: int = DEFAULT_HOLD_MINUTES
    app_url: str = DEFAULT_APP_URL
    email_from: str | None = None
    email_api_key: str | None = None
    email_api_url: str = DEFAULT_EMAIL_API_URL

    @property
    def hold_duration(self) -> timedelta:
        return timedelta(minutes=self.hold_minutes)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_from and self.email_api_key)


def _parse_hold_minutes(raw: str | None) -> int:
    if raw is None or raw.strip() == "":
        return DEFAULT_HOLD_MINUTES
    try:
        minutes = int(raw)
    except ValueError as e:
        raise ValueError(f"HOLD_MINUTES must be an integer, got {raw!r}") from e
    if minutes < 1:
        raise ValueError("HOLD_MINUTES must be >= 1")
    return minutes


def load_settings() -> BookingSettings:
    """Read settings from the environment.

    Raises:
        ValueError: If HOLD_MINUTES is not a positive integer.
    """
    return BookingSettings(
        hold_minutes=_parse_hold_minutes(os.environ.get("HOLD_MINUTES")),
        app_url=os.environ.get("APP_URL", DEFAULT_APP_URL).rstrip("/"),
        email_from=os.environ.get("EMAIL_FROM") or None,
        email_api_key=os.environ.get("EMAIL_API_KEY") or None,
        email_api_url=os.environ.get("EMAIL_API_URL", DEFAULT_EMAIL_API_URL),
    )
