"""Shared pytest fixtures for DeltaRoutes booking tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

_ENV_VARS = (
    "HOLD_MINUTES",
    "APP_URL",
    "EMAIL_FROM",
    "EMAIL_API_KEY",
    "EMAIL_API_URL",
    "ADMIN_SECRET",
    "ADMIN_OIDC_AUDIENCE",
    "ADMIN_OIDC_SERVICE_ACCOUNT",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Start every test without email, Stripe or admin credentials.

    DATABASE_URL is left alone so integration tests can still find Postgres.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def email_settings():
    """Settings with the email sink enabled."""
    from deltaroutes.infra.settings import BookingSettings

    return BookingSettings(
        hold_minutes=15,
        app_url="https://book.example.com",
        email_from="bookings@example.com",
        email_api_key="re_test_key",
    )
