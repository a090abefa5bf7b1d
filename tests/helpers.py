"""Shared test helper functions for DeltaRoutes booking tests.

This module contains helper functions that can be imported by both conftest.py
and individual test files. These are NOT fixtures - they are regular functions.
Everything here talks to a real Postgres through DATABASE_URL.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from deltaroutes.infra.db import txn
from deltaroutes.infra.time import utc_now

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "migrations" / "sql" / "001_initial.sql"

TEST_EMAIL_DOMAIN = "test.deltaroutes.example"


def apply_schema() -> None:
    """Apply the initial schema (idempotent)."""
    with txn() as cur:
        cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))


def unique_email(label: str = "guest") -> str:
    return f"{label}-{uuid.uuid4().hex[:10]}@{TEST_EMAIL_DOMAIN}"


def seed_session(
    *,
    max_seats_total: int = 5,
    max_per_guide: int = 10,
    adult_price_cents: int = 2500,
    minor_price_cents: int = 1000,
    currency: str = "eur",
    requires_payment: bool = True,
    is_cancelled: bool = False,
    start_at: datetime | None = None,
    booking_closes_at: datetime | None = None,
) -> str:
    """Insert an experience and one session. Returns the session id."""
    start_at = start_at or utc_now() + timedelta(days=2)
    booking_closes_at = booking_closes_at or start_at - timedelta(hours=2)

    with txn() as cur:
        cur.execute(
            """
            INSERT INTO experiences (slug, title)
            VALUES (%s, %s)
            RETURNING id
            """,
            (f"delta-tour-{uuid.uuid4().hex[:10]}", "Delta Kayak Tour"),
        )
        experience_id = cur.fetchone()[0]
        cur.execute(
            """
            INSERT INTO sessions (
                experience_id, start_at, booking_closes_at,
                max_seats_total, max_per_guide,
                adult_price_cents, minor_price_cents, currency,
                requires_payment, is_cancelled
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                experience_id,
                start_at,
                booking_closes_at,
                max_seats_total,
                max_per_guide,
                adult_price_cents,
                minor_price_cents,
                currency,
                requires_payment,
                is_cancelled,
            ),
        )
        return str(cur.fetchone()[0])


def seed_guide(languages: tuple[str, ...] = ()) -> str:
    with txn() as cur:
        cur.execute(
            """
            INSERT INTO guides (email, name, languages)
            VALUES (%s, %s, %s)
            RETURNING id
            """,
            (unique_email("guide"), "Test Guide", list(languages)),
        )
        return str(cur.fetchone()[0])


def force_hold_expiry(reservation_id: str, hold_expires_at: datetime) -> None:
    with txn() as cur:
        cur.execute(
            "UPDATE reservations SET hold_expires_at = %s WHERE id = %s",
            (hold_expires_at, reservation_id),
        )


def set_checkout_session(reservation_id: str, checkout_session_id: str) -> None:
    with txn() as cur:
        cur.execute(
            """
            UPDATE payments
            SET status = 'PENDING', stripe_checkout_session_id = %s
            WHERE reservation_id = %s
            """,
            (checkout_session_id, reservation_id),
        )


def reservation_row(reservation_id: str) -> dict:
    with txn() as cur:
        cur.execute(
            """
            SELECT status, hold_expires_at, guide_id, total_pax,
                   adults_count, minors_count, confirmed_email_sent_at
            FROM reservations WHERE id = %s
            """,
            (reservation_id,),
        )
        row = cur.fetchone()
    return {
        "status": row[0],
        "hold_expires_at": row[1],
        "guide_id": str(row[2]) if row[2] else None,
        "total_pax": row[3],
        "adults_count": row[4],
        "minors_count": row[5],
        "confirmed_email_sent_at": row[6],
    }


def payment_row(reservation_id: str) -> dict | None:
    with txn() as cur:
        cur.execute(
            """
            SELECT status, amount_cents, currency,
                   stripe_checkout_session_id, stripe_payment_intent_id
            FROM payments WHERE reservation_id = %s
            """,
            (reservation_id,),
        )
        row = cur.fetchone()
    if row is None:
        return None
    return {
        "status": row[0],
        "amount_cents": row[1],
        "currency": row[2],
        "stripe_checkout_session_id": row[3],
        "stripe_payment_intent_id": row[4],
    }


def cleanup(session_ids: list[str], guide_ids: list[str] | None = None) -> None:
    """Delete test rows in FK order."""
    with txn() as cur:
        if session_ids:
            cur.execute(
                """
                DELETE FROM payments WHERE reservation_id IN (
                    SELECT id FROM reservations WHERE session_id = ANY(%s::uuid[])
                )
                """,
                (session_ids,),
            )
            cur.execute(
                "DELETE FROM reservations WHERE session_id = ANY(%s::uuid[])",
                (session_ids,),
            )
            cur.execute(
                """
                DELETE FROM sessions WHERE id = ANY(%s::uuid[])
                RETURNING experience_id
                """,
                (session_ids,),
            )
            experience_ids = [str(row[0]) for row in cur.fetchall()]
            cur.execute(
                "DELETE FROM experiences WHERE id = ANY(%s::uuid[])",
                (experience_ids,),
            )
        if guide_ids:
            cur.execute(
                "DELETE FROM guides WHERE id = ANY(%s::uuid[])",
                (guide_ids,),
            )
        cur.execute(
            """
            DELETE FROM customers c
            WHERE c.email LIKE %s
              AND NOT EXISTS (SELECT 1 FROM reservations r WHERE r.customer_id = c.id)
            """,
            (f"%@{TEST_EMAIL_DOMAIN}",),
        )


def make_session(**overrides):
    """In-memory Session with sensible defaults (no DB)."""
    from deltaroutes.domain.models import Session

    start_at = overrides.pop("start_at", datetime(2026, 6, 2, 10, 0, tzinfo=timezone.utc))
    values = dict(
        id="11111111-1111-1111-1111-111111111111",
        experience_id="22222222-2222-2222-2222-222222222222",
        start_at=start_at,
        booking_closes_at=start_at - timedelta(hours=2),
        max_seats_total=5,
        max_per_guide=5,
        adult_price_cents=2500,
        minor_price_cents=1000,
        currency="eur",
        requires_payment=True,
        is_cancelled=False,
        experience_title="Delta Kayak Tour",
    )
    values.update(overrides)
    return Session(**values)


def make_reservation(**overrides):
    """In-memory Reservation with sensible defaults (no DB)."""
    from deltaroutes.domain.models import Reservation, ReservationStatus

    values = dict(
        id="33333333-3333-3333-3333-333333333333",
        session_id="11111111-1111-1111-1111-111111111111",
        customer_id="44444444-4444-4444-4444-444444444444",
        status=ReservationStatus.HOLD,
        hold_expires_at=None,
        adults_count=2,
        minors_count=0,
        total_pax=2,
        guide_id=None,
        tour_language=None,
        browser_language=None,
    )
    values.update(overrides)
    return Reservation(**values)


def make_payment(**overrides):
    """In-memory Payment with sensible defaults (no DB)."""
    from deltaroutes.domain.models import Payment, PaymentStatus

    values = dict(
        id="55555555-5555-5555-5555-555555555555",
        reservation_id="33333333-3333-3333-3333-333333333333",
        status=PaymentStatus.PENDING,
        amount_cents=5000,
        currency="eur",
        stripe_checkout_session_id="cs_test_123",
    )
    values.update(overrides)
    return Payment(**values)
