"""Payments repository - persistence for payment records.

Uses raw SQL with psycopg2 (no ORM). One payment row per reservation.
"""

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import OPEN_PAYMENT_STATUSES, Payment, PaymentStatus

_PAYMENT_COLUMNS = """
    id, reservation_id, status, amount_cents, currency,
    stripe_checkout_session_id, stripe_payment_intent_id
"""


def _row_to_payment(row: tuple) -> Payment:
    return Payment(
        id=str(row[0]),
        reservation_id=str(row[1]),
        status=PaymentStatus(row[2]),
        amount_cents=row[3],
        currency=row[4],
        stripe_checkout_session_id=row[5],
        stripe_payment_intent_id=row[6],
    )


def get_payment_for_reservation(cur: PgCursor, reservation_id: str) -> Payment | None:
    cur.execute(
        f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE reservation_id = %s",
        (reservation_id,),
    )
    row = cur.fetchone()
    return _row_to_payment(row) if row else None


def get_payment_by_checkout_session(
    cur: PgCursor,
    checkout_session_id: str,
) -> Payment | None:
    cur.execute(
        f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE stripe_checkout_session_id = %s",
        (checkout_session_id,),
    )
    row = cur.fetchone()
    return _row_to_payment(row) if row else None


def upsert_payment_placeholder(
    cur: PgCursor,
    *,
    reservation_id: str,
    status: PaymentStatus,
    amount_cents: int,
    currency: str,
) -> None:
    """Create or reset the payment row that backs a new hold.

    Any previous checkout references are dropped: a fresh hold needs a fresh
    checkout session.
    """
    cur.execute(
        """
        INSERT INTO payments (reservation_id, status, amount_cents, currency)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (reservation_id) DO UPDATE
        SET status = EXCLUDED.status,
            amount_cents = EXCLUDED.amount_cents,
            currency = EXCLUDED.currency,
            stripe_checkout_session_id = NULL,
            stripe_payment_intent_id = NULL,
            updated_at = now()
        """,
        (reservation_id, status.value, amount_cents, currency),
    )


def update_amount(
    cur: PgCursor,
    *,
    payment_id: str,
    amount_cents: int,
    currency: str,
) -> None:
    cur.execute(
        """
        UPDATE payments
        SET amount_cents = %s, currency = %s, updated_at = now()
        WHERE id = %s
        """,
        (amount_cents, currency, payment_id),
    )


def mark_checkout_started(
    cur: PgCursor,
    *,
    payment_id: str,
    checkout_session_id: str,
) -> None:
    """Attach a checkout session and move the payment to PENDING."""
    cur.execute(
        """
        UPDATE payments
        SET status = 'PENDING', stripe_checkout_session_id = %s, updated_at = now()
        WHERE id = %s AND status IN ('REQUIRES_PAYMENT', 'PENDING')
        """,
        (checkout_session_id, payment_id),
    )


def mark_succeeded(
    cur: PgCursor,
    *,
    payment_id: str,
    checkout_session_id: str,
    payment_intent_id: str | None,
) -> bool:
    """Move a payment to SUCCEEDED, persisting the provider charge ids.

    Returns:
        True if the row changed (it was not already SUCCEEDED).
    """
    cur.execute(
        """
        UPDATE payments
        SET status = 'SUCCEEDED',
            stripe_checkout_session_id = %s,
            stripe_payment_intent_id = COALESCE(%s, stripe_payment_intent_id),
            updated_at = now()
        WHERE id = %s AND status <> 'SUCCEEDED'
        """,
        (checkout_session_id, payment_intent_id, payment_id),
    )
    return cur.rowcount == 1


def cancel_open_payments(cur: PgCursor, reservation_ids: list[str]) -> list[str]:
    """Cancel PENDING/REQUIRES_PAYMENT payments of the given reservations.

    Returns:
        Checkout session ids of the cancelled payments that had one.
    """
    if not reservation_ids:
        return []

    cur.execute(
        """
        UPDATE payments
        SET status = 'CANCELED', updated_at = now()
        WHERE reservation_id = ANY(%s::uuid[])
          AND status = ANY(%s)
        RETURNING stripe_checkout_session_id
        """,
        (reservation_ids, [s.value for s in OPEN_PAYMENT_STATUSES]),
    )
    return [row[0] for row in cur.fetchall() if row[0]]
