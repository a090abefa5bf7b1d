"""Reservation lifecycle state machine.

The only writer of ``reservations.status`` and ``hold_expires_at`` after a
row is created. Every transition is a conditional update on the expected
source status, so a late or duplicated signal can never revive an EXPIRED or
CANCELLED reservation: it simply affects zero rows.

Legal transitions:

    WAITING -> HOLD        waitlist claim
    HOLD    -> CONFIRMED   payment reconciliation
    HOLD    -> EXPIRED     sweeper or checkout-expired signal
    HOLD    -> HOLD        customer detail update (no state change)
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import ReservationStatus

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.WAITING: frozenset({ReservationStatus.HOLD}),
    ReservationStatus.HOLD: frozenset(
        {
            ReservationStatus.HOLD,
            ReservationStatus.CONFIRMED,
            ReservationStatus.EXPIRED,
        }
    ),
    ReservationStatus.CONFIRMED: frozenset(),
    ReservationStatus.EXPIRED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


def can_transition(source: ReservationStatus, target: ReservationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, frozenset())


def promote_to_hold(
    cur: PgCursor,
    *,
    reservation_id: str,
    guide_id: str,
    hold_expires_at: datetime,
) -> bool:
    """WAITING -> HOLD. False if the row is no longer WAITING."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'HOLD', hold_expires_at = %s, guide_id = %s, updated_at = now()
        WHERE id = %s AND status = 'WAITING'
        """,
        (hold_expires_at, guide_id, reservation_id),
    )
    return cur.rowcount == 1


def confirm_hold(cur: PgCursor, *, reservation_id: str) -> bool:
    """HOLD -> CONFIRMED, clearing the hold timer. False if not HOLD."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'CONFIRMED', hold_expires_at = NULL, updated_at = now()
        WHERE id = %s AND status = 'HOLD'
        """,
        (reservation_id,),
    )
    return cur.rowcount == 1


def expire_hold(cur: PgCursor, *, reservation_id: str) -> bool:
    """HOLD -> EXPIRED for one reservation. False if not HOLD."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'EXPIRED', hold_expires_at = NULL, updated_at = now()
        WHERE id = %s AND status = 'HOLD'
        """,
        (reservation_id,),
    )
    return cur.rowcount == 1


def expire_due_holds(cur: PgCursor, *, now: datetime) -> list[str]:
    """HOLD -> EXPIRED for every hold whose deadline has passed.

    Returns:
        Ids of the reservations that were expired by this call.
    """
    cur.execute(
        """
        UPDATE reservations
        SET status = 'EXPIRED', hold_expires_at = NULL, updated_at = now()
        WHERE status = 'HOLD' AND hold_expires_at <= %s
        RETURNING id
        """,
        (now,),
    )
    return [str(row[0]) for row in cur.fetchall()]


def update_live_hold(
    cur: PgCursor,
    *,
    reservation_id: str,
    now: datetime,
    tour_language: str,
) -> bool:
    """HOLD -> HOLD: update hold details only while the hold is live.

    Returns:
        False if the reservation is not HOLD or its deadline has passed.
    """
    cur.execute(
        """
        UPDATE reservations
        SET tour_language = %s, updated_at = now()
        WHERE id = %s AND status = 'HOLD' AND hold_expires_at > %s
        """,
        (tour_language, reservation_id, now),
    )
    return cur.rowcount == 1
