"""Waitlist - claim protocol, resubscribe and availability notifier.

Claim promotes WAITING -> HOLD. It runs SERIALIZABLE because it reads the
free seats and then writes: two waiting parties racing for the same freed
seats would otherwise both see room. The conditional update on
``status = 'WAITING'`` settles duplicate claims of the same reservation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.capacity import free_seats
from deltaroutes.domain.errors import (
    BookingClosedError,
    ConcurrencyConflictError,
    NoGuideError,
    NoSeatsError,
    NotWaitingError,
    ReservationNotFoundError,
    SessionCancelledError,
    SessionNotFoundError,
)
from deltaroutes.domain.guides import pick_guide
from deltaroutes.domain.lifecycle import can_transition, promote_to_hold
from deltaroutes.domain.models import Party, Reservation, ReservationStatus, Session
from deltaroutes.domain.payments import reset_payment_for_hold
from deltaroutes.infra.db import SerializationRetriesExhausted, run_serializable, txn
from deltaroutes.infra.repositories.reservations_repository import (
    AVAILABILITY_EMAIL_MARKER,
    clear_marker,
    get_reservation,
    list_unnotified_waiting,
)
from deltaroutes.infra.repositories.sessions_repository import (
    get_session,
    list_sessions_with_pending_waitlist,
)
from deltaroutes.infra.settings import BookingSettings, load_settings
from deltaroutes.infra.time import utc_now
from deltaroutes.notifications import templates
from deltaroutes.notifications.dispatch import deliver_once
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    reservation_id: str
    hold_expires_at: datetime


def _load_waiting(cur: PgCursor, waiting_id: str, now: datetime) -> tuple[Reservation, Session]:
    reservation = get_reservation(cur, waiting_id)
    if reservation is None:
        raise ReservationNotFoundError("Reservation not found")
    if not can_transition(reservation.status, ReservationStatus.HOLD):
        raise NotWaitingError("Reservation is not WAITING")

    session = get_session(cur, reservation.session_id)
    if session is None:
        raise SessionNotFoundError("Session not found")
    if session.is_cancelled:
        raise SessionCancelledError("Session is cancelled")
    if session.is_booking_closed(now):
        raise BookingClosedError("Booking is closed for this session")
    return reservation, session


def attempt_claim(
    cur: PgCursor,
    *,
    waiting_id: str,
    now: datetime,
    settings: BookingSettings,
) -> ClaimResult:
    """One claim attempt inside the caller's transaction."""
    reservation, session = _load_waiting(cur, waiting_id, now)

    if free_seats(cur, session=session, now=now) < reservation.total_pax:
        raise NoSeatsError("Not enough free seats right now")

    guide_id = pick_guide(
        cur,
        session=session,
        party_size=reservation.total_pax,
        now=now,
        preferred_language=reservation.browser_language,
    )
    if guide_id is None:
        raise NoGuideError("No guide capacity right now")

    hold_expires_at = now + settings.hold_duration
    if not promote_to_hold(
        cur,
        reservation_id=reservation.id,
        guide_id=guide_id,
        hold_expires_at=hold_expires_at,
    ):
        raise NoSeatsError("Race lost")

    reset_payment_for_hold(
        cur,
        reservation_id=reservation.id,
        session=session,
        party=Party(reservation.adults_count, reservation.minors_count),
    )
    return ClaimResult(reservation_id=reservation.id, hold_expires_at=hold_expires_at)


def claim_waiting(
    waiting_id: str,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> ClaimResult:
    """Promote a WAITING reservation to HOLD if seats and a guide are free.

    Raises:
        ReservationNotFoundError: Unknown reservation.
        NotWaitingError, SessionCancelledError, BookingClosedError,
        NoSeatsError, NoGuideError: Claim refused.
        ConcurrencyConflictError: Serializable retries exhausted.
    """
    settings = settings or load_settings()

    def work(cur: PgCursor) -> ClaimResult:
        return attempt_claim(
            cur,
            waiting_id=waiting_id,
            now=now or utc_now(),
            settings=settings,
        )

    try:
        result = run_serializable(work, operation="claim_waiting")
    except SerializationRetriesExhausted as e:
        raise ConcurrencyConflictError("Could not claim") from e

    logger.info(
        "waitlist claim succeeded",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                reservation_id_prefix=id_prefix(result.reservation_id),
            )
        },
    )
    return result


def resubscribe_waiting(waiting_id: str, *, now: datetime | None = None) -> None:
    """Re-arm availability notifications for a WAITING reservation."""
    now = now or utc_now()
    with txn() as cur:
        reservation, _ = _load_waiting(cur, waiting_id, now)
        clear_marker(cur, reservation_id=reservation.id, marker=AVAILABILITY_EMAIL_MARKER)

    logger.info(
        "waitlist resubscribed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                reservation_id_prefix=id_prefix(waiting_id),
            )
        },
    )


def notify_waitlist(
    *,
    session_id: str | None = None,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> dict:
    """Tell waiting parties that seats opened up, in arrival order.

    Free seats are allocated virtually: each notified party reduces the pool
    so we never notify more people than currently fit. No hold is created.

    Returns:
        {"sessions_checked": int, "considered": int, "notified": int}
    """
    now = now or utc_now()
    settings = settings or load_settings()
    render = partial(templates.seats_available, app_url=settings.app_url)

    with txn() as cur:
        sessions = list_sessions_with_pending_waitlist(cur, now=now, session_id=session_id)

    considered = 0
    notified = 0

    for session in sessions:
        with txn() as cur:
            remaining = free_seats(cur, session=session, now=now)
            waiting = list_unnotified_waiting(cur, session_id=session.id) if remaining > 0 else []

        for reservation in waiting:
            considered += 1
            if reservation.total_pax > remaining:
                continue

            if not deliver_once(
                reservation_id=reservation.id,
                marker=AVAILABILITY_EMAIL_MARKER,
                render=render,
                now=now,
                settings=settings,
            ):
                continue

            notified += 1
            remaining -= reservation.total_pax
            if remaining <= 0:
                break

    logger.info(
        "waitlist notify run finished",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                sessions_checked=len(sessions),
                considered=considered,
                notified=notified,
            )
        },
    )
    return {
        "sessions_checked": len(sessions),
        "considered": considered,
        "notified": notified,
    }
