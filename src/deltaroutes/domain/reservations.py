"""Reservation creation and customer-facing reservation operations.

Creation decides the initial state inside one SERIALIZABLE transaction:
HOLD when the party fits the free seats and a guide has room, WAITING
otherwise. Capacity is always recomputed in the transaction that writes.
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
    DuplicateReservationError,
    HoldNotActiveError,
    NotWaitingError,
    ReservationNotFoundError,
    SessionCancelledError,
    SessionNotFoundError,
)
from deltaroutes.domain.guides import pick_guide
from deltaroutes.domain.lifecycle import update_live_hold
from deltaroutes.domain.models import (
    Language,
    Party,
    ReservationStatus,
    Session,
)
from deltaroutes.domain.payments import reset_payment_for_hold
from deltaroutes.infra.db import SerializationRetriesExhausted, run_serializable, txn
from deltaroutes.infra.repositories.customers_repository import (
    get_customer,
    update_contact,
    upsert_customer,
)
from deltaroutes.infra.repositories.reservations_repository import (
    CREATED_EMAIL_MARKER,
    find_by_session_and_customer,
    get_reservation,
    insert_reservation,
)
from deltaroutes.infra.repositories.sessions_repository import get_session
from deltaroutes.infra.settings import BookingSettings, load_settings
from deltaroutes.infra.time import utc_now
from deltaroutes.notifications import templates
from deltaroutes.notifications.dispatch import deliver_once
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationRequest:
    """Validated input for a new reservation."""

    session_id: str
    customer_email: str
    customer_name: str
    party: Party
    tour_language: Language
    customer_phone: str | None = None
    browser_language: Language | None = None


@dataclass(frozen=True)
class CreationResult:
    kind: ReservationStatus
    reservation_id: str
    hold_expires_at: datetime | None = None


@dataclass(frozen=True)
class WaitlistJoinResult:
    reservation_id: str
    status: ReservationStatus
    total_pax: int
    created: bool


def load_bookable_session(cur: PgCursor, session_id: str, now: datetime) -> Session:
    """Load a session that still accepts bookings.

    Raises:
        SessionNotFoundError: Unknown session.
        SessionCancelledError: Session is cancelled.
        BookingClosedError: ``now`` is past ``booking_closes_at``.
    """
    session = get_session(cur, session_id)
    if session is None:
        raise SessionNotFoundError("Session not found")
    if session.is_cancelled:
        raise SessionCancelledError("Session is cancelled")
    if session.is_booking_closed(now):
        raise BookingClosedError("Booking is closed for this session")
    return session


def _create_in_txn(
    cur: PgCursor,
    request: ReservationRequest,
    *,
    now: datetime,
    settings: BookingSettings,
) -> CreationResult:
    session = load_bookable_session(cur, request.session_id, now)

    customer = upsert_customer(
        cur,
        email=request.customer_email,
        name=request.customer_name,
        phone=request.customer_phone,
    )

    if find_by_session_and_customer(cur, session_id=session.id, customer_id=customer.id):
        raise DuplicateReservationError(
            "Customer already has a reservation for this session"
        )

    party = request.party
    status = ReservationStatus.WAITING
    guide_id = None
    hold_expires_at = None

    if free_seats(cur, session=session, now=now) >= party.total_pax:
        guide_id = pick_guide(
            cur,
            session=session,
            party_size=party.total_pax,
            now=now,
            preferred_language=request.browser_language,
        )
        if guide_id is not None:
            status = ReservationStatus.HOLD
            hold_expires_at = now + settings.hold_duration

    reservation = insert_reservation(
        cur,
        session_id=session.id,
        customer_id=customer.id,
        status=status,
        party=party,
        hold_expires_at=hold_expires_at,
        guide_id=guide_id,
        tour_language=request.tour_language,
        browser_language=request.browser_language,
    )
    if reservation is None:
        raise DuplicateReservationError(
            "Customer already has a reservation for this session"
        )

    if status == ReservationStatus.HOLD:
        reset_payment_for_hold(
            cur,
            reservation_id=reservation.id,
            session=session,
            party=party,
        )

    return CreationResult(
        kind=status,
        reservation_id=reservation.id,
        hold_expires_at=hold_expires_at,
    )


def create_reservation(
    request: ReservationRequest,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> CreationResult:
    """Create a HOLD (seats + guide available) or a WAITING reservation.

    Raises:
        SessionNotFoundError, SessionCancelledError, BookingClosedError,
        DuplicateReservationError: Business-rule failures.
        ConcurrencyConflictError: Serializable retries exhausted.
    """
    settings = settings or load_settings()
    now = now or utc_now()

    try:
        result = run_serializable(
            partial(_create_in_txn, request=request, now=now, settings=settings),
            operation="create_reservation",
        )
    except SerializationRetriesExhausted as e:
        raise ConcurrencyConflictError("Could not reserve seats, please retry") from e

    logger.info(
        "reservation created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                reservation_id_prefix=id_prefix(result.reservation_id),
                session_id_prefix=id_prefix(request.session_id),
                kind=result.kind.value,
                total_pax=request.party.total_pax,
            )
        },
    )

    send_created_email(result.reservation_id, result.kind, now=now, settings=settings)
    return result


def send_created_email(
    reservation_id: str,
    kind: ReservationStatus,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> bool:
    """First email for a reservation, sent once whichever state it started in."""
    settings = settings or load_settings()
    if kind == ReservationStatus.HOLD:
        render = partial(
            templates.hold_created,
            app_url=settings.app_url,
            hold_minutes=settings.hold_minutes,
        )
    else:
        render = templates.waiting_created

    return deliver_once(
        reservation_id=reservation_id,
        marker=CREATED_EMAIL_MARKER,
        render=render,
        created_kind=kind.value,
        now=now,
        settings=settings,
    )


def join_waitlist(
    *,
    session_id: str,
    customer_email: str,
    party: Party,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> WaitlistJoinResult:
    """Put a party on the waiting list, reusing any reservation it already has.

    Idempotent per (session, customer). Existing customer names are kept.
    """
    now = now or utc_now()

    with txn() as cur:
        session = load_bookable_session(cur, session_id, now)
        customer = upsert_customer(cur, email=customer_email)

        existing = find_by_session_and_customer(
            cur, session_id=session.id, customer_id=customer.id
        )
        created = False
        if existing is None:
            existing = insert_reservation(
                cur,
                session_id=session.id,
                customer_id=customer.id,
                status=ReservationStatus.WAITING,
                party=party,
            )
            created = existing is not None
            if existing is None:
                existing = find_by_session_and_customer(
                    cur, session_id=session.id, customer_id=customer.id
                )

    result = WaitlistJoinResult(
        reservation_id=existing.id,
        status=existing.status,
        total_pax=existing.total_pax,
        created=created,
    )

    logger.info(
        "waitlist joined",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                reservation_id_prefix=id_prefix(result.reservation_id),
                status=result.status.value,
                created=created,
            )
        },
    )

    if result.status == ReservationStatus.WAITING:
        send_created_email(
            result.reservation_id,
            ReservationStatus.WAITING,
            now=now,
            settings=settings,
        )
    return result


def update_hold_details(
    *,
    reservation_id: str,
    customer_name: str,
    customer_phone: str | None,
    tour_language: Language,
    now: datetime | None = None,
) -> None:
    """Update contact details and tour language while the hold is live.

    Raises:
        ReservationNotFoundError: Unknown reservation.
        HoldNotActiveError: Not HOLD, or the hold deadline has passed.
    """
    now = now or utc_now()

    with txn() as cur:
        reservation = get_reservation(cur, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError("Reservation not found")

        if not update_live_hold(
            cur,
            reservation_id=reservation_id,
            now=now,
            tour_language=tour_language.value,
        ):
            raise HoldNotActiveError("HOLD expired")

        update_contact(
            cur,
            customer_id=reservation.customer_id,
            name=customer_name,
            phone=customer_phone,
        )


def get_waiting_detail(waiting_id: str, *, now: datetime | None = None) -> dict:
    """Snapshot of a WAITING reservation and whether it could be claimed now.

    Raises:
        ReservationNotFoundError: Unknown reservation.
        NotWaitingError: Reservation is not WAITING.
    """
    now = now or utc_now()

    with txn() as cur:
        reservation = get_reservation(cur, waiting_id)
        if reservation is None:
            raise ReservationNotFoundError("Waiting reservation not found")
        if reservation.status != ReservationStatus.WAITING:
            raise NotWaitingError("Reservation is not WAITING")

        session = get_session(cur, reservation.session_id)
        customer = get_customer(cur, reservation.customer_id)

        open_for_booking = not session.is_cancelled and not session.is_booking_closed(now)
        seats = free_seats(cur, session=session, now=now) if open_for_booking else 0

    return {
        "waiting_id": reservation.id,
        "session_id": session.id,
        "experience_title": session.experience_title,
        "start_at": session.start_at.isoformat(),
        "booking_closes_at": session.booking_closes_at.isoformat(),
        "adults_count": reservation.adults_count,
        "minors_count": reservation.minors_count,
        "total_pax": reservation.total_pax,
        "customer_email": customer.email if customer else None,
        "customer_name": customer.name if customer else None,
        "max_seats_total": session.max_seats_total,
        "is_cancelled": session.is_cancelled,
        "free_seats": seats,
        "can_claim_now": open_for_booking and seats >= reservation.total_pax,
    }
