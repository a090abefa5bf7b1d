"""Payment reconciliation - checkout creation and the HOLD -> CONFIRMED path.

Two entry points converge on ``confirm_paid_checkout``:
- push: Stripe delivers ``checkout.session.completed`` to the webhook.
- pull: the client polls ``poll_payment_status`` and, while the reservation
  is still HOLD with an open payment, we ask Stripe directly.

Confirmation is one transaction (reservation CONFIRMED + payment SUCCEEDED)
and is idempotent: a second confirmation finds the reservation no longer HOLD
and reports ``already_confirmed``. The provider amount and currency must
match the stored payment exactly, otherwise ``PaymentIntegrityError``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.errors import (
    AlreadyPaidError,
    NotPayableError,
    PaymentIntegrityError,
    PaymentNotFoundError,
    PaymentProviderError,
    PaymentRecordMissingError,
    ReservationNotFoundError,
    SessionNotFoundError,
)
from deltaroutes.domain.lifecycle import can_transition, confirm_hold, expire_hold
from deltaroutes.domain.models import (
    OPEN_PAYMENT_STATUSES,
    CheckoutSnapshot,
    Party,
    Payment,
    PaymentStatus,
    ReservationStatus,
    Session,
)
from deltaroutes.infra.db import txn
from deltaroutes.infra.repositories.customers_repository import get_customer
from deltaroutes.infra.repositories.payments_repository import (
    cancel_open_payments,
    get_payment_by_checkout_session,
    get_payment_for_reservation,
    mark_checkout_started,
    mark_succeeded,
    update_amount,
    upsert_payment_placeholder,
)
from deltaroutes.infra.repositories.reservations_repository import (
    CONFIRMED_EMAIL_MARKER,
    get_reservation,
)
from deltaroutes.infra.repositories.sessions_repository import get_session
from deltaroutes.infra.settings import BookingSettings, load_settings
from deltaroutes.infra.time import utc_now
from deltaroutes.notifications import templates
from deltaroutes.notifications.dispatch import deliver_once
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context
from deltaroutes.stripe.client import StripeClient, StripeClientError

logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"

# Stripe only accepts expires_at between 30 minutes and 24 hours from now.
MIN_CHECKOUT_LIFETIME = timedelta(minutes=30)


def reset_payment_for_hold(
    cur: PgCursor,
    *,
    reservation_id: str,
    session: Session,
    party: Party,
) -> None:
    """Create or reset the payment row behind a fresh hold (server-side amount)."""
    if session.requires_payment:
        upsert_payment_placeholder(
            cur,
            reservation_id=reservation_id,
            status=PaymentStatus.REQUIRES_PAYMENT,
            amount_cents=session.price_for(party.adults_count, party.minors_count),
            currency=session.currency,
        )
    else:
        upsert_payment_placeholder(
            cur,
            reservation_id=reservation_id,
            status=PaymentStatus.NOT_REQUIRED,
            amount_cents=0,
            currency=session.currency,
        )


def verify_checkout_amount(payment: Payment, snapshot: CheckoutSnapshot) -> None:
    """Compare the provider's charge with the stored payment.

    Raises:
        PaymentIntegrityError: If amount or currency is missing or differs.
    """
    if snapshot.amount_total is None or not snapshot.currency:
        raise PaymentIntegrityError("Checkout session has no amount or currency")

    if (
        snapshot.amount_total != payment.amount_cents
        or snapshot.currency.lower() != payment.currency.lower()
    ):
        raise PaymentIntegrityError(
            "Amount/currency mismatch: "
            f"provider={snapshot.amount_total} {snapshot.currency.lower()} "
            f"stored={payment.amount_cents} {payment.currency.lower()}"
        )


def _find_payment(cur: PgCursor, snapshot: CheckoutSnapshot) -> Payment | None:
    payment = get_payment_by_checkout_session(cur, snapshot.id)
    if payment is None and snapshot.reservation_id:
        payment = get_payment_for_reservation(cur, snapshot.reservation_id)
    return payment


def _log_ctx(**kwargs) -> dict:
    return safe_log_context(correlationId=get_correlation_id(), **kwargs)


def confirm_paid_checkout(
    snapshot: CheckoutSnapshot,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> dict:
    """Apply a paid checkout: payment SUCCEEDED, reservation CONFIRMED.

    Returns:
        Dict with result status:
        - {"status": "not_paid"} - provider does not report the session paid
        - {"status": "not_found"} - no payment matches the checkout session
        - {"status": "already_confirmed", "reservation_id": str}
        - {"status": "ignored", "reason": "reservation_not_hold", ...}
        - {"status": "confirmed", "reservation_id": str}

    Raises:
        PaymentIntegrityError: If amount/currency disagree. Nothing is written.
    """
    if not snapshot.is_paid:
        return {"status": "not_paid"}

    with txn() as cur:
        payment = _find_payment(cur, snapshot)
        if payment is None:
            return {"status": "not_found"}

        reservation = get_reservation(cur, payment.reservation_id)
        if reservation is None:
            return {"status": "not_found"}

        if (
            reservation.status == ReservationStatus.CONFIRMED
            and payment.status == PaymentStatus.SUCCEEDED
        ):
            return {"status": "already_confirmed", "reservation_id": reservation.id}

        if not can_transition(reservation.status, ReservationStatus.CONFIRMED):
            return {
                "status": "ignored",
                "reason": "reservation_not_hold",
                "reservation_id": reservation.id,
            }

        try:
            verify_checkout_amount(payment, snapshot)
        except PaymentIntegrityError:
            logger.error(
                "checkout amount integrity failure",
                extra={
                    "extra_fields": _log_ctx(
                        reservation_id_prefix=id_prefix(reservation.id),
                        checkout_session_id=snapshot.id,
                        provider_amount=snapshot.amount_total,
                        stored_amount=payment.amount_cents,
                    )
                },
            )
            raise

        # Reservation first: the conditional update is the race arbiter.
        if not confirm_hold(cur, reservation_id=reservation.id):
            current = get_reservation(cur, reservation.id)
            if current is not None and current.status == ReservationStatus.CONFIRMED:
                return {"status": "already_confirmed", "reservation_id": reservation.id}
            return {
                "status": "ignored",
                "reason": "reservation_not_hold",
                "reservation_id": reservation.id,
            }

        mark_succeeded(
            cur,
            payment_id=payment.id,
            checkout_session_id=snapshot.id,
            payment_intent_id=snapshot.payment_intent_id,
        )

    logger.info(
        "reservation confirmed",
        extra={
            "extra_fields": _log_ctx(
                reservation_id_prefix=id_prefix(reservation.id),
                checkout_session_id=snapshot.id,
            )
        },
    )

    deliver_once(
        reservation_id=reservation.id,
        marker=CONFIRMED_EMAIL_MARKER,
        render=templates.payment_confirmed,
        now=now,
        settings=settings,
    )

    return {"status": "confirmed", "reservation_id": reservation.id}


def expire_checkout(snapshot: CheckoutSnapshot) -> dict:
    """Handle a provider "checkout expired" signal: HOLD -> EXPIRED.

    Never touches a CONFIRMED reservation.
    """
    with txn() as cur:
        payment = _find_payment(cur, snapshot)
        if payment is None:
            return {"status": "ignored", "reason": "not_found"}

        reservation = get_reservation(cur, payment.reservation_id)
        if reservation is None:
            return {"status": "ignored", "reason": "not_found"}

        if (
            reservation.status == ReservationStatus.CONFIRMED
            and payment.status == PaymentStatus.SUCCEEDED
        ):
            return {"status": "ignored", "reason": "already_paid"}

        if not expire_hold(cur, reservation_id=reservation.id):
            return {"status": "ignored", "reason": "reservation_not_hold"}

        cancel_open_payments(cur, [reservation.id])

    logger.info(
        "hold expired by checkout expiry",
        extra={
            "extra_fields": _log_ctx(
                reservation_id_prefix=id_prefix(reservation.id),
                checkout_session_id=snapshot.id,
            )
        },
    )
    return {"status": "expired", "reservation_id": reservation.id}


def handle_checkout_event(
    event_type: str,
    snapshot: CheckoutSnapshot | None,
    *,
    settings: BookingSettings | None = None,
) -> dict:
    """Route a verified Stripe event to the matching reconciliation step."""
    if snapshot is None:
        return {"status": "ignored", "reason": "not_checkout_session"}
    if event_type == CHECKOUT_COMPLETED:
        return confirm_paid_checkout(snapshot, settings=settings)
    if event_type == CHECKOUT_EXPIRED:
        return expire_checkout(snapshot)
    return {"status": "ignored", "reason": event_type}


def build_line_items(session: Session, party: Party) -> list[dict]:
    """One line per adult price and per minor price."""
    items = [
        {
            "name": "DeltaRoutes · Adult",
            "unit_amount": session.adult_price_cents,
            "quantity": party.adults_count,
        }
    ]
    if party.minors_count > 0:
        items.append(
            {
                "name": "DeltaRoutes · Minor",
                "unit_amount": session.minor_price_cents,
                "quantity": party.minors_count,
            }
        )
    return items


def _checkout_expires_at(hold_expires_at: datetime | None, now: datetime) -> int | None:
    if hold_expires_at is None or hold_expires_at - now < MIN_CHECKOUT_LIFETIME:
        return None
    return int(hold_expires_at.timestamp())


def start_checkout(
    reservation_id: str,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
    stripe_client: StripeClient | None = None,
) -> dict:
    """Create (or reuse) the Stripe checkout for a live hold.

    Returns:
        {"checkout_url": str, "reused": bool}

    Raises:
        ReservationNotFoundError: Unknown reservation.
        PaymentRecordMissingError: HOLD without its payment row.
        NotPayableError: Not a live hold, or the session needs no payment.
        AlreadyPaidError: Payment already SUCCEEDED.
        PaymentProviderError: Stripe failed to create the session.
    """
    now = now or utc_now()
    settings = settings or load_settings()
    correlation_id = get_correlation_id()

    with txn() as cur:
        reservation = get_reservation(cur, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError("Reservation not found")

        payment = get_payment_for_reservation(cur, reservation_id)
        if payment is None:
            raise PaymentRecordMissingError("Payment record missing")

        if not reservation.is_live_hold(now):
            raise NotPayableError("Reservation must be an active HOLD to pay")
        if payment.status == PaymentStatus.SUCCEEDED:
            raise AlreadyPaidError("Already paid")
        if payment.status == PaymentStatus.NOT_REQUIRED:
            raise NotPayableError("No payment required for this session")

        session = get_session(cur, reservation.session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")

        party = Party(reservation.adults_count, reservation.minors_count)
        expected_amount = session.price_for(party.adults_count, party.minors_count)
        if payment.amount_cents != expected_amount or payment.currency != session.currency:
            update_amount(
                cur,
                payment_id=payment.id,
                amount_cents=expected_amount,
                currency=session.currency,
            )
            payment = replace(payment, amount_cents=expected_amount, currency=session.currency)

        customer = get_customer(cur, reservation.customer_id)

    client = stripe_client or StripeClient()

    if payment.stripe_checkout_session_id:
        try:
            existing = client.retrieve_checkout_session(
                payment.stripe_checkout_session_id,
                correlation_id=correlation_id,
            )
            if existing.url:
                return {"checkout_url": existing.url, "reused": True}
        except StripeClientError:
            logger.warning(
                "could not reuse checkout session, creating a new one",
                extra={
                    "extra_fields": _log_ctx(
                        reservation_id_prefix=id_prefix(reservation_id),
                    )
                },
            )

    try:
        created = client.create_checkout_session(
            line_items=build_line_items(session, party),
            currency=payment.currency,
            idempotency_key=f"checkout_{payment.id}",
            success_url=f"{settings.app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.app_url}/checkout/cancel?session_id={{CHECKOUT_SESSION_ID}}",
            customer_email=customer.email if customer else None,
            expires_at=_checkout_expires_at(reservation.hold_expires_at, now),
            metadata={"reservation_id": reservation.id, "payment_id": payment.id},
            correlation_id=correlation_id,
        )
    except StripeClientError as e:
        logger.error(
            "checkout session creation failed",
            extra={
                "extra_fields": _log_ctx(
                    reservation_id_prefix=id_prefix(reservation_id),
                    error_type=str(e),
                )
            },
        )
        raise PaymentProviderError("Payment provider error") from e

    with txn() as cur:
        mark_checkout_started(
            cur,
            payment_id=payment.id,
            checkout_session_id=created["session_id"],
        )

    return {"checkout_url": created["url"], "reused": False}


def poll_payment_status(
    checkout_session_id: str,
    *,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
    stripe_client: StripeClient | None = None,
) -> dict:
    """Current reservation/payment state, self-healing a missed webhook.

    Raises:
        PaymentNotFoundError: No payment references this checkout session.
        PaymentIntegrityError: Stripe reports paid with a different amount.
    """
    with txn() as cur:
        payment = get_payment_by_checkout_session(cur, checkout_session_id)
        if payment is None:
            raise PaymentNotFoundError("Payment not found yet")
        reservation = get_reservation(cur, payment.reservation_id)
        if reservation is None:
            raise ReservationNotFoundError("Reservation not found")

    result = {
        "reservation_id": reservation.id,
        "reservation_status": reservation.status.value,
        "payment_status": payment.status.value,
        "reconciled": False,
    }

    if not (
        reservation.status == ReservationStatus.HOLD
        and payment.status in OPEN_PAYMENT_STATUSES
    ):
        return result

    try:
        client = stripe_client or StripeClient()
        snapshot = client.retrieve_checkout_session(
            checkout_session_id,
            correlation_id=get_correlation_id(),
        )
    except (StripeClientError, RuntimeError) as e:
        logger.warning(
            "payment status reconcile skipped, provider unavailable",
            extra={
                "extra_fields": _log_ctx(
                    reservation_id_prefix=id_prefix(reservation.id),
                    error_type=type(e).__name__,
                )
            },
        )
        return {**result, "reconcile_error": "provider_unavailable"}

    if not snapshot.is_paid:
        return {**result, "stripe_payment_status": snapshot.payment_status}

    outcome = confirm_paid_checkout(snapshot, now=now, settings=settings)
    if outcome["status"] not in ("confirmed", "already_confirmed"):
        return result

    return {
        **result,
        "reservation_status": ReservationStatus.CONFIRMED.value,
        "payment_status": PaymentStatus.SUCCEEDED.value,
        "reconciled": outcome["status"] == "confirmed",
    }

