"""Customer email bodies for each reservation event."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from deltaroutes.infra.time import ensure_aware
from deltaroutes.notifications.email import EmailMessage

BRAND = "DeltaRoutes"
LOCAL_TZ = ZoneInfo("Europe/Madrid")


def reservation_code(reservation_id: str) -> str:
    return f"DR-{reservation_id[:8].upper()}"


def format_local(value: datetime | None) -> str:
    if value is None:
        return "-"
    return ensure_aware(value).astimezone(LOCAL_TZ).strftime("%d/%m/%Y %H:%M")


def format_amount(amount_cents: int | None, currency: str | None) -> str:
    if amount_cents is None or not currency:
        return "-"
    return f"{amount_cents / 100:.2f} {currency.upper()}"


def _activity_label(ctx: dict) -> str:
    return ctx.get("experience_title") or f"Session {ctx['session_id'][:8].upper()}"


def _greeting(ctx: dict) -> str:
    return f"Hello {ctx.get('customer_name') or 'there'},"


def _party_line(ctx: dict) -> str:
    return (
        f"Party: {ctx['adults_count']} adult(s), {ctx['minors_count']} minor(s) "
        f"({ctx['total_pax']} in total)"
    )


def hold_created(ctx: dict, *, app_url: str, hold_minutes: int) -> EmailMessage:
    code = reservation_code(ctx["reservation_id"])
    pay_url = f"{app_url}/checkout/start?reservationId={ctx['reservation_id']}"
    lines = [
        _greeting(ctx),
        "",
        f"Your seats for {_activity_label(ctx)} on {format_local(ctx['start_at'])} are held.",
        _party_line(ctx),
        f"Tour language: {ctx.get('tour_language') or '-'}",
        "",
        f"Complete the payment within {hold_minutes} minutes to confirm:",
        pay_url,
        "",
        f"Reference: {code}",
    ]
    return EmailMessage(
        to=ctx["customer_email"],
        subject=f"{BRAND} · Booking started ({code})",
        text="\n".join(lines),
    )


def waiting_created(ctx: dict) -> EmailMessage:
    code = reservation_code(ctx["reservation_id"])
    lines = [
        _greeting(ctx),
        "",
        f"{_activity_label(ctx)} on {format_local(ctx['start_at'])} is full right now.",
        "You are on the waiting list and we will write as soon as seats free up.",
        _party_line(ctx),
        "",
        f"Reference: {code}",
    ]
    return EmailMessage(
        to=ctx["customer_email"],
        subject=f"{BRAND} · Waiting list ({code})",
        text="\n".join(lines),
    )


def payment_confirmed(ctx: dict) -> EmailMessage:
    code = reservation_code(ctx["reservation_id"])
    lines = [
        _greeting(ctx),
        "",
        f"Your booking for {_activity_label(ctx)} on {format_local(ctx['start_at'])} is confirmed.",
        _party_line(ctx),
        f"Amount paid: {format_amount(ctx.get('amount_cents'), ctx.get('currency'))}",
        "",
        f"Reference: {code}",
    ]
    return EmailMessage(
        to=ctx["customer_email"],
        subject=f"{BRAND} · Booking confirmed ({code})",
        text="\n".join(lines),
    )


def seats_available(ctx: dict, *, app_url: str) -> EmailMessage:
    code = reservation_code(ctx["reservation_id"])
    claim_url = f"{app_url}/waitlist/claim?waitingId={ctx['reservation_id']}"
    lines = [
        _greeting(ctx),
        "",
        f"Seats have opened up for {_activity_label(ctx)} on {format_local(ctx['start_at'])}.",
        _party_line(ctx),
        "",
        "Seats go to whoever claims first:",
        claim_url,
        "",
        f"Reference: {code}",
    ]
    return EmailMessage(
        to=ctx["customer_email"],
        subject=f"{BRAND} · Seats available ({code})",
        text="\n".join(lines),
    )
