"""Core booking types: statuses, languages and row snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReservationStatus(str, Enum):
    HOLD = "HOLD"
    WAITING = "WAITING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    REQUIRES_PAYMENT = "REQUIRES_PAYMENT"
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


# Payments that still wait on the customer; these are cancelled with the hold.
OPEN_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.REQUIRES_PAYMENT}
)


class Language(str, Enum):
    CA = "CA"
    ES = "ES"
    EN = "EN"
    DE = "DE"
    FR = "FR"
    IT = "IT"


# Every guide speaks these by contract.
BASE_LANGUAGES = frozenset({Language.CA, Language.ES, Language.EN})


def is_base_language(language: Language) -> bool:
    return language in BASE_LANGUAGES


def parse_language(value: str | None) -> Language | None:
    """Map a language code (any case) into the closed set, or None."""
    if not value:
        return None
    try:
        return Language(value.strip().upper())
    except ValueError:
        return None


def detect_browser_language(accept_language: str | None) -> Language | None:
    """Primary subtag of the first Accept-Language entry, if supported.

    ``"de-DE,de;q=0.9,en;q=0.8"`` -> ``Language.DE``.
    """
    if not accept_language:
        return None
    first = accept_language.split(",")[0].strip()
    if not first:
        return None
    primary = first.split(";")[0].split("-")[0]
    return parse_language(primary)


@dataclass(frozen=True)
class Session:
    """Bookable time slot of an experience."""

    id: str
    experience_id: str
    start_at: datetime
    booking_closes_at: datetime
    max_seats_total: int
    max_per_guide: int
    adult_price_cents: int
    minor_price_cents: int
    currency: str
    requires_payment: bool
    is_cancelled: bool
    experience_title: str | None = None

    def is_booking_closed(self, now: datetime) -> bool:
        return now > self.booking_closes_at

    def price_for(self, adults_count: int, minors_count: int) -> int:
        """Server-side amount for a party, in cents."""
        return adults_count * self.adult_price_cents + minors_count * self.minor_price_cents


@dataclass(frozen=True)
class Reservation:
    """One customer party's claim on a session."""

    id: str
    session_id: str
    customer_id: str
    status: ReservationStatus
    hold_expires_at: datetime | None
    adults_count: int
    minors_count: int
    total_pax: int
    guide_id: str | None
    tour_language: Language | None
    browser_language: Language | None
    created_at: datetime | None = None
    created_email_sent_at: datetime | None = None
    confirmed_email_sent_at: datetime | None = None
    availability_email_sent_at: datetime | None = None

    def is_live_hold(self, now: datetime) -> bool:
        return (
            self.status == ReservationStatus.HOLD
            and self.hold_expires_at is not None
            and self.hold_expires_at > now
        )


@dataclass(frozen=True)
class Payment:
    """Payment record, one-to-one with a reservation."""

    id: str
    reservation_id: str
    status: PaymentStatus
    amount_cents: int
    currency: str
    stripe_checkout_session_id: str | None = None
    stripe_payment_intent_id: str | None = None


@dataclass(frozen=True)
class Customer:
    id: str
    email: str
    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class Party:
    """Adults plus minors behind one reservation."""

    adults_count: int
    minors_count: int

    def __post_init__(self) -> None:
        if self.adults_count < 1:
            raise ValueError("adults_count must be >= 1")
        if self.minors_count < 0:
            raise ValueError("minors_count must be >= 0")

    @property
    def total_pax(self) -> int:
        return self.adults_count + self.minors_count


@dataclass(frozen=True)
class Guide:
    """Active guide and the languages they can lead a tour in."""

    id: str
    languages: frozenset[Language]

    def speaks(self, language: Language) -> bool:
        return language in self.languages


@dataclass(frozen=True)
class CheckoutSnapshot:
    """What the payment provider reports about one checkout session.

    ``reservation_id`` comes from the metadata we attached at creation.
    """

    id: str
    payment_status: str | None
    amount_total: int | None
    currency: str | None
    payment_intent_id: str | None = None
    reservation_id: str | None = None
    url: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"
