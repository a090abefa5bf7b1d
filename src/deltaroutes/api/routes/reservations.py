"""Reservation creation and hold detail updates."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Header
from pydantic import BaseModel, Field, field_validator

from deltaroutes.domain.models import Language, Party, detect_browser_language
from deltaroutes.domain.reservations import (
    ReservationRequest,
    create_reservation,
    update_hold_details,
)


def _require_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def _optional_text(v: str | None) -> str | None:
    if v is None:
        return None
    return v.strip() or None


class CreateReservationRequest(BaseModel):
    """Request body for POST /reservations."""

    session_id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    tour_language: Language
    adults_count: int = Field(..., ge=1)
    minors_count: int = Field(0, ge=0)

    @field_validator("customer_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("customer_phone")
    @classmethod
    def phone_blank_to_none(cls, v: str | None) -> str | None:
        return _optional_text(v)

    @field_validator("customer_email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("invalid email")
        return v


class HoldUpdateRequest(BaseModel):
    """Request body for POST /reservations/hold/update."""

    reservation_id: UUID
    customer_name: str
    customer_phone: str | None = None
    tour_language: Language

    @field_validator("customer_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("customer_phone")
    @classmethod
    def phone_blank_to_none(cls, v: str | None) -> str | None:
        return _optional_text(v)


router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("")
def post_reservation(
    body: CreateReservationRequest,
    accept_language: str | None = Header(None, alias="Accept-Language"),
) -> dict:
    """Create a reservation: HOLD when seats and a guide are free, else WAITING."""
    result = create_reservation(
        ReservationRequest(
            session_id=str(body.session_id),
            customer_email=body.customer_email,
            customer_name=body.customer_name,
            customer_phone=body.customer_phone,
            party=Party(body.adults_count, body.minors_count),
            tour_language=body.tour_language,
            browser_language=detect_browser_language(accept_language),
        )
    )
    response = {
        "ok": True,
        "kind": result.kind.value,
        "reservation_id": result.reservation_id,
    }
    if result.hold_expires_at is not None:
        response["hold_expires_at"] = result.hold_expires_at.isoformat()
    return response


@router.post("/hold/update")
def post_hold_update(body: HoldUpdateRequest) -> dict:
    """Update contact details and tour language of a live hold."""
    update_hold_details(
        reservation_id=str(body.reservation_id),
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        tour_language=body.tour_language,
    )
    return {"ok": True}
