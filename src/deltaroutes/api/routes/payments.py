"""Checkout start and payment status polling."""

from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel

from deltaroutes.domain.payments import poll_payment_status, start_checkout


class CheckoutRequest(BaseModel):
    reservation_id: UUID


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/checkout")
def post_checkout(body: CheckoutRequest) -> dict:
    """Return a Stripe Checkout URL for a live hold."""
    result = start_checkout(str(body.reservation_id))
    return {"ok": True, **result}


@router.get("/status")
def get_payment_status(session_id: str = Query(..., min_length=1)) -> dict:
    """Reservation and payment state for a checkout session.

    Confirms the reservation on the spot if Stripe already reports it paid
    and the webhook has not arrived yet.
    """
    return {"ok": True, "found": True, **poll_payment_status(session_id)}
