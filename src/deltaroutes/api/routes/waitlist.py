"""Waiting-list routes: join, detail, claim and resubscribe."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from deltaroutes.api.errors import error_body
from deltaroutes.domain.errors import BookingError
from deltaroutes.domain.models import Party
from deltaroutes.domain.reservations import get_waiting_detail, join_waitlist
from deltaroutes.domain.waitlist import claim_waiting, resubscribe_waiting
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context


class JoinWaitlistRequest(BaseModel):
    session_id: UUID
    customer_email: str
    adults_count: int = Field(..., ge=1)
    minors_count: int = Field(0, ge=0)

    @field_validator("customer_email")
    @classmethod
    def email_not_empty(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("customer_email is required")
        return v


class WaitingRequest(BaseModel):
    waiting_id: UUID


router = APIRouter(prefix="/reservations/waiting", tags=["waitlist"])

logger = get_logger(__name__)


def refusal_response(exc: BookingError, waiting_id: str) -> JSONResponse:
    """Claim-style refusal: 404 when unknown, 409 for every business rule."""
    status_code = 404 if exc.http_status == 404 else 409
    logger.info(
        "waitlist request refused",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                reservation_id_prefix=id_prefix(waiting_id),
                code=exc.code,
                status=status_code,
            )
        },
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


@router.post("")
def post_join_waitlist(body: JoinWaitlistRequest) -> dict:
    result = join_waitlist(
        session_id=str(body.session_id),
        customer_email=body.customer_email,
        party=Party(body.adults_count, body.minors_count),
    )
    return {
        "ok": True,
        "reservation_id": result.reservation_id,
        "status": result.status.value,
        "total_pax": result.total_pax,
        "created": result.created,
    }


@router.get("/{waiting_id}")
def get_waiting(waiting_id: UUID) -> dict:
    return {"ok": True, **get_waiting_detail(str(waiting_id))}


@router.post("/claim")
def post_claim(body: WaitingRequest):
    """Turn a WAITING reservation into a HOLD if seats are free right now."""
    waiting_id = str(body.waiting_id)
    try:
        result = claim_waiting(waiting_id)
    except BookingError as e:
        return refusal_response(e, waiting_id)

    return {
        "ok": True,
        "reservation_id": result.reservation_id,
        "hold_expires_at": result.hold_expires_at.isoformat(),
    }


@router.post("/resubscribe")
def post_resubscribe(body: WaitingRequest):
    """Ask to be notified again when seats open up."""
    waiting_id = str(body.waiting_id)
    try:
        resubscribe_waiting(waiting_id)
    except BookingError as e:
        return refusal_response(e, waiting_id)
    return {"ok": True}
