"""Operator / scheduler routes (APP_ROLE=worker)."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from deltaroutes.api.admin_auth import require_admin
from deltaroutes.api.routes.waitlist import refusal_response
from deltaroutes.domain.errors import BookingError
from deltaroutes.domain.sweeper import sweep_expired_holds
from deltaroutes.domain.waitlist import notify_waitlist, resubscribe_waiting


class NotifyRequest(BaseModel):
    session_id: UUID | None = None


class ResubscribeRequest(BaseModel):
    waiting_id: UUID


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.post("/cleanup-holds")
def cleanup_holds() -> dict:
    """Expire every overdue HOLD and cancel its open payment."""
    result = sweep_expired_holds()
    return {
        "ok": True,
        "expired_count": result["expired_count"],
        "reservation_ids": result["reservation_ids"],
        "now": result["now"].isoformat(),
    }


@router.post("/waitlist/notify")
def waitlist_notify(body: NotifyRequest | None = None) -> dict:
    """Email waiting parties that now fit, oldest first."""
    session_id = str(body.session_id) if body and body.session_id else None
    return {"ok": True, **notify_waitlist(session_id=session_id)}


@router.post("/waitlist/resubscribe")
def waitlist_resubscribe(body: ResubscribeRequest):
    waiting_id = str(body.waiting_id)
    try:
        resubscribe_waiting(waiting_id)
    except BookingError as e:
        return refusal_response(e, waiting_id)
    return {"ok": True}
