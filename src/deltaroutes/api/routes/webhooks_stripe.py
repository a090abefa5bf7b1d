"""Stripe webhook routes - public endpoint for Stripe events.

Security rules:
- Validate Stripe-Signature on every request.
- Never log payload or signature header.
- Return 5xx only when Stripe should retry (integrity or unexpected errors).
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from deltaroutes.domain.errors import PaymentIntegrityError
from deltaroutes.domain.payments import handle_checkout_event
from deltaroutes.infra.db import txn
from deltaroutes.infra.repositories.processed_events_repository import (
    is_processed,
    record_processed,
)
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context
from deltaroutes.stripe.webhook import (
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)

EVENT_SOURCE = "stripe"


def _get_webhook_secret() -> str:
    """Get Stripe webhook secret from environment."""
    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET not configured")
    return secret


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
) -> JSONResponse:
    """Receive Stripe webhook events.

    Returns:
        200 OK if processed, ignored or duplicate.
        400 Bad Request if signature or payload invalid.
        500 Internal Server Error on integrity or unexpected errors.
    """
    correlation_id = get_correlation_id()
    payload_bytes = await request.body()

    try:
        webhook_secret = _get_webhook_secret()
    except RuntimeError:
        logger.error(
            "webhook secret not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "server configuration error"},
        )

    try:
        event = verify_and_extract(payload_bytes, stripe_signature, webhook_secret)
    except InvalidSignatureError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid signature"})
    except InvalidPayloadError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid payload"})

    log_ctx = safe_log_context(
        correlationId=correlation_id,
        event_id_prefix=id_prefix(event.event_id),
        event_type=event.event_type,
    )
    logger.info("stripe webhook received", extra={"extra_fields": log_ctx})

    try:
        with txn() as cur:
            if is_processed(cur, source=EVENT_SOURCE, external_id=event.event_id):
                logger.info(
                    "duplicate stripe event ignored",
                    extra={"extra_fields": log_ctx},
                )
                return JSONResponse(
                    status_code=200,
                    content={"ok": True, "status": "duplicate"},
                )

        result = handle_checkout_event(event.event_type, event.checkout)

        with txn() as cur:
            record_processed(cur, source=EVENT_SOURCE, external_id=event.event_id)

    except PaymentIntegrityError as e:
        logger.error(
            "stripe webhook integrity error",
            extra={"extra_fields": log_ctx},
        )
        return JSONResponse(
            status_code=500,
            content={"ok": False, "code": e.code, "error": e.message},
        )

    except Exception:
        logger.exception(
            "stripe webhook processing failed",
            extra={"extra_fields": log_ctx},
        )
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "processing failed"},
        )

    logger.info(
        "stripe webhook processed",
        extra={"extra_fields": {**log_ctx, "status": result.get("status", "")}},
    )
    return JSONResponse(status_code=200, content={"ok": True, **result})
