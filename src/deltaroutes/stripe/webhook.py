"""Stripe webhook signature validation and payload parsing.

Purpose:
- Validate webhook signature using Stripe-Signature header.
- Extract the checkout session data needed for reconciliation.
- Never log payload or signature.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import stripe

from deltaroutes.domain.models import CheckoutSnapshot
from deltaroutes.observability.logging import get_logger
from deltaroutes.stripe.client import snapshot_from_payload

logger = get_logger(__name__)

CHECKOUT_SESSION_OBJECT = "checkout.session"


class InvalidSignatureError(Exception):
    """Webhook signature validation failed."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass
class StripeWebhookEvent:
    """Minimal extracted data from a Stripe webhook event."""

    event_id: str
    event_type: str
    checkout: CheckoutSnapshot | None  # None unless data.object is a checkout session


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> StripeWebhookEvent:
    """Validate Stripe webhook signature and extract event data.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: Value of Stripe-Signature header.
        webhook_secret: Webhook endpoint secret from Stripe.

    Returns:
        StripeWebhookEvent with event_id, event_type and the checkout snapshot.

    Raises:
        InvalidSignatureError: If signature validation fails.
        InvalidPayloadError: If event structure is invalid.
    """
    try:
        event = stripe.Webhook.construct_event(
            payload_bytes,
            signature_header,
            webhook_secret,
        )
    except stripe.SignatureVerificationError as e:
        # Do NOT log signature or payload
        logger.warning("stripe webhook signature verification failed")
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("stripe webhook payload parsing failed")
        raise InvalidPayloadError("Invalid payload") from e

    event_id = event.get("id")
    event_type = event.get("type")

    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id or type")

    return StripeWebhookEvent(
        event_id=event_id,
        event_type=event_type,
        checkout=_extract_checkout(event),
    )


def _extract_checkout(event: Any) -> CheckoutSnapshot | None:
    data = event.get("data") or {}
    obj = data.get("object") or {}
    if obj.get("object") != CHECKOUT_SESSION_OBJECT or not obj.get("id"):
        return None
    return snapshot_from_payload(obj)
