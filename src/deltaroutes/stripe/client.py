"""Thin wrapper around Stripe SDK.

Purpose:
- Encapsulate Stripe API calls so domain code doesn't import stripe.* directly.
- Accept idempotency_key for safe retries.
- Never log full Stripe payloads (only IDs + correlation metadata).
"""

from __future__ import annotations

import os
from typing import Any

import stripe

from deltaroutes.domain.models import CheckoutSnapshot
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context

logger = get_logger(__name__)


class StripeClientError(Exception):
    """Stripe could not be reached or rejected the call."""


def _payment_intent_id(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _metadata_value(metadata: Any, key: str) -> str | None:
    if not metadata:
        return None
    value = metadata.get(key)
    return value if isinstance(value, str) and value.strip() else None


def snapshot_from_payload(obj: Any) -> CheckoutSnapshot:
    """Build a CheckoutSnapshot from a checkout.session object (dict-like)."""
    return CheckoutSnapshot(
        id=obj.get("id"),
        payment_status=obj.get("payment_status"),
        amount_total=obj.get("amount_total"),
        currency=obj.get("currency"),
        payment_intent_id=_payment_intent_id(obj.get("payment_intent")),
        reservation_id=_metadata_value(obj.get("metadata"), "reservation_id"),
        url=obj.get("url"),
    )


class StripeClient:
    """Wrapper for Stripe Checkout operations.

    Usage:
        client = StripeClient()  # reads STRIPE_SECRET_KEY from env
        session = client.create_checkout_session(
            line_items=[{"name": "Adult", "unit_amount": 2500, "quantity": 2}],
            currency="eur",
            idempotency_key="checkout_<payment_id>",
            success_url="https://example.com/ok",
            cancel_url="https://example.com/ko",
        )
        print(session["session_id"], session["url"])
    """

    def __init__(self, api_key: str | None = None) -> None:
        """Initialize the Stripe client.

        Args:
            api_key: Stripe secret key. Defaults to STRIPE_SECRET_KEY env var.

        Raises:
            RuntimeError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not self._api_key:
            raise RuntimeError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )

    def _client(self) -> stripe.StripeClient:
        return stripe.StripeClient(self._api_key)

    def create_checkout_session(
        self,
        *,
        line_items: list[dict[str, Any]],
        currency: str,
        idempotency_key: str,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        expires_at: int | None = None,
        metadata: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout Session.

        Args:
            line_items: Dicts with name, unit_amount (cents) and quantity.
            currency: Currency code (e.g., 'eur').
            idempotency_key: Idempotency key for safe retries.
            success_url: Redirect URL on success.
            cancel_url: Redirect URL on cancel.
            customer_email: Prefills the checkout form.
            expires_at: Unix timestamp at which Stripe expires the session.
            metadata: Optional metadata to attach to session.
            correlation_id: Optional correlation ID for logging.

        Returns:
            Dict with session_id, url, and status.

        Raises:
            StripeClientError: On any Stripe API failure.
        """
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": item["unit_amount"],
                        "product_data": {"name": item["name"]},
                    },
                    "quantity": item["quantity"],
                }
                for item in line_items
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        if customer_email:
            params["customer_email"] = customer_email
        if expires_at:
            params["expires_at"] = expires_at
        if metadata:
            params["metadata"] = metadata

        try:
            session = self._client().v1.checkout.sessions.create(
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise StripeClientError(type(e).__name__) from e

        # Log only IDs, never full payload
        logger.info(
            "stripe checkout session created",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    checkout_session_id=session.id,
                )
            },
        )

        return {
            "session_id": session.id,
            "url": session.url,
            "status": session.status,
        }

    def retrieve_checkout_session(
        self,
        session_id: str,
        *,
        correlation_id: str | None = None,
    ) -> CheckoutSnapshot:
        """Retrieve an existing Checkout Session.

        Raises:
            StripeClientError: On any Stripe API failure.
        """
        try:
            session = self._client().v1.checkout.sessions.retrieve(session_id)
        except stripe.StripeError as e:
            raise StripeClientError(type(e).__name__) from e

        logger.info(
            "stripe checkout session retrieved",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    checkout_session_id=session.id,
                    payment_status=session.payment_status,
                )
            },
        )

        metadata = session.metadata
        return CheckoutSnapshot(
            id=session.id,
            payment_status=session.payment_status,
            amount_total=session.amount_total,
            currency=session.currency,
            payment_intent_id=_payment_intent_id(session.payment_intent),
            reservation_id=_metadata_value(metadata, "reservation_id"),
            url=session.url,
        )

    def expire_checkout_session(
        self,
        session_id: str,
        *,
        correlation_id: str | None = None,
    ) -> None:
        """Expire an open Checkout Session so it can no longer be paid.

        Raises:
            StripeClientError: On any Stripe API failure.
        """
        try:
            self._client().v1.checkout.sessions.expire(session_id)
        except stripe.StripeError as e:
            raise StripeClientError(type(e).__name__) from e

        logger.info(
            "stripe checkout session expired",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    checkout_session_id=session_id,
                )
            },
        )
