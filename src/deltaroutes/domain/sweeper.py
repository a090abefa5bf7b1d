"""Hold expiry sweeper.

Expires every HOLD whose deadline has passed and cancels its open payment,
all in one transaction. Expiring the matching Stripe checkout sessions
happens afterwards and is best-effort.
"""

from datetime import datetime

from deltaroutes.domain.lifecycle import expire_due_holds
from deltaroutes.infra.db import txn
from deltaroutes.infra.repositories.payments_repository import cancel_open_payments
from deltaroutes.infra.time import utc_now
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context
from deltaroutes.stripe.client import StripeClient, StripeClientError

logger = get_logger(__name__)


def sweep_expired_holds(
    *,
    now: datetime | None = None,
    stripe_client: StripeClient | None = None,
) -> dict:
    """Expire overdue holds. Safe to run repeatedly.

    Returns:
        {"expired_count": int, "reservation_ids": list[str], "now": datetime}
    """
    now = now or utc_now()
    correlation_id = get_correlation_id()

    with txn() as cur:
        reservation_ids = expire_due_holds(cur, now=now)
        checkout_session_ids = cancel_open_payments(cur, reservation_ids)

    logger.info(
        "expired holds swept",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                expired_count=len(reservation_ids),
                checkout_sessions=len(checkout_session_ids),
            )
        },
    )

    if checkout_session_ids:
        _expire_checkout_sessions(checkout_session_ids, stripe_client, correlation_id)

    return {
        "expired_count": len(reservation_ids),
        "reservation_ids": reservation_ids,
        "now": now,
    }


def _expire_checkout_sessions(
    checkout_session_ids: list[str],
    stripe_client: StripeClient | None,
    correlation_id: str,
) -> None:
    try:
        client = stripe_client or StripeClient()
    except RuntimeError:
        logger.warning(
            "stripe not configured, checkout sessions left to expire on their own",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return

    for checkout_session_id in checkout_session_ids:
        try:
            client.expire_checkout_session(
                checkout_session_id,
                correlation_id=correlation_id,
            )
        except StripeClientError as e:
            logger.warning(
                "checkout session expiry failed",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        checkout_session_id=checkout_session_id,
                        error_type=str(e),
                    )
                },
            )
