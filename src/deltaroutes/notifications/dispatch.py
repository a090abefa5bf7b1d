"""One-shot customer notifications.

A notification is owned by whoever sets its marker on the reservation row
(conditional update). The email goes out after that transaction commits; if
delivery fails the marker is cleared so a later run can retry.
"""

from datetime import datetime
from typing import Callable

from deltaroutes.infra.db import txn
from deltaroutes.infra.repositories.reservations_repository import (
    claim_marker,
    clear_marker,
    get_notification_context,
)
from deltaroutes.infra.settings import BookingSettings, load_settings
from deltaroutes.infra.time import utc_now
from deltaroutes.notifications.email import EmailDeliveryError, EmailMessage, send_email
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import id_prefix, safe_log_context

logger = get_logger(__name__)

Renderer = Callable[[dict], EmailMessage]


def _rearm(reservation_id: str, marker: str) -> None:
    with txn() as cur:
        clear_marker(cur, reservation_id=reservation_id, marker=marker)


def deliver_once(
    *,
    reservation_id: str,
    marker: str,
    render: Renderer,
    created_kind: str | None = None,
    now: datetime | None = None,
    settings: BookingSettings | None = None,
) -> bool:
    """Send a notification at most once per reservation and marker.

    Args:
        reservation_id: Reservation the email is about.
        marker: Marker column guarding this notification.
        render: Builds the message from the reservation's notification context.
        created_kind: HOLD or WAITING, recorded with the created marker.
        now: Timestamp stored in the marker.
        settings: Email sink settings (read from env when omitted).

    Returns:
        True if this call claimed the marker and the email was accepted.
    """
    settings = settings or load_settings()
    correlation_id = get_correlation_id()
    log_ctx = safe_log_context(
        correlationId=correlation_id,
        reservation_id_prefix=id_prefix(reservation_id),
        marker=marker,
    )

    if not settings.email_enabled:
        logger.info(
            "email sink disabled, notification skipped",
            extra={"extra_fields": log_ctx},
        )
        return False

    with txn() as cur:
        claimed = claim_marker(
            cur,
            reservation_id=reservation_id,
            marker=marker,
            now=now or utc_now(),
            created_kind=created_kind,
        )
        ctx = get_notification_context(cur, reservation_id) if claimed else None

    if not claimed:
        logger.info("notification already sent", extra={"extra_fields": log_ctx})
        return False

    if ctx is None:
        logger.warning(
            "notification context missing, marker re-armed",
            extra={"extra_fields": log_ctx},
        )
        _rearm(reservation_id, marker)
        return False

    try:
        send_email(render(ctx), settings=settings, correlation_id=correlation_id)
    except EmailDeliveryError as e:
        logger.warning(
            "notification failed, marker re-armed",
            extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
        )
        _rearm(reservation_id, marker)
        return False
    except Exception as e:
        logger.error(
            "notification crashed, marker re-armed",
            extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
        )
        _rearm(reservation_id, marker)
        return False

    return True
