"""Outbound transactional email via the provider's HTTP API.

Security: NEVER log recipient addresses or message bodies. Only hashes and
lengths.
"""

import hashlib
import http.client
import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from deltaroutes.infra.settings import BookingSettings, load_settings
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context

logger = get_logger(__name__)

HTTP_TIMEOUT = 5

MAX_RETRIES = 1
RETRY_DELAY = 0.2


class EmailDeliveryError(Exception):
    """The email could not be handed to the provider."""


class EmailNotConfiguredError(EmailDeliveryError):
    """EMAIL_FROM / EMAIL_API_KEY are not set."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


def _hash_identifier(value: str) -> str:
    """Non-reversible hash for logging. First 12 chars of sha256."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as resp:
        body = resp.read().decode()
    return json.loads(body) if body else {}


def send_email(
    message: EmailMessage,
    *,
    settings: BookingSettings | None = None,
    correlation_id: str | None = None,
) -> None:
    """Send one email, retrying once on network or 5xx errors.

    Raises:
        EmailNotConfiguredError: If the sink is not configured.
        EmailDeliveryError: If the provider rejected or could not be reached.
    """
    settings = settings or load_settings()
    if not settings.email_enabled:
        raise EmailNotConfiguredError("EMAIL_FROM and EMAIL_API_KEY are required")

    payload = {
        "from": settings.email_from,
        "to": [message.to],
        "subject": message.subject,
        "text": message.text,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.email_api_key}",
    }
    data = json.dumps(payload).encode("utf-8")

    log_ctx = safe_log_context(
        correlationId=correlation_id or "",
        to_hash=_hash_identifier(message.to),
        subject_len=len(message.subject),
        text_len=len(message.text),
    )

    for attempt in range(MAX_RETRIES + 1):
        try:
            _do_request(settings.email_api_url, data, headers)
            logger.info(
                "email sent",
                extra={"extra_fields": {**log_ctx, "attempt": str(attempt)}},
            )
            return
        except (OSError, http.client.HTTPException, ValueError) as e:
            # OSError covers URLError and socket timeouts. ValueError is an
            # unreadable response body, which is not retried.
            is_5xx = isinstance(e, urllib.error.HTTPError) and 500 <= e.code < 600
            is_network = not isinstance(e, (urllib.error.HTTPError, ValueError))

            if attempt < MAX_RETRIES and (is_5xx or is_network):
                logger.warning(
                    "email send failed, retrying",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            "attempt": str(attempt),
                            "error_type": type(e).__name__,
                        }
                    },
                )
                time.sleep(RETRY_DELAY)
                continue

            logger.error(
                "email send failed",
                extra={
                    "extra_fields": {
                        **log_ctx,
                        "attempt": str(attempt),
                        "error_type": type(e).__name__,
                    }
                },
            )
            raise EmailDeliveryError(type(e).__name__) from e
