"""Authentication for operator and scheduler routes.

Accepted credentials, checked in order:
- ``X-Admin-Secret`` header equal to ADMIN_SECRET (constant-time compare).
- ``Authorization: Bearer <OIDC token>`` issued by Google for
  ADMIN_OIDC_AUDIENCE (Cloud Scheduler).
Both unset means every request is rejected.
"""

from __future__ import annotations

import hmac
import os

from fastapi import HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context

logger = get_logger(__name__)

ADMIN_SECRET_HEADER = "X-Admin-Secret"


def extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def verify_admin_secret(request: Request) -> bool:
    expected = os.environ.get("ADMIN_SECRET", "")
    provided = request.headers.get(ADMIN_SECRET_HEADER, "")
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def verify_admin_oidc(token: str) -> bool:
    """Verify a Google-signed OIDC token for the admin audience.

    Fail-closed: returns False if ADMIN_OIDC_AUDIENCE is not set.
    """
    if not token:
        return False

    audience = os.environ.get("ADMIN_OIDC_AUDIENCE")
    if not audience:
        logger.error(
            "ADMIN_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        req = google_requests.Request()
        claims = id_token.verify_oauth2_token(token, req, audience=audience)
    except ValueError as e:
        logger.warning(
            "OIDC token verification failed",
            extra={
                "extra_fields": safe_log_context(
                    error=str(e),
                    expected_audience=audience,
                )
            },
        )
        return False

    expected_email = os.environ.get("ADMIN_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(reason="service_account_mismatch")},
        )
        return False

    return True


def verify_admin_auth(request: Request) -> bool:
    if verify_admin_secret(request):
        return True

    token = extract_bearer_token(request)
    if not token:
        return False
    return verify_admin_oidc(token)


def require_admin(request: Request) -> None:
    """FastAPI dependency guarding the admin routes.

    Raises:
        HTTPException: 401 if no valid credential was presented.
    """
    if not verify_admin_auth(request):
        logger.warning(
            "admin auth failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    path=request.url.path,
                )
            },
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
