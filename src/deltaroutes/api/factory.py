"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response

from deltaroutes.observability.correlation import (
    CORRELATION_ID_HEADER,
    accept_or_generate,
    reset_correlation_id,
    set_correlation_id,
)

from .errors import register_exception_handlers
from .routers import public, worker
from .routes import admin, payments, reservations, sessions, waitlist, webhooks_stripe

AppRole = Literal["public", "worker"]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(
        title="DeltaRoutes Booking",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = accept_or_generate(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    register_exception_handlers(app)

    # Customer-facing and webhook routes (always)
    app.include_router(public.router)
    app.include_router(sessions.router)
    app.include_router(reservations.router)
    app.include_router(waitlist.router)
    app.include_router(payments.router)
    app.include_router(webhooks_stripe.router)

    # Operator / scheduler routes only for worker role
    if role == "worker":
        app.include_router(worker.router)
        app.include_router(admin.router)

    return app
