"""Exception handlers: business-rule failures and request validation."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from deltaroutes.domain.errors import BookingError
from deltaroutes.observability.correlation import get_correlation_id
from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context

logger = get_logger(__name__)


def error_body(exc: BookingError) -> dict:
    return {"ok": False, "code": exc.code, "error": exc.message}


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        "booking error",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                path=request.url.path,
                code=exc.code,
                status=exc.http_status,
            )
        },
    )
    return JSONResponse(status_code=exc.http_status, content=error_body(exc))


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Field locations only, never the submitted values.
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    logger.info(
        "request validation failed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                path=request.url.path,
                fields=",".join(fields),
            )
        },
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "ok": False,
            "code": "VALIDATION_ERROR",
            "error": "Invalid request",
            "fields": fields,
        },
    )


EXCEPTION_HANDLERS = {
    BookingError: booking_error_handler,
    RequestValidationError: validation_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
