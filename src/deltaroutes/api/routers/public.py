"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from deltaroutes.observability.logging import SERVICE_NAME

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "service": SERVICE_NAME}
