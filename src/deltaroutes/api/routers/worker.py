"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/admin/health")
def admin_health() -> dict:
    """Admin subsystem health check."""
    return {"status": "ok", "subsystem": "admin"}
