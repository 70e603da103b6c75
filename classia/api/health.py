"""
Health endpoints.

Lightweight endpoints for operational monitoring without exposing secrets.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from classia.core.database import check_connection


router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: database connectivity."""
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "unavailable", "db": False})
    return {"status": "ok", "db": True}
