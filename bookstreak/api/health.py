"""Liveness and readiness probes."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from bookstreak.core.database import missing_tables

logger = logging.getLogger("bookstreak")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Process is up. Touches nothing else."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Database reachable and every streak table created."""
    try:
        missing = missing_tables()
    except Exception as e:
        logger.error(f"[readyz] database probe failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})
    return {"status": "ok"}
