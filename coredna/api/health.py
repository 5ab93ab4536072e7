"""
Health endpoints.

/healthz — liveness, no dependencies
/readyz  — store reachable
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from coredna.core.database import check_connection
from coredna.core.store import SqlStore, get_store

logger = logging.getLogger("coredna")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    store = get_store()
    if isinstance(store, SqlStore) and not check_connection(store.engine):
        logger.warning("[readyz] store unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "store unreachable"})
    return {"status": "ok", "store": type(store).__name__}
