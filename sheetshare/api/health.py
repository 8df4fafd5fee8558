"""
Health endpoints for the sheetshare backend.

Lightweight probes for operational monitoring; no secrets are exposed.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from sheetshare.api.deps import get_store
from sheetshare.core.database import check_connection, COLLABORATIONS, SHAREABLE_LINKS, UPLOADS, WEBHOOKS
from sheetshare.core.sql_store import SqlDocumentStore
from sheetshare.core.store import DocumentStore

logger = logging.getLogger("sheetshare")

root_router = APIRouter(tags=["health"])

REQUIRED_TABLES = [UPLOADS, COLLABORATIONS, SHAREABLE_LINKS, WEBHOOKS]


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(store: DocumentStore = Depends(get_store)):
    """Readiness check: DB connectivity + required tables when SQL-backed."""
    if not isinstance(store, SqlDocumentStore):
        return {"status": "ok", "store": "memory"}

    if not check_connection(store.engine):
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    try:
        inspector = inspect(store.engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
        if missing:
            detail = f"missing tables: {', '.join(missing)}"
            logger.warning(f"[readyz] {detail}")
            return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

        return {"status": "ok", "store": "sql"}
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
