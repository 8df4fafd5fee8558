import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env before settings are read
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(package_dir), ".env"))

from sheetshare.core.config import settings, validate_config
from sheetshare.core.database import (
    UNIQUE_FIELDS,
    build_engine,
    create_all_tables,
    get_database_url,
)
from sheetshare.core.errors import (
    AppError,
    StoreError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    store_error_handler,
    unhandled_exception_handler,
)
from sheetshare.core.logging import configure_logging
from sheetshare.core.middleware.request_id import RequestIdMiddleware
from sheetshare.core.sql_store import SqlDocumentStore
from sheetshare.core.store import DocumentStore, InMemoryDocumentStore
from sheetshare.core.validation import validate_env
from sheetshare.features.collaboration.mailer import InvitationMailer
from sheetshare.api import collaboration_invites, health, share_links, webhooks


def build_store(database_url: Optional[str] = None) -> DocumentStore:
    """SQL-backed store when a database is configured, in-memory otherwise."""
    url = database_url or get_database_url()
    if not url:
        logging.getLogger("sheetshare").warning("DATABASE_URL not set, using in-memory document store")
        return InMemoryDocumentStore(unique_fields=UNIQUE_FIELDS)
    engine = build_engine(url)
    create_all_tables(engine)
    return SqlDocumentStore(engine)


def create_app(store: Optional[DocumentStore] = None, mailer: Optional[InvitationMailer] = None) -> FastAPI:
    configure_logging(settings.ENV)
    validate_env()
    validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("sheetshare")
        logger.info("Starting sheetshare backend...")
        import time
        app.state.startup_time = time.time()
        try:
            yield
        finally:
            logging.getLogger("sheetshare").info("Stopping sheetshare backend...")

    app = FastAPI(title="SheetShare - Access & Delivery", lifespan=lifespan)
    app.state.store = store if store is not None else build_store()
    app.state.mailer = mailer or InvitationMailer()

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # CORS (adjust origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.APP_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(collaboration_invites.router, tags=["collaboration-invites"])
    app.include_router(share_links.router, tags=["share-links"])
    app.include_router(webhooks.router, tags=["admin-webhooks"])
    app.include_router(health.root_router, tags=["health"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sheetshare.main:app", host="0.0.0.0", port=8000, reload=settings.ENV == "development")
