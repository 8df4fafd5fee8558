# sheetshare/conftest.py
import os
from datetime import datetime, timezone

import pytest

from sheetshare.core.config import Settings
from sheetshare.core.database import UNIQUE_FIELDS, UPLOADS, build_engine, create_all_tables, drop_all_tables
from sheetshare.core.sql_store import SqlDocumentStore
from sheetshare.core.store import InMemoryDocumentStore


@pytest.fixture(scope="session")
def db_url():
    """
    Database URL for SQL-backed tests.

    TEST_DATABASE_URL wins when set; otherwise a private in-memory SQLite.
    """
    return os.getenv("TEST_DATABASE_URL") or "sqlite://"


@pytest.fixture
def now():
    """Fixed clock for deterministic expiry checks."""
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    memory = InMemoryDocumentStore(unique_fields=UNIQUE_FIELDS)
    yield memory
    memory.clear()


@pytest.fixture
def sql_store(db_url):
    engine = build_engine(db_url)
    create_all_tables(engine)
    yield SqlDocumentStore(engine)
    drop_all_tables(engine)
    engine.dispose()


@pytest.fixture
def make_upload():
    """Insert an upload document the way the upload subsystem would."""

    def _make(target, file_name: str = "sales-q1.xlsx", **overrides) -> str:
        doc = {
            "file_name": file_name,
            "original_name": file_name,
            "sheet_name": "Sheet1",
            "headers": ["region", "revenue"],
            "data": [{"region": "north", "revenue": 120}, {"region": "south", "revenue": 95}],
            "total_rows": 2,
            "total_columns": 2,
            "upload_date": datetime(2025, 2, 20, 9, 30, tzinfo=timezone.utc),
        }
        doc.update(overrides)
        return target.insert_one(UPLOADS, doc)

    return _make


@pytest.fixture
def upload_id(store, make_upload):
    return make_upload(store)


@pytest.fixture
def quiet_settings():
    """Settings with outbound integrations unconfigured."""
    return Settings(SENDGRID_API_KEY=None, DATABASE_URL=None, _env_file=None)
