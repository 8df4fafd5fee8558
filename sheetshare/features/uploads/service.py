"""
sheetshare/features/uploads/service.py
Lookups against the upload subsystem's documents.
"""

from typing import Any, Dict

from sheetshare.core.database import UPLOADS
from sheetshare.core.errors import DanglingReferenceError
from sheetshare.core.store import DocumentStore


def require_upload(store: DocumentStore, upload_id: str, message: str = "Associated file not found") -> Dict[str, Any]:
    """Fetch an upload or raise DanglingReferenceError (surfaced as not_found)."""
    upload = store.find_one(UPLOADS, {"id": upload_id})
    if upload is None:
        raise DanglingReferenceError(message)
    return upload
