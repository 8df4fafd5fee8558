"""
sheetshare/models/upload.py
Read-only projections of upload documents owned by the upload subsystem.
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from sheetshare.models.base import ApiModel


class UploadSummary(ApiModel):
    """Metadata shown on the invitation landing page"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    file_name: str
    original_name: Optional[str] = None
    total_rows: int = 0
    total_columns: int = 0
    sheet_name: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "UploadSummary":
        return cls.model_validate({k: doc.get(k) for k in cls.model_fields if doc.get(k) is not None})


class UploadData(UploadSummary):
    """Full payload served to shareable-link holders"""

    headers: List[str] = Field(default_factory=list)
    data: List[Any] = Field(default_factory=list)
    upload_date: Optional[datetime] = None
