"""
sheetshare/models/base.py
Shared pydantic base: snake_case in Python, camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request/response model rendered with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self, **kwargs) -> dict:
        return self.model_dump(mode="json", by_alias=True, **kwargs)
