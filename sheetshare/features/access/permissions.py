"""
sheetshare/features/access/permissions.py
Role -> effective permissions for collaborators and link holders.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from sheetshare.core.errors import InvalidArgumentError


class Role(str, Enum):
    """Closed set of access roles"""

    VIEWER = "viewer"
    EDITOR = "editor"


class Permissions(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    can_view: bool
    can_edit: bool
    can_share: bool
    can_delete: bool


def parse_role(value) -> Role:
    """Validate a raw role value; anything outside the closed set is rejected."""
    try:
        return Role(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid role: {value!r} (expected 'viewer' or 'editor')") from None


def permissions_for(role: Role) -> Permissions:
    # Delete rights never come from a collaboration role
    is_editor = role == Role.EDITOR
    return Permissions(can_view=True, can_edit=is_editor, can_share=is_editor, can_delete=False)
