"""
Realtime Mirror Models - Entries written to the realtime database.

The mirror is read directly by browsers, so field names follow the
frontend's camelCase shape.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MirrorModel(BaseModel):
    """Base for mirror payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, object]:
        """JSON body for the mirror REST API, unset fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MirrorEntry(MirrorModel):
    """Full entry pushed when a key is created."""

    record_id: str = Field(..., serialization_alias="_id")
    api_key: str
    tool_name: str
    category: str
    details: str
    expiry_date: datetime
    is_active: bool
    copy_count: int
    created_at: datetime


class MirrorPatch(MirrorModel):
    """Changed subset sent when a key is updated."""

    api_key: str | None = None
    tool_name: str | None = None
    category: str | None = None
    details: str | None = None
    is_active: bool | None = None
    expiry_date: datetime | None = None
    updated_at: datetime


class MirrorPushResult(BaseModel):
    """Realtime database response to a push: the generated child key."""

    name: str
