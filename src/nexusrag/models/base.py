"""
Base models and common mixins shared by every nexusrag model.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from nexusrag.core.id_generator import generate_id
from nexusrag.core.utils.datetime_utils import utc_now, format_iso


class NexusBaseModel(BaseModel):
    """
    Base model for nexusrag.

    Validates on assignment, stores enum values, and rejects unknown fields.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=True,
        extra="forbid",
        json_schema_extra={"additionalProperties": False},
    )


class TimestampMixin(BaseModel):
    """Adds created_at / updated_at (UTC) to a model."""

    created_at: datetime = Field(default_factory=utc_now, description="UTC creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="UTC last update timestamp")

    def touch(self) -> None:
        """Updates the modification timestamp."""
        self.updated_at = utc_now()

    @field_serializer("created_at", "updated_at", when_used="json")
    def _serialize_timestamps(self, value: Optional[datetime]) -> Optional[str]:
        return format_iso(value) if value is not None else None


class StandardIdMixin(BaseModel):
    """Strategy with a hex32 'id' primary key."""

    id: str = Field(
        default_factory=generate_id, description="Unique hex32 identifier (SQLite compatible)"
    )

    @property
    def primary_key(self) -> str:
        return self.id
