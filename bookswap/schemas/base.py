"""Base Pydantic schemas shared by the user and trade schemas."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Required at runtime for Pydantic
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration for all schemas.

    Whitespace is deliberately not stripped globally: passwords must reach
    the credential store exactly as typed.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


class BaseResponse(BaseSchema):
    """Fields every stored account exposes."""

    id: UUID = Field(..., description="Account id, assigned at creation")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    updated_at: datetime = Field(..., description="Last profile or credential write (UTC)")


__all__ = ["BaseResponse", "BaseSchema"]
