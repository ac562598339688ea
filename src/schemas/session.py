"""Session Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionResponse(BaseModel):
    """Anonymous shopper session. The token itself travels in the cookie or header."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID = Field(description="Session unique identifier")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    expires_at: datetime | None = Field(default=None, description="Expiration timestamp")
