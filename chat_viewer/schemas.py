"""
Pydantic schemas for row projections and form validation.

This module contains:
- View models that result rows are projected into before rendering
- The form model for POST /send
- Health check response model
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Row Projections
# =============================================================================

class MessageView(BaseModel):
    """A message as rendered in a chat view."""
    id: int = Field(..., description="Message identifier")
    sender: str = Field(..., description="Sender display name")
    content: str = Field(..., description="Message text")
    sent_at: datetime = Field(..., description="When the message was stored")

    model_config = {"from_attributes": True}


class AuditEntryView(BaseModel):
    """
    An audit entry as rendered in the activity log.

    username is already resolved by the store; anonymous actions carry the
    guest display name rather than None.
    """
    action: str = Field(..., description="Action name")
    username: str = Field(..., description="Actor display name")
    target_type: str = Field(..., description="Kind of the target entity")
    target_id: int = Field(..., description="Target identifier")
    created_at: datetime = Field(..., description="When the entry was written")

    model_config = {"from_attributes": True}


# =============================================================================
# Request Forms
# =============================================================================

class SendMessageForm(BaseModel):
    """
    Form fields for POST /send.

    Missing fields read as empty. Identifiers that are missing or not
    integers become 0 and are left for the database to reject.
    """
    sender_id: int = 0
    chat_id: int = 0
    content: str = ""

    @field_validator("sender_id", "chat_id", mode="before")
    @classmethod
    def int_or_zero(cls, v) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
