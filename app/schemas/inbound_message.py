"""
Pydantic models for inbound WhatsApp webhook payloads.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class IncomingMessage(BaseModel):
    """Inbound chat message as posted by the WhatsApp gateway."""

    message_id: Optional[str] = Field(
        None, description="Gateway message ID, used for quoting replies"
    )
    sender: str = Field(
        ..., description="Sender chat ID, e.g. 919876543210@c.us", min_length=1
    )
    body: str = Field("", description="Message text")
    is_group: bool = Field(False, description="Whether the message came from a group chat")

    @field_validator("sender")
    @classmethod
    def validate_sender(cls, v):
        """Sender must carry at least one digit."""
        if not any(c.isdigit() for c in v):
            raise ValueError("sender must contain a phone number")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "message_id": "false_919876543210@c.us_3EB0C767D26A1D6B",
                "sender": "919876543210@c.us",
                "body": "statement",
                "is_group": False,
            }
        }
    }


class MessageAccepted(BaseModel):
    """Webhook acknowledgement."""

    status: str = Field(..., description="queued or ignored")
    message_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
