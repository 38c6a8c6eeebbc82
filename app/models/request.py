from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestStatus(str, Enum):
    """Inbound request status enumeration"""
    RECEIVED = "RECEIVED"
    NO_MATCH = "NO_MATCH"
    NO_STATEMENT = "NO_STATEMENT"
    FAILED = "FAILED"
    PROCESSED = "PROCESSED"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.RECEIVED


TERMINAL_STATUSES = frozenset(s for s in RequestStatus if s.is_terminal)


def utcnow() -> datetime:
    return datetime.utcnow()


class InboundRequest(BaseModel):
    """Audit record for one inbound chat message, stored in the request collection."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    phone_number: str = Field(alias="phoneNumber")
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: RequestStatus = RequestStatus.RECEIVED
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    matched_party_code: Optional[str] = Field(default=None, alias="matchedPartyCode")
    matched_party_name: Optional[str] = Field(default=None, alias="matchedPartyName")
    response_message: Optional[str] = Field(default=None, alias="responseMessage")
    statement_sent: bool = Field(default=False, alias="statementSent")

    def to_document(self) -> dict:
        """Serialize with stored field names, leaving ``_id`` to the store."""
        document = self.model_dump(by_alias=True, exclude={"id"})
        document["status"] = self.status.value
        return document
