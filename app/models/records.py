"""
Read-only views of records owned by the statement application.

Field aliases match the collections that application writes; unknown
commercial fields are kept but ignored.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _StoredRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[Any] = Field(default=None, alias="_id")


class CustomerRecord(_StoredRecord):
    """A billing customer ("party"). ``code`` is the unique customer key."""

    code: str
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    city: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return str(v) if v is not None else v

    @property
    def display_name(self) -> str:
        return self.customer_name or self.code


class Statement(_StoredRecord):
    """A periodic billing statement."""

    statement_date: Optional[datetime] = Field(default=None, alias="statementDate")


class ReportSection(_StoredRecord):
    """Marker that a customer has renderable content in a statement."""

    statement_id: Any = Field(alias="statementId")
    party_code: str = Field(alias="partyCode")
