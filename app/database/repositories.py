"""
Repositories over the MongoDB collections.

The customer, statement and report-section collections belong to the
statement application and are only ever read here. The request collection is
the audit trail this service owns.
"""
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.models.records import CustomerRecord, ReportSection, Statement

logger = get_logger(__name__)


def _object_id(value: Any) -> Any:
    """Convert string ids back to ObjectId where they look like one."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


class _Repository:
    def __init__(self, context, collection_name: str):
        self._context = context
        self.collection_name = collection_name

    @property
    def collection(self):
        return self._context.collection(self.collection_name)


class CustomerDirectory(_Repository):
    """Read-only access to customer records."""

    async def find_one_matching(
        self, patterns: Iterable[re.Pattern], fields: Iterable[str] = ("customerName", "city")
    ) -> Optional[CustomerRecord]:
        """
        Find the first record where any of ``fields`` matches any pattern.

        Patterns are passed to MongoDB as BSON regular expressions inside an
        ``$in`` so one round-trip covers every candidate on every field.
        """
        patterns = list(patterns)
        query = {"$or": [{field: {"$in": patterns}} for field in fields]}

        try:
            document = await self.collection.find_one(query)
        except PyMongoError as e:
            logger.error("Failed to query customer directory", error=str(e))
            raise DatabaseError(f"Customer lookup failed: {e}", operation="find_customer") from e

        return CustomerRecord.model_validate(document) if document else None


class StatementIndex(_Repository):
    """Read-only access to statements and their report sections."""

    def __init__(self, context, collection_name: str, section_collection_name: str):
        super().__init__(context, collection_name)
        self.section_collection_name = section_collection_name

    @property
    def sections(self):
        return self._context.collection(self.section_collection_name)

    async def latest(self) -> Optional[Statement]:
        """Most recent statement by ``statementDate``, or None when there are none."""
        try:
            cursor = self.collection.find().sort("statementDate", DESCENDING).limit(1)
            documents = await cursor.to_list(length=1)
        except PyMongoError as e:
            logger.error("Failed to query latest statement", error=str(e))
            raise DatabaseError(f"Statement lookup failed: {e}", operation="latest_statement") from e

        return Statement.model_validate(documents[0]) if documents else None

    async def find_section(self, statement_id: Any, party_code: str) -> Optional[ReportSection]:
        """Report section for ``(statement_id, party_code)``, if any."""
        try:
            document = await self.sections.find_one(
                {"statementId": statement_id, "partyCode": party_code}
            )
        except PyMongoError as e:
            logger.error(
                "Failed to query report section",
                statement_id=str(statement_id),
                party_code=party_code,
                error=str(e),
            )
            raise DatabaseError(f"Report section lookup failed: {e}", operation="find_section") from e

        return ReportSection.model_validate(document) if document else None


class RequestAuditStore(_Repository):
    """Append-and-update store for inbound request audit records."""

    async def insert(self, document: Dict[str, Any]) -> str:
        """Insert a request record and return its id as a string."""
        try:
            result = await self.collection.insert_one(document)
        except PyMongoError as e:
            logger.error("Failed to insert request record", error=str(e))
            raise DatabaseError(f"Request insert failed: {e}", operation="insert_request") from e

        return str(result.inserted_id)

    async def update(self, request_id: str, fields: Dict[str, Any]) -> None:
        """``$set`` the given fields and refresh ``updatedAt``."""
        update = {**fields, "updatedAt": datetime.utcnow()}
        try:
            await self.collection.update_one({"_id": _object_id(request_id)}, {"$set": update})
        except PyMongoError as e:
            logger.error("Failed to update request record", request_id=request_id, error=str(e))
            raise DatabaseError(f"Request update failed: {e}", operation="update_request") from e

