from typing import Optional, Dict, Any

from app.core.logging import get_logger, log_business_event
from app.database.repositories import RequestAuditStore
from app.models.records import CustomerRecord
from app.models.request import InboundRequest, RequestStatus

logger = get_logger(__name__)


class RequestLifecycleTracker:
    """Records inbound requests and their outcome in the audit store.

    A request is created RECEIVED and then completed with one terminal status.
    Completion is not guarded: a second call overwrites the first, which is
    how a late fault turns an already-answered request into FAILED.
    """

    def __init__(self, store: RequestAuditStore):
        self.store = store

    async def create(self, sender_id: str, text: str) -> str:
        """Insert a RECEIVED record and return its id. Store faults propagate."""
        record = InboundRequest(phone_number=sender_id, message=text)
        request_id = await self.store.insert(record.to_document())

        logger.info(
            "Created inbound request",
            request_id=request_id,
            phone_number=sender_id,
            status=RequestStatus.RECEIVED.value,
        )
        return request_id

    async def record_match(self, request_id: str, customer: CustomerRecord) -> None:
        """Store the matched customer; the request stays RECEIVED."""
        await self.store.update(request_id, {
            "matchedPartyCode": customer.code,
            "matchedPartyName": customer.customer_name,
        })

    async def complete(
        self,
        request_id: str,
        status: RequestStatus,
        message: Optional[str] = None,
        statement_sent: Optional[bool] = None,
    ) -> None:
        """Move the request to a terminal status with its outcome message."""
        status = RequestStatus(status)
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        fields: Dict[str, Any] = {"status": status.value}
        if message is not None:
            fields["responseMessage"] = message
        if statement_sent is not None:
            fields["statementSent"] = statement_sent

        await self.store.update(request_id, fields)

        log_business_event(
            "request_completed",
            request_id=request_id,
            status=status.value,
            statement_sent=bool(statement_sent),
            response_message=message,
        )
