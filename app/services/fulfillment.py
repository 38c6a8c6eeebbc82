"""
Statement fulfillment for inbound WhatsApp messages.

One inbound message maps to one run: record the request, match the sender to
a customer, check the latest statement, render the PDF and send it back.
Expected outcomes (no match, no statement) get their own status and reply;
every other fault is recorded as FAILED and answered with a generic apology.
Nothing raised inside a run escapes ``handle_inbound``.
"""
import asyncio
import time
import uuid
from pathlib import Path
from typing import Optional

from app.core.config import Settings
from app.core.exceptions import StatementProcessingError
from app.core.logging import correlation_context, get_logger, performance_timing
from app.models.records import CustomerRecord
from app.models.request import RequestStatus
from app.services.phone_matcher import PhoneMatcher, normalize_sender_id
from app.services.render_client import DocumentRenderClient
from app.services.request_tracker import RequestLifecycleTracker
from app.services.statement_checker import StatementAvailabilityChecker
from app.services.transport import ReplyChannel

logger = get_logger(__name__)

NOT_LINKED_OUTCOME = "Your number isn't linked with any party."
NOT_LINKED_REPLY = (
    "Sorry, your number isn't linked with any party. "
    "Please contact {business_name} to add this number to their database."
)
NO_STATEMENT_OUTCOME = "No statement found for party code {party_code}"
NO_STATEMENT_REPLY = (
    'No statement found for "{party_code}". '
    "Please contact {business_name} for more information."
)
INTRO_REPLY = "Here is your latest statement for {display_name}:"
DOCUMENT_CAPTION = "Statement {party_code}"
SUCCESS_OUTCOME = "Statement PDF sent successfully"
APOLOGY_REPLY = "Sorry, there was an error processing your request. Please try again later."


class FulfillmentOrchestrator:
    """Runs the lookup-and-deliver flow for one inbound message at a time."""

    def __init__(
        self,
        settings: Settings,
        tracker: RequestLifecycleTracker,
        matcher: PhoneMatcher,
        checker: StatementAvailabilityChecker,
        renderer: DocumentRenderClient,
    ):
        self.settings = settings
        self.tracker = tracker
        self.matcher = matcher
        self.checker = checker
        self.renderer = renderer
        self.business_name = settings.business_name
        self.scratch_dir = Path(settings.scratch_dir)

    async def handle_inbound(
        self,
        sender: str,
        text: str,
        reply: ReplyChannel,
        message_id: Optional[str] = None,
    ) -> None:
        """
        Per-message boundary: never raises.

        If the request record cannot even be created, the sender gets the
        apology and the fault is logged.
        """
        sender_id = normalize_sender_id(sender)
        correlation_id = message_id or str(uuid.uuid4())[:8]

        with correlation_context(correlation_id=correlation_id, sender_id=sender_id):
            try:
                await self.handle(sender_id, text, reply)
            except Exception as e:
                logger.error(
                    "Error handling message",
                    phone_number=sender_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._send_apology(reply)

    async def handle(self, sender_id: str, text: str, reply: ReplyChannel) -> None:
        """
        Record the request, then process it.

        Raises:
            Exception: Only if the request record cannot be created.
        """
        message_text = (text or "").strip()
        logger.info("Received message", phone_number=sender_id, message=message_text)

        request_id = await self.tracker.create(sender_id, message_text)

        with correlation_context(request_id=request_id), performance_timing("fulfill_request"):
            await self.process(request_id, sender_id, reply)

    async def process(self, request_id: str, sender_id: str, reply: ReplyChannel) -> None:
        """Run matching, availability and delivery; faults end as FAILED."""
        try:
            customer = await self.matcher.match_customer(sender_id)

            if customer is None:
                await self.tracker.complete(
                    request_id, RequestStatus.NO_MATCH, message=NOT_LINKED_OUTCOME
                )
                await reply.reply_text(
                    NOT_LINKED_REPLY.format(business_name=self.business_name)
                )
                return

            logger.info(
                "Found matching party",
                party_code=customer.code,
                customer_name=customer.customer_name,
            )
            await self.tracker.record_match(request_id, customer)

            if not await self.checker.has_statement(customer.code):
                await self.tracker.complete(
                    request_id,
                    RequestStatus.NO_STATEMENT,
                    message=NO_STATEMENT_OUTCOME.format(party_code=customer.code),
                )
                await reply.reply_text(
                    NO_STATEMENT_REPLY.format(
                        party_code=customer.code, business_name=self.business_name
                    )
                )
                return

            await self.deliver_statement(customer, reply)

            await self.tracker.complete(
                request_id,
                RequestStatus.PROCESSED,
                message=SUCCESS_OUTCOME,
                statement_sent=True,
            )

        except Exception as e:
            logger.error(
                "Error processing request",
                request_id=request_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._mark_failed(request_id, e)
            await self._send_apology(reply)

    async def deliver_statement(self, customer: CustomerRecord, reply: ReplyChannel) -> None:
        """Render the latest statement for ``customer`` and send it as a document."""
        statement, section = await self.checker.resolve_latest_section(customer.code)
        if statement is None or section is None:
            raise StatementProcessingError("Report section not found", party_code=customer.code)

        pdf_data = await self.renderer.render_statement(customer.code, statement.id)

        scratch_path = self.scratch_path(customer.code)
        try:
            await asyncio.to_thread(scratch_path.write_bytes, pdf_data)
            await reply.reply_text(INTRO_REPLY.format(display_name=customer.display_name))
            await reply.reply_document(
                scratch_path, caption=DOCUMENT_CAPTION.format(party_code=customer.code)
            )
        finally:
            await self._remove_scratch(scratch_path)

        logger.info(
            "Statement sent",
            party_code=customer.code,
            statement_id=str(statement.id),
        )

    def scratch_path(self, party_code: str) -> Path:
        """Unique scratch file per run; the nanosecond clock separates concurrent runs."""
        safe_code = "".join(c if c.isalnum() or c in "-_" else "_" for c in party_code)
        return self.scratch_dir / f"statement_{safe_code}_{time.time_ns()}.pdf"

    async def _remove_scratch(self, path: Path) -> None:
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove scratch file", path=str(path), error=str(e))

    async def _mark_failed(self, request_id: str, error: Exception) -> None:
        try:
            await self.tracker.complete(
                request_id, RequestStatus.FAILED, message=f"Error: {error}"
            )
        except Exception as e:
            logger.error(
                "Failed to record request failure",
                request_id=request_id,
                error=str(e),
            )

    async def _send_apology(self, reply: ReplyChannel) -> None:
        try:
            await reply.reply_text(APOLOGY_REPLY)
        except Exception as e:
            logger.error("Failed to send error reply", error=str(e))
