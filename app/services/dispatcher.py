"""
Background dispatch of inbound messages to the fulfillment flow.

The webhook only enqueues; a fixed pool of worker tasks drains the queue.
With the default single worker, messages are fulfilled one at a time in
arrival order.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import structlog

from app.core.config import Settings
from app.core.exceptions import ServiceUnavailableError
from app.services.fulfillment import FulfillmentOrchestrator
from app.services.transport import ReplyChannel, WhatsAppGatewayClient

logger = structlog.get_logger(__name__)


@dataclass
class InboundMessage:
    """One inbound chat message waiting to be fulfilled."""
    sender: str
    body: str
    message_id: Optional[str] = None
    received_at: datetime = field(default_factory=datetime.utcnow)


class MessageDispatcher:
    """Bounded queue plus worker pool feeding ``FulfillmentOrchestrator``."""

    def __init__(
        self,
        orchestrator: FulfillmentOrchestrator,
        gateway: WhatsAppGatewayClient,
        settings: Settings,
    ):
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.worker_count = settings.dispatch_workers
        self.drain_timeout = settings.dispatch_drain_timeout_seconds
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=settings.dispatch_queue_size)
        self._workers: List[asyncio.Task] = []
        self.processed_count = 0

        logger.info(
            "Message dispatcher initialized",
            workers=self.worker_count,
            queue_size=settings.dispatch_queue_size,
        )

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker tasks."""
        if self.is_running:
            logger.warning("Message dispatcher already running")
            return

        self._workers = [
            asyncio.create_task(self._worker(index), name=f"dispatch-worker-{index}")
            for index in range(self.worker_count)
        ]
        logger.info("Message dispatcher started", workers=self.worker_count)

    async def stop(self) -> None:
        """Let queued messages finish for up to the drain timeout, then cancel workers."""
        if not self._workers:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Dispatch queue not drained before shutdown",
                pending=self._queue.qsize(),
                timeout_seconds=self.drain_timeout,
            )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        logger.info("Message dispatcher stopped", processed=self.processed_count)

    def submit(self, message: InboundMessage) -> None:
        """
        Enqueue a message without waiting.

        Raises:
            ServiceUnavailableError: When the queue is full.
        """
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Dispatch queue full, rejecting message",
                message_id=message.message_id,
                queue_size=self._queue.maxsize,
            )
            raise ServiceUnavailableError(
                "Message Dispatcher",
                detail="Too many messages waiting, try again later",
                retry_after=5,
            )

        logger.debug(
            "Message queued",
            message_id=message.message_id,
            pending=self._queue.qsize(),
        )

    async def _worker(self, index: int) -> None:
        while True:
            message = await self._queue.get()
            logger.debug(
                "Dispatching message",
                worker=index,
                message_id=message.message_id,
                queued_seconds=(datetime.utcnow() - message.received_at).total_seconds(),
            )
            try:
                reply = ReplyChannel(self.gateway, message.sender, message.message_id)
                await self.orchestrator.handle_inbound(
                    message.sender,
                    message.body,
                    reply,
                    message_id=message.message_id,
                )
                self.processed_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Dispatch worker error",
                    worker=index,
                    message_id=message.message_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
