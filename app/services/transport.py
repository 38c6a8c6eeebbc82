"""
WhatsApp gateway client for outbound replies.

The gateway is the process that owns the WhatsApp session. It posts inbound
messages to our webhook and accepts outbound text and document messages.
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import structlog

from app.core.circuit_breaker import CircuitBreakerConfig, ServiceClient
from app.core.config import Settings

logger = structlog.get_logger(__name__)


class WhatsAppGatewayClient:
    """Client for the WhatsApp gateway's outbound message API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.service_name = "WhatsApp Gateway"

        headers = {}
        if settings.whatsapp_gateway_token:
            headers["Authorization"] = f"Bearer {settings.whatsapp_gateway_token}"

        circuit_config = CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout_seconds,
        )

        self.service_client = ServiceClient(
            service_name=self.service_name,
            base_url=str(settings.whatsapp_gateway_url),
            timeout_seconds=settings.whatsapp_gateway_timeout_seconds,
            circuit_breaker_config=circuit_config,
            headers=headers,
            transport=transport,
        )

    async def send_text(
        self, to: str, body: str, quoted_message_id: Optional[str] = None
    ) -> None:
        """Send a plain text message."""
        payload: Dict[str, Any] = {"to": to, "body": body}
        if quoted_message_id:
            payload["quoted_message_id"] = quoted_message_id

        await self.service_client.post("/messages/text", json=payload)
        logger.info("Text reply sent", service=self.service_name, to=to, length=len(body))

    async def send_document(
        self,
        to: str,
        path: Path,
        caption: str,
        quoted_message_id: Optional[str] = None,
        mime_type: str = "application/pdf",
    ) -> None:
        """Upload a file from disk and send it as a document with a caption."""
        data = {"to": to, "caption": caption}
        if quoted_message_id:
            data["quoted_message_id"] = quoted_message_id
        content = await asyncio.to_thread(path.read_bytes)

        await self.service_client.post(
            "/messages/document",
            data=data,
            files={"file": (path.name, content, mime_type)},
        )
        logger.info(
            "Document reply sent",
            service=self.service_name,
            to=to,
            filename=path.name,
        )

    async def close(self) -> None:
        await self.service_client.close()

    def get_circuit_status(self) -> Dict[str, Any]:
        return self.service_client.get_circuit_status()


class ReplyChannel:
    """Replies addressed to the sender of one inbound message."""

    def __init__(self, gateway: WhatsAppGatewayClient, chat_id: str, message_id: Optional[str] = None):
        self.gateway = gateway
        self.chat_id = chat_id
        self.message_id = message_id

    async def reply_text(self, body: str) -> None:
        await self.gateway.send_text(self.chat_id, body, quoted_message_id=self.message_id)

    async def reply_document(self, path: Path, caption: str) -> None:
        await self.gateway.send_document(
            self.chat_id, path, caption, quoted_message_id=self.message_id
        )
