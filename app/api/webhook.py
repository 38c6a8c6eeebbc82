"""
Inbound WhatsApp webhook.
"""
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from app.core.config import Settings
from app.core.dependencies import get_app_settings, get_dispatcher
from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.schemas.inbound_message import IncomingMessage, MessageAccepted
from app.services.dispatcher import InboundMessage, MessageDispatcher

router = APIRouter()
logger = get_logger(__name__)


def verify_webhook_token(
    x_webhook_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject callers without the shared token when one is configured."""
    expected = settings.webhook_token
    if not expected:
        return
    if not x_webhook_token or not secrets.compare_digest(x_webhook_token, expected):
        logger.warning("Rejected webhook call with invalid token")
        raise AuthenticationError()


@router.post(
    "/webhook/whatsapp",
    response_model=MessageAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_webhook_token)],
)
async def receive_whatsapp_message(
    request: Request,
    message: IncomingMessage,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """
    Accept one inbound chat message for background fulfillment.

    Group messages are acknowledged and dropped. Everything else is queued
    and answered asynchronously through the gateway.

    Raises:
        AuthenticationError: If the webhook token does not match
        ServiceUnavailableError: If the dispatch queue is full
    """
    if message.is_group:
        logger.info("Ignoring group message", message_id=message.message_id)
        return MessageAccepted(status="ignored", message_id=message.message_id)

    dispatcher.submit(
        InboundMessage(
            sender=message.sender,
            body=message.body,
            message_id=message.message_id,
        )
    )

    logger.info(
        "Inbound message queued",
        message_id=message.message_id,
        content_length=len(message.body),
        correlation_id=request.headers.get("X-Correlation-ID"),
    )
    return MessageAccepted(status="queued", message_id=message.message_id)
