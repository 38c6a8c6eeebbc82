"""
Document render service client.
"""
from typing import Any, Dict, Optional

import httpx
import structlog

from app.core.circuit_breaker import CircuitBreakerConfig, ServiceClient
from app.core.config import Settings
from app.core.exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)


class DocumentRenderClient:
    """Client for the statement PDF render endpoint."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.service_name = "Render Service"
        self.endpoint = settings.render_endpoint

        circuit_config = CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout_seconds,
        )

        self.service_client = ServiceClient(
            service_name=self.service_name,
            base_url=str(settings.render_service_url),
            timeout_seconds=settings.render_timeout_seconds,
            circuit_breaker_config=circuit_config,
            transport=transport,
        )

    async def render_statement(self, party_code: str, statement_id: Any) -> bytes:
        """
        Request the PDF for one customer's section of a statement.

        Args:
            party_code: Customer key
            statement_id: Statement identifier, sent as a string

        Returns:
            Raw PDF bytes

        Raises:
            ExternalServiceError: On any status other than 200, an empty body,
                a transport fault, a timeout or an open circuit. Never retried.
        """
        logger.info(
            "Requesting statement PDF",
            service=self.service_name,
            party_code=party_code,
            statement_id=str(statement_id),
        )

        response = await self.service_client.post(
            self.endpoint,
            json={"partyCode": party_code, "statementId": str(statement_id)},
        )

        if not response.content:
            logger.error("Empty statement PDF", service=self.service_name, party_code=party_code)
            raise ExternalServiceError(self.service_name, "Empty document returned", status_code=200)

        logger.info(
            "Statement PDF received",
            service=self.service_name,
            party_code=party_code,
            size_bytes=len(response.content),
        )
        return response.content

    async def close(self) -> None:
        await self.service_client.close()

    def get_circuit_status(self) -> Dict[str, Any]:
        return self.service_client.get_circuit_status()
