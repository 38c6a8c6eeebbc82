"""
Exception hierarchy for the Statement Dispatch Service.

``BaseAPIException`` subclasses are HTTP-facing and rendered by the
application's exception handler. Everything else is raised inside the
fulfillment flow and ends as a FAILED request.
"""
import uuid
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """HTTP error with a stable error code and correlation id."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Response body."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class AuthenticationError(BaseAPIException):
    """Webhook caller did not present the shared token."""

    def __init__(self, detail: str = "Invalid webhook token", **context):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED, detail, error_code="SDS_001", context=context
        )


class ServiceUnavailableError(BaseAPIException):
    """A dependency or the inbound queue cannot take more work right now."""

    def __init__(
        self,
        service_name: str,
        detail: Optional[str] = None,
        retry_after: Optional[int] = None,
        **context
    ):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail or f"Service '{service_name}' is currently unavailable",
            error_code="SDS_004",
            headers={"Retry-After": str(retry_after)} if retry_after else {},
            context={"service_name": service_name, "retry_after": retry_after, **context},
        )


class ConfigurationError(Exception):
    """Required configuration is missing or invalid; the process must not start."""

    def __init__(self, detail: str, fields: Optional[List[str]] = None):
        self.fields = fields or []
        super().__init__(detail)


class ExternalServiceError(Exception):
    """Render service or WhatsApp gateway call failed."""

    def __init__(
        self,
        service_name: str,
        message: str,
        status_code: Optional[int] = None,
        **context
    ):
        self.service_name = service_name
        self.status_code = status_code
        self.context = context
        super().__init__(f"[{service_name}] {message}")


class ExternalServiceTimeoutError(ExternalServiceError):
    """External call exceeded its timeout."""

    def __init__(self, service_name: str, timeout_seconds: float, **context):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            service_name, f"Service timed out after {timeout_seconds} seconds", **context
        )


class DatabaseError(Exception):
    """MongoDB operation failed."""

    def __init__(self, detail: str, operation: Optional[str] = None, **context):
        self.operation = operation
        if operation:
            context["operation"] = operation
        self.context = context
        super().__init__(detail)


class DatabaseConnectionError(DatabaseError):
    """A store was used before it was bound."""

    def __init__(self, detail: str, **context):
        super().__init__(detail, operation="connection", **context)


class StatementProcessingError(Exception):
    """Statement could not be fetched or delivered."""

    def __init__(self, detail: str, party_code: Optional[str] = None):
        self.party_code = party_code
        super().__init__(detail)
