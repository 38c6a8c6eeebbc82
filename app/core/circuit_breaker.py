"""
Circuit breaker and HTTP client for the render service and WhatsApp gateway.

Calls are never retried here. After enough consecutive failures the circuit
opens and further calls fail fast until the cool-down has passed; one probe
call then decides whether it closes again.
"""
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import structlog

from app.core.exceptions import (
    ExternalServiceError,
    ExternalServiceTimeoutError,
    ServiceUnavailableError,
)

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for one circuit."""

    failure_threshold: int = 5
    success_threshold: int = 1
    timeout: int = 60
    half_open_max_calls: int = 1


@dataclass
class CircuitBreakerMetrics:
    """Call counters reported in ``get_status``."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_open_count: int = 0
    last_state_change: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "rejected_calls": self.rejected_calls,
            "circuit_open_count": self.circuit_open_count,
        }


@dataclass
class CircuitBreaker:
    """Failure counter that rejects calls while a dependency is down."""

    service_name: str = "Unknown Service"
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    half_open_calls: int = 0
    last_failure_time: Optional[float] = None
    metrics: CircuitBreakerMetrics = field(default_factory=CircuitBreakerMetrics)

    @asynccontextmanager
    async def guard(self):
        """
        Wrap one call.

        Raises:
            ServiceUnavailableError: If the circuit is open, or half-open with
                its probe already in flight
        """
        self._admit()
        try:
            yield
        except Exception:
            self._record_failure()
            raise
        self._record_success()

    def _admit(self) -> None:
        if self.state is CircuitState.OPEN:
            cooled_down = (
                self.last_failure_time is not None
                and time.time() - self.last_failure_time >= self.config.timeout
            )
            if not cooled_down:
                self._reject("Circuit breaker is OPEN")
            self._set_state(CircuitState.HALF_OPEN)
            self.half_open_calls = 0
            self.success_count = 0

        if self.state is CircuitState.HALF_OPEN:
            if self.half_open_calls >= self.config.half_open_max_calls:
                self._reject("Circuit breaker probe already in flight")
            self.half_open_calls += 1

    def _reject(self, reason: str) -> None:
        self.metrics.rejected_calls += 1
        logger.warning(
            "Circuit breaker rejecting call",
            service=self.service_name,
            state=self.state.value,
            failure_count=self.failure_count,
        )
        raise ServiceUnavailableError(self.service_name, f"{reason} for {self.service_name}")

    def _record_success(self) -> None:
        self.metrics.total_calls += 1
        self.metrics.successful_calls += 1

        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count < self.config.success_threshold:
                return
            self._set_state(CircuitState.CLOSED)
            self.success_count = 0
            self.half_open_calls = 0
        self.failure_count = 0

    def _record_failure(self) -> None:
        self.metrics.total_calls += 1
        self.metrics.failed_calls += 1
        self.failure_count += 1
        self.last_failure_time = time.time()

        if (
            self.state is CircuitState.HALF_OPEN
            or self.failure_count >= self.config.failure_threshold
        ):
            self.metrics.circuit_open_count += 1
            self._set_state(CircuitState.OPEN)

    def _set_state(self, state: CircuitState) -> None:
        previous = self.state
        self.state = state
        self.metrics.last_state_change = time.time()
        logger.info(
            "Circuit breaker state changed",
            service=self.service_name,
            previous=previous.value,
            state=state.value,
            failure_count=self.failure_count,
        )

    def get_status(self) -> Dict[str, Any]:
        """Current state and counters."""
        return {
            "service": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "is_available": self.state is not CircuitState.OPEN,
            "last_failure_time": self.last_failure_time,
            "metrics": self.metrics.as_dict(),
        }


class ServiceClient:
    """
    One ``httpx.AsyncClient`` per external service, behind a circuit breaker.

    Every failure (transport error, timeout, unexpected status, open circuit)
    surfaces as ``ExternalServiceError`` so callers have one thing to catch.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        timeout_seconds: float = 30,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            service_name: Name used in logs and error messages
            base_url: Base URL for the service
            timeout_seconds: Request timeout in seconds
            circuit_breaker_config: Optional circuit breaker thresholds
            headers: Default headers sent with every request
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.service_name = service_name
        self.base_url = str(base_url).rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = CircuitBreaker(
            service_name, circuit_breaker_config or CircuitBreakerConfig()
        )
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers=headers,
            transport=transport,
        )

        logger.info(
            "Service client initialized",
            service_name=service_name,
            base_url=self.base_url,
            timeout_seconds=timeout_seconds,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        expected_status: int = 200,
        **kwargs
    ) -> httpx.Response:
        """
        Send one request; only ``expected_status`` counts as success.

        Raises:
            ExternalServiceTimeoutError: If the service did not answer in time
            ExternalServiceError: For every other failure
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        log = logger.bind(service_name=self.service_name, method=method, endpoint=endpoint)

        try:
            async with self.circuit_breaker.guard():
                response = await self._send(log, method, url, **kwargs)
                if response.status_code != expected_status:
                    log.error("Unexpected status in service call", status_code=response.status_code)
                    raise ExternalServiceError(
                        self.service_name,
                        f"HTTP {response.status_code}: {response.reason_phrase}",
                        status_code=response.status_code,
                    )
        except ServiceUnavailableError as e:
            raise ExternalServiceError(self.service_name, f"Service unavailable: {e.detail}") from e

        return response

    async def _send(self, log, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            log.error("Timeout in service call", timeout_seconds=self.timeout_seconds, error=str(e))
            raise ExternalServiceTimeoutError(self.service_name, self.timeout_seconds) from e
        except httpx.RequestError as e:
            log.error("Request error in service call", error=str(e))
            raise ExternalServiceError(self.service_name, f"Request failed: {e}") from e

    async def post(self, endpoint: str, **kwargs) -> httpx.Response:
        return await self.request("POST", endpoint, **kwargs)

    async def close(self) -> None:
        await self.client.aclose()

    def get_circuit_status(self) -> Dict[str, Any]:
        """Circuit state and call counters, reported by the readiness check."""
        return self.circuit_breaker.get_status()
