"""
Pytest configuration and fixtures for the Statement Dispatch Service.

The repositories are replaced with in-memory fakes that honour the same
query semantics as the MongoDB-backed ones: customer lookup evaluates the
compiled patterns against each field as an unanchored search and returns
the first record in insertion order.
"""
import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/statements_test")

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings, load_settings
from app.main import create_app
from app.models.records import CustomerRecord, ReportSection, Statement
from app.services.fulfillment import FulfillmentOrchestrator
from app.services.phone_matcher import PhoneMatcher
from app.services.request_tracker import RequestLifecycleTracker
from app.services.statement_checker import StatementAvailabilityChecker


class FakeCustomerDirectory:
    """In-memory customer directory."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self.records = list(records or [])
        self.queries: List[list] = []
        self.error: Optional[Exception] = None

    async def find_one_matching(self, patterns, fields=("customerName", "city")):
        if self.error:
            raise self.error
        patterns = list(patterns)
        self.queries.append(patterns)
        for document in self.records:
            for field in fields:
                value = document.get(field)
                if isinstance(value, str) and any(p.search(value) for p in patterns):
                    return CustomerRecord.model_validate(document)
        return None


class FakeStatementIndex:
    """In-memory statements and report sections."""

    def __init__(self, statements=None, sections=None):
        self.statements: List[Dict[str, Any]] = list(statements or [])
        self.sections: List[Dict[str, Any]] = list(sections or [])
        self.latest_calls = 0
        self.error: Optional[Exception] = None

    async def latest(self) -> Optional[Statement]:
        self.latest_calls += 1
        if self.error:
            raise self.error
        if not self.statements:
            return None
        document = max(self.statements, key=lambda s: s["statementDate"])
        return Statement.model_validate(document)

    async def find_section(self, statement_id, party_code) -> Optional[ReportSection]:
        for document in self.sections:
            if document["statementId"] == statement_id and document["partyCode"] == party_code:
                return ReportSection.model_validate(document)
        return None


class FakeAuditStore:
    """In-memory request audit store."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Dict[str, Any]] = []
        self.insert_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self._next_id = 1

    async def insert(self, document: Dict[str, Any]) -> str:
        if self.insert_error:
            raise self.insert_error
        request_id = f"req-{self._next_id}"
        self._next_id += 1
        self.documents[request_id] = {"_id": request_id, **document}
        return request_id

    async def update(self, request_id: str, fields: Dict[str, Any]) -> None:
        if self.update_error:
            raise self.update_error
        self.updates.append(dict(fields))
        self.documents[request_id].update(fields, updatedAt=datetime.utcnow())

    async def get(self, request_id: str) -> Optional[Dict[str, Any]]:
        return self.documents.get(request_id)

    def only(self) -> Dict[str, Any]:
        assert len(self.documents) == 1
        return next(iter(self.documents.values()))


class FakeRenderer:
    """Render client stand-in returning fixed bytes or raising."""

    def __init__(self, content: bytes = b"%PDF-1.4 statement", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[tuple] = []

    async def render_statement(self, party_code, statement_id) -> bytes:
        self.calls.append((party_code, statement_id))
        if self.error:
            raise self.error
        return self.content


class FakeReplyChannel:
    """Collects replies; can be told to fail on documents."""

    def __init__(self, document_error: Optional[Exception] = None, text_error: Optional[Exception] = None):
        self.sent: List[tuple] = []
        self.document_error = document_error
        self.text_error = text_error
        self.document_paths: List[Path] = []

    async def reply_text(self, body: str) -> None:
        if self.text_error:
            raise self.text_error
        self.sent.append(("text", body))

    async def reply_document(self, path: Path, caption: str) -> None:
        self.document_paths.append(path)
        if self.document_error:
            raise self.document_error
        self.sent.append(("document", path.read_bytes(), caption))

    @property
    def texts(self) -> List[str]:
        return [item[1] for item in self.sent if item[0] == "text"]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a per-test scratch directory."""
    return load_settings(
        mongodb_uri="mongodb://localhost:27017/statements_test",
        scratch_dir=tmp_path,
        business_name="Sanjivan Medico Traders",
        webhook_token=None,
    )


@pytest.fixture
def customers() -> FakeCustomerDirectory:
    return FakeCustomerDirectory([
        {"_id": "c1", "code": "P001", "customerName": "Acme Pharma 917700011122", "city": "Pune"},
        {"_id": "c2", "code": "P002", "customerName": "Beta Stores", "city": "Nashik (91234 56789)"},
        {"_id": "c3", "code": "P003", "customerName": None, "city": "Mumbai 91234-56780"},
    ])


@pytest.fixture
def statements() -> FakeStatementIndex:
    return FakeStatementIndex(
        statements=[
            {"_id": "s-old", "statementDate": datetime(2024, 1, 31)},
            {"_id": "s-new", "statementDate": datetime(2024, 2, 29)},
        ],
        sections=[
            {"_id": "r1", "statementId": "s-new", "partyCode": "P001"},
            {"_id": "r2", "statementId": "s-old", "partyCode": "P002"},
            {"_id": "r3", "statementId": "s-new", "partyCode": "P003"},
        ],
    )


@pytest.fixture
def audit_store() -> FakeAuditStore:
    return FakeAuditStore()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def reply() -> FakeReplyChannel:
    return FakeReplyChannel()


@pytest.fixture
def orchestrator(settings, customers, statements, audit_store, renderer) -> FulfillmentOrchestrator:
    """Orchestrator wired onto the in-memory fakes."""
    return FulfillmentOrchestrator(
        settings=settings,
        tracker=RequestLifecycleTracker(audit_store),
        matcher=PhoneMatcher(customers),
        checker=StatementAvailabilityChecker(statements),
        renderer=renderer,
    )


@pytest.fixture
def reply_factory():
    """Build reply channels with injected failures."""
    return FakeReplyChannel


@pytest.fixture
def dispatcher_mock():
    """Dispatcher stand-in for API tests."""
    dispatcher = MagicMock()
    dispatcher.is_running = True
    dispatcher.pending = 0
    return dispatcher


@pytest.fixture
def api_app(settings, dispatcher_mock):
    """Application without lifespan side effects, dispatcher pre-installed."""
    application = create_app(settings=settings)
    application.state.dispatcher = dispatcher_mock
    application.state.store = MagicMock(is_bound=True)
    return application


@pytest.fixture
def client(api_app):
    """
    Synchronous TestClient for basic API testing.

    Not used as a context manager, so the lifespan does not run.
    """
    return TestClient(api_app)


@pytest.fixture
def sample_message() -> dict:
    """Sample inbound webhook payload."""
    return {
        "message_id": "false_919876543210@c.us_3EB0C767D26A1D6B",
        "sender": "919876543210@c.us",
        "body": "statement",
        "is_group": False,
    }


@pytest.fixture
def sample_headers() -> dict:
    """Sample request headers with correlation ID."""
    return {
        "X-Correlation-ID": "test-correlation-123",
        "Content-Type": "application/json",
    }
