"""Data models for the Statement Dispatch Service."""

from .records import CustomerRecord, ReportSection, Statement
from .request import InboundRequest, RequestStatus, TERMINAL_STATUSES

__all__ = [
    "CustomerRecord",
    "InboundRequest",
    "ReportSection",
    "RequestStatus",
    "Statement",
    "TERMINAL_STATUSES",
]
