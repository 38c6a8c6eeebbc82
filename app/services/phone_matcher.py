"""
Phone number matching against customer records.

Customer phone numbers are not stored in a dedicated field: staff type them
into the customer name or city, in whatever format they like. The matcher
turns the sender's digits into the handful of formats seen in practice and
looks for any of them anywhere inside either field.
"""
import re
from typing import List, Optional

from app.core.logging import get_logger
from app.database.repositories import CustomerDirectory
from app.models.records import CustomerRecord

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")
_FIVE_FIVE = re.compile(r"^(\d{5})(\d{5})$")

SEARCH_FIELDS = ("customerName", "city")


def normalize_sender_id(raw_sender_id: str) -> str:
    """Strip every non-digit, e.g. ``"919876543210@c.us"`` -> ``"919876543210"``."""
    return _NON_DIGITS.sub("", raw_sender_id or "")


def build_candidates(digits: str) -> List[str]:
    """
    Textual variants a stored number might take.

    Only a number of exactly ten digits is split into a 5+5 group; for any
    other length the split variants equal the raw digits.
    """
    spaced = _FIVE_FIVE.sub(r"\1 \2", digits)
    hyphenated = _FIVE_FIVE.sub(r"\1-\2", digits)
    return [
        digits,
        spaced,
        hyphenated,
        f"({digits})",
        f"({spaced})",
    ]


def build_patterns(digits: str) -> List[re.Pattern]:
    """Escaped, unanchored patterns: each matches its candidate as a substring."""
    return [re.compile(re.escape(candidate)) for candidate in build_candidates(digits)]


class PhoneMatcher:
    """Resolves an inbound sender identifier to at most one customer."""

    def __init__(self, customers: CustomerDirectory):
        self.customers = customers

    async def match_customer(self, raw_sender_id: str) -> Optional[CustomerRecord]:
        """
        Find the first customer whose name or city contains the sender's number.

        When several records match, the one the store returns first wins.
        """
        digits = normalize_sender_id(raw_sender_id)
        patterns = build_patterns(digits)

        customer = await self.customers.find_one_matching(patterns, fields=SEARCH_FIELDS)

        if customer:
            logger.info(
                "Matched sender to customer",
                phone_number=digits,
                party_code=customer.code,
                customer_name=customer.customer_name,
            )
        else:
            logger.info("No customer matched sender", phone_number=digits)

        return customer
