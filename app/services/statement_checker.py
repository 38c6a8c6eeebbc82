"""Statement availability lookups."""
from typing import Optional, Tuple

from app.core.logging import get_logger
from app.database.repositories import StatementIndex
from app.models.records import ReportSection, Statement

logger = get_logger(__name__)


class StatementAvailabilityChecker:
    """Answers whether the latest statement has content for a customer."""

    def __init__(self, statements: StatementIndex):
        self.statements = statements

    async def latest_statement(self) -> Optional[Statement]:
        return await self.statements.latest()

    async def find_section(self, statement_id, party_code: str) -> Optional[ReportSection]:
        return await self.statements.find_section(statement_id, party_code)

    async def has_statement(self, party_code: str) -> bool:
        """True when the most recent statement has a report section for ``party_code``."""
        _, section = await self.resolve_latest_section(party_code)
        return section is not None

    async def resolve_latest_section(
        self, party_code: str
    ) -> Tuple[Optional[Statement], Optional[ReportSection]]:
        """Latest statement and this customer's section in it; either may be None."""
        statement = await self.latest_statement()
        if statement is None:
            logger.info("No statements available", party_code=party_code)
            return None, None

        section = await self.find_section(statement.id, party_code)
        logger.info(
            "Checked latest statement for customer",
            party_code=party_code,
            statement_id=str(statement.id),
            has_section=section is not None,
        )
        return statement, section
