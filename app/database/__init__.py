"""
MongoDB store context for the Statement Dispatch Service.

The context is constructed once at startup and handed to every component that
touches the datastore. Repositories resolve their collection on each call, so
a context that failed to bind makes every store operation raise
``DatabaseConnectionError`` instead of failing at import time.
"""
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConfigurationError as MongoConfigurationError

from app.core.config import Settings
from app.core.exceptions import ConfigurationError, DatabaseConnectionError
from app.core.logging import get_logger
from app.core.retry import create_async_retry_decorator, get_database_retry_config
from app.database.repositories import CustomerDirectory, RequestAuditStore, StatementIndex

logger = get_logger(__name__)


class StoreContext:
    """Explicit handle on the customer, statement and request collections."""

    def __init__(self, settings: Settings, database: Optional[AsyncIOMotorDatabase] = None):
        self.settings = settings
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = database

        self.customers = CustomerDirectory(self, settings.customer_collection)
        self.statements = StatementIndex(
            self, settings.statement_collection, settings.report_section_collection
        )
        self.requests = RequestAuditStore(self, settings.request_collection)

    @property
    def is_bound(self) -> bool:
        """Whether the stores are bound and usable."""
        return self._database is not None

    async def bind(self) -> bool:
        """
        Connect to MongoDB and verify the server answers.

        Connectivity failures are retried a few times and then logged; the
        service keeps running unbound. A URI without a database name and no
        ``MONGODB_DATABASE`` override is a configuration fault and is raised.

        Returns:
            True if bound, False if the server could not be reached
        """
        if self.is_bound:
            return True

        client = AsyncIOMotorClient(
            self.settings.mongodb_uri,
            serverSelectionTimeoutMS=self.settings.mongodb_connect_timeout_ms,
        )
        try:
            database = client.get_default_database(default=self.settings.mongodb_database)
        except MongoConfigurationError as e:
            client.close()
            raise ConfigurationError(f"MongoDB database name not configured: {e}") from e

        @create_async_retry_decorator(
            config=get_database_retry_config(self.settings.store_bind_attempts),
            service_name="mongodb",
        )
        async def ping():
            await database.command("ping")

        try:
            await ping()
        except Exception as e:
            client.close()
            logger.error(
                "MongoDB connection failed, continuing with unbound stores",
                database=database.name,
                error=str(e),
            )
            return False

        self._client = client
        self._database = database
        logger.info("Connected to MongoDB", database=database.name)
        return True

    def collection(self, name: str) -> AsyncIOMotorCollection:
        """Resolve a collection, failing if the stores are not bound."""
        if self._database is None:
            raise DatabaseConnectionError(
                "Datastore is not connected", collection=name
            )
        return self._database[name]

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")
