from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)


def transactions_enabled() -> bool:
    """Multi-document transactions need a replica set; opt in via MONGO_TRANSACTIONS."""
    return os.environ.get("MONGO_TRANSACTIONS", "false").lower() in ("1", "true", "yes")


class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    @asynccontextmanager
    async def transaction(self):
        """Yield a session bound to an open transaction, or None when disabled.

        Callers pass the yielded value as ``session=`` to every write; motor
        accepts ``session=None`` so the same code runs either way.
        """
        if not self.client or not transactions_enabled():
            yield None
            return

        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

    async def _create_indexes(self):
        """Create MongoDB indexes for tenant-scoped lookups."""
        try:
            await self.db.users.create_index("user_id", unique=True)
            try:
                await self.db.users.create_index("email", unique=True)
            except Exception as e:
                logger.debug(f"users.email index exists with different options: {e}")

            await self.db.companies.create_index("company_id", unique=True)
            await self.db.companies.create_index("user_id", unique=True)

            await self.db.company_bank_accounts.create_index("account_id", unique=True)
            await self.db.company_bank_accounts.create_index([("company_id", 1), ("is_active", 1)])

            await self.db.clients.create_index("client_id", unique=True)
            await self.db.clients.create_index([("company_id", 1), ("name", 1)])
            await self.db.clients.create_index([("company_id", 1), ("email", 1)])
            await self.db.clients.create_index([("company_id", 1), ("tax_id", 1)])

            await self.db.services.create_index("service_id", unique=True)
            await self.db.services.create_index([("company_id", 1), ("name", 1)])

            await self.db.invoices.create_index("invoice_id", unique=True)
            await self.db.invoices.create_index([("company_id", 1), ("issue_date", -1)])
            await self.db.invoices.create_index([("company_id", 1), ("client_id", 1)])
            await self.db.invoices.create_index([("company_id", 1), ("status", 1)])
            try:
                await self.db.invoices.create_index("public_token", unique=True, sparse=True)
            except Exception as e:
                logger.debug(f"invoices.public_token index exists with different options: {e}")

            await self.db.invoice_items.create_index([("invoice_id", 1), ("sort_order", 1)])
            await self.db.invoice_items.create_index("service_id", sparse=True)

            await self.db.user_credits.create_index("user_id", unique=True)

            await self.db.user_subscriptions.create_index([("user_id", 1), ("status", 1)])
            await self.db.payment_records.create_index([("user_id", 1), ("created_at", -1)])
            await self.db.usage_logs.create_index([("user_id", 1), ("created_at", -1)])
            await self.db.email_history.create_index([("user_id", 1), ("sent_at", -1)])
            await self.db.email_history.create_index("invoice_id")

            logger.info("MongoDB indexes created successfully")
        except Exception as e:
            logger.warning(f"Index creation warning (may already exist): {e}")


database = Database()

