from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

# Collections holding records owned by a single user (keyed by user_id).
# Cascading account deletion removes matching documents from every one of them.
USER_OWNED_COLLECTIONS = (
    "trades",
    "trading_plans",
    "mindset_logs",
    "risk_config",
    "trading_setups",
    "trader_profiles",
)


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
        """Run a block of writes atomically.

        Yields a client session; pass it as ``session=`` to every write that must
        commit or abort together. Leaving the block with an exception aborts the
        transaction. Requires a replica set or sharded cluster.

        Usage:
            async with database.transaction() as session:
                await db.trades.delete_many({"user_id": uid}, session=session)
                await db.users.delete_one({"user_id": uid}, session=session)
        """
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

    async def _create_indexes(self):
        """Create MongoDB indexes for efficient queries."""
        try:
            # Profiles - email_lower drives the payment webhook lookup
            await self.db.users.create_index("user_id", unique=True)
            try:
                await self.db.users.create_index("email_lower", unique=True)
            except Exception as e:
                logger.warning(f"users.email_lower unique index not created: {e}")
            await self.db.users.create_index([("member_since", -1)])

            # Identity provider credentials
            await self.db.credentials.create_index("user_id", unique=True)
            await self.db.credentials.create_index("email_lower", unique=True)

            # Operator roles
            await self.db.admin_roles.create_index("user_id", unique=True)

            # User-owned records, listed newest first
            for name in USER_OWNED_COLLECTIONS:
                await self.db[name].create_index([("user_id", 1), ("created_at", -1)])

            await self.db.store_products.create_index("product_id", unique=True)
            await self.db.store_products.create_index([("created_at", -1)])

            # Audit log indexes - for timeline queries
            await self.db.audit_logs.create_index([("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")


# Global database instance
database = Database()


@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            await db.users.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = AsyncIOMotorClient(mongo_url)
        db = client[db_name]
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
