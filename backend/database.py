from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url, tz_aware=True)
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
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes. Unique keys back the lookup invariants (email, short_id)."""
        try:
            # Users - email is the session key, stored lowercased
            await self.db.users.create_index("email", unique=True)
            await self.db.users.create_index("user_id", unique=True)
            await self.db.users.create_index("billing_customer_id", sparse=True)

            # Quotations - short_id is the public share key
            await self.db.quotations.create_index("short_id", unique=True)
            await self.db.quotations.create_index("quotation_id", unique=True)
            await self.db.quotations.create_index([("owner_id", 1), ("created_at", -1)])

            # Booking requests - owner inbox, newest first
            await self.db.booking_requests.create_index("booking_id", unique=True)
            await self.db.booking_requests.create_index([("owner_id", 1), ("created_at", -1)])
            await self.db.booking_requests.create_index("quotation_id")

            # Magic links - single-use sign-in tokens
            await self.db.magic_links.create_index("token_hash", unique=True)
            await self.db.magic_links.create_index("expires_at", expireAfterSeconds=0)

            # Billing webhook audit trail
            await self.db.billing_events.create_index([("email", 1), ("received_at", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist with different options, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

