"""
Database module for the CRM Backend
Provides MongoDB connection and database instance
"""
from motor.motor_asyncio import AsyncIOMotorClient
from config import MONGO_URL, DB_NAME
import logging

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

logger.info(f"✅ Database client configured: {DB_NAME}")

async def close_db():
    """Close database connection"""
    client.close()


async def ensure_indexes():
    """Create indexes for the owner-scoped lookups the relationship service issues"""
    try:
        # Contacts indexes
        await db.contacts.create_index("id", unique=True)
        await db.contacts.create_index([("created_by", 1), ("id", 1)])
        await db.contacts.create_index([("created_by", 1), ("company_id", 1)])
        await db.contacts.create_index("email")
        await db.contacts.create_index([("created_at", -1)])

        # Companies indexes
        await db.companies.create_index("id", unique=True)
        await db.companies.create_index([("created_by", 1), ("id", 1)])
        await db.companies.create_index([("created_by", 1), ("contacts", 1)])
        await db.companies.create_index("name")

        logger.info("✅ Database indexes created successfully")
    except Exception as e:
        logger.warning(f"⚠️ Error creating indexes (may already exist): {e}")
