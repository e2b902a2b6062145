from motor.motor_asyncio import AsyncIOMotorClient

from config import MONGO_CONNECTION_STRING, DATABASE_NAME
from logging_config import logger

# Async client for API operations
async_client = AsyncIOMotorClient(MONGO_CONNECTION_STRING)
async_db = async_client[DATABASE_NAME]

# Collections
companies_collection = async_db.companies
users_collection = async_db.users
expenses_collection = async_db.expenses
notifications_collection = async_db.notifications

# Create indexes for better performance
async def create_indexes():
    # User indexes
    await users_collection.create_index("email", unique=True)
    await users_collection.create_index("company_id")
    await users_collection.create_index("manager_id")

    # Expense indexes
    await expenses_collection.create_index([("company_id", 1), ("date", -1)])
    await expenses_collection.create_index("employee_id")
    await expenses_collection.create_index("approval_workflow.approver")

    # Notification indexes
    await notifications_collection.create_index([("user_id", 1), ("created_at", -1)])

# Initialize database
async def init_db():
    try:
        await create_indexes()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
