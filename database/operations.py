from bson import ObjectId
from datetime import datetime
from typing import List, Dict, Any, Optional

from database.db import (
    companies_collection,
    users_collection,
    expenses_collection,
    notifications_collection
)

# Helper to convert ObjectId to string
def serialize_object_id(doc):
    if doc.get("_id"):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc

def _object_ids(ids: List[str]) -> List[ObjectId]:
    return [ObjectId(i) for i in ids if ObjectId.is_valid(i)]

# Company operations
async def create_company(company_data: Dict[str, Any]) -> str:
    company_data["created_at"] = datetime.utcnow()
    company_data["updated_at"] = company_data["created_at"]
    result = await companies_collection.insert_one(company_data)
    return str(result.inserted_id)

async def get_company(company_id: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(company_id):
        return None
    company = await companies_collection.find_one({"_id": ObjectId(company_id)})
    if company:
        return serialize_object_id(company)
    return None

async def update_company(company_id: str, update_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(company_id):
        return None

    update_data["updated_at"] = datetime.utcnow()
    result = await companies_collection.update_one(
        {"_id": ObjectId(company_id)},
        {"$set": update_data}
    )

    if result.matched_count == 0:
        return None

    # Return the updated company
    return await get_company(company_id)

async def delete_company(company_id: str) -> bool:
    if not ObjectId.is_valid(company_id):
        return False

    result = await companies_collection.delete_one({"_id": ObjectId(company_id)})
    return result.deleted_count > 0

# User operations
async def create_user(user_data: Dict[str, Any]) -> str:
    user_data["created_at"] = datetime.utcnow()
    result = await users_collection.insert_one(user_data)
    return str(result.inserted_id)

async def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    user = await users_collection.find_one({"email": email.lower()})
    if user:
        return serialize_object_id(user)
    return None

async def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    if not user_id or not ObjectId.is_valid(user_id):
        return None
    user = await users_collection.find_one({"_id": ObjectId(user_id)})
    if user:
        return serialize_object_id(user)
    return None

async def get_users_by_company(company_id: str) -> List[Dict[str, Any]]:
    cursor = users_collection.find({"company_id": company_id}).sort("created_at", 1)
    users = []
    async for user in cursor:
        users.append(serialize_object_id(user))
    return users

async def get_company_admin(company_id: str) -> Optional[Dict[str, Any]]:
    """First admin of the company, by creation time."""
    cursor = users_collection.find({"company_id": company_id, "role": "admin"}).sort("created_at", 1).limit(1)
    async for admin in cursor:
        return serialize_object_id(admin)
    return None

async def get_team_member_ids(manager_id: str) -> List[str]:
    """Ids of the users whose manager is manager_id."""
    ids = await users_collection.distinct("_id", {"manager_id": manager_id})
    return [str(i) for i in ids]

async def get_user_names(user_ids: List[str]) -> Dict[str, str]:
    cursor = users_collection.find({"_id": {"$in": _object_ids(user_ids)}}, {"name": 1})
    names = {}
    async for user in cursor:
        names[str(user["_id"])] = user.get("name")
    return names

async def update_user(user_id: str, update_data: Dict[str, Any], unset_fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(user_id):
        return None

    update = {}
    if update_data:
        update["$set"] = update_data
    if unset_fields:
        update["$unset"] = {field: "" for field in unset_fields}
    if not update:
        return await get_user_by_id(user_id)

    result = await users_collection.update_one({"_id": ObjectId(user_id)}, update)

    if result.matched_count == 0:
        return None

    # Return the updated user
    return await get_user_by_id(user_id)

async def delete_user(user_id: str) -> bool:
    if not ObjectId.is_valid(user_id):
        return False

    result = await users_collection.delete_one({"_id": ObjectId(user_id)})
    return result.deleted_count > 0

# Expense operations
async def create_expense(expense_data: Dict[str, Any]) -> str:
    now = datetime.utcnow()
    expense_data["created_at"] = now
    expense_data["updated_at"] = now
    expense_data.setdefault("version", 0)
    result = await expenses_collection.insert_one(expense_data)
    return str(result.inserted_id)

async def get_expense(expense_id: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(expense_id):
        return None
    expense = await expenses_collection.find_one({"_id": ObjectId(expense_id)})
    if expense:
        return serialize_object_id(expense)
    return None

async def find_expense_ids(query: Dict[str, Any]) -> List[ObjectId]:
    """Distinct ids of the expenses matching query."""
    return await expenses_collection.distinct("_id", query)

async def get_expenses(query: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Expenses matching query, newest incurred date first."""
    cursor = expenses_collection.find(query).sort([("date", -1), ("created_at", -1)])
    expenses = []
    async for expense in cursor:
        expenses.append(serialize_object_id(expense))
    return expenses

async def update_expense_workflow(
    expense_id: str,
    expected_version: int,
    approval_workflow: List[Dict[str, Any]],
    status: str
) -> bool:
    """
    Write the approval workflow and status only if nobody else has written
    since expected_version was read. Returns False on a lost race.
    """
    if not ObjectId.is_valid(expense_id):
        return False
    # Documents written before versioning have no version field at all
    version_filter = expected_version if expected_version else {"$in": [0, None]}
    result = await expenses_collection.update_one(
        {"_id": ObjectId(expense_id), "version": version_filter},
        {
            "$set": {
                "approval_workflow": approval_workflow,
                "status": status,
                "updated_at": datetime.utcnow()
            },
            "$inc": {"version": 1}
        }
    )
    return result.modified_count > 0

# Notification operations
async def create_notification(notification_data: Dict[str, Any]) -> str:
    notification_data["created_at"] = datetime.utcnow()
    notification_data.setdefault("read", False)
    result = await notifications_collection.insert_one(notification_data)
    return str(result.inserted_id)

async def get_notifications(user_id: str) -> List[Dict[str, Any]]:
    if not ObjectId.is_valid(user_id):
        return []
    cursor = notifications_collection.find({"user_id": user_id}).sort("created_at", -1)
    notifications = []
    async for notification in cursor:
        notifications.append(serialize_object_id(notification))
    return notifications

async def mark_notifications_read(user_id: str) -> int:
    result = await notifications_collection.update_many(
        {"user_id": user_id, "read": False},
        {"$set": {"read": True}}
    )
    return result.modified_count
