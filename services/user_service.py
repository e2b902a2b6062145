"""Admin-side user management, always scoped to the admin's own company."""
from typing import Any, Dict, List, Optional

from database.operations import (
    create_user,
    delete_user,
    get_user_by_email,
    get_user_by_id,
    get_users_by_company,
    update_user,
)
from models.notification import NotificationType
from models.user import CurrentUser, UserCreate, UserRole, UserUpdate
from services.errors import Forbidden, NotFound, ValidationError
from services.notifier import notify
from logging_config import logger


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """User document without password material."""
    data = dict(user)
    data.pop("hashed_password", None)
    data.pop("password", None)
    return data


def _require_admin(current_user: CurrentUser):
    if current_user.role != UserRole.ADMIN:
        raise Forbidden("Access denied: Admin role required")


async def _resolve_manager(manager_id: Optional[str], company_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if not manager_id:
        return None
    if user_id and manager_id == user_id:
        raise ValidationError("A user cannot be their own manager")
    manager = await get_user_by_id(manager_id)
    if not manager or manager.get("company_id") != company_id:
        raise ValidationError("Manager must be an existing user of the same company")
    return manager


async def _load_company_user(current_user: CurrentUser, user_id: str) -> Dict[str, Any]:
    user = await get_user_by_id(user_id)
    if not user or user.get("company_id") != current_user.company_id:
        raise NotFound("User not found in this company")
    return user


async def create_company_user(current_user: CurrentUser, user_data: UserCreate, hashed_password: str) -> Dict[str, Any]:
    _require_admin(current_user)

    email = user_data.email.lower()
    if await get_user_by_email(email):
        raise ValidationError("User with this email already exists")

    manager = await _resolve_manager(user_data.manager_id, current_user.company_id)

    user_doc = {
        "name": user_data.name,
        "email": email,
        "role": user_data.role.value,
        "company_id": current_user.company_id,
        "hashed_password": hashed_password,
    }
    if manager:
        user_doc["manager_id"] = manager["id"]

    user_id = await create_user(user_doc)
    logger.info(f"User {user_id} ({user_data.role.value}) created by admin {current_user.id}")

    if manager:
        await notify(
            user_id,
            f"You have been assigned a new manager: {manager.get('name')}.",
            NotificationType.TEAM_UPDATE
        )
        await notify(
            manager["id"],
            f"{user_data.name} has been added to your team.",
            NotificationType.TEAM_UPDATE
        )

    created = await get_user_by_id(user_id)
    return public_user(created or {**user_doc, "id": user_id})


async def list_company_users(current_user: CurrentUser) -> List[Dict[str, Any]]:
    _require_admin(current_user)
    users = await get_users_by_company(current_user.company_id)
    return [public_user(user) for user in users]


async def update_company_user(current_user: CurrentUser, user_id: str, user_update: UserUpdate) -> Dict[str, Any]:
    _require_admin(current_user)
    user = await _load_company_user(current_user, user_id)

    update_data = user_update.model_dump(exclude_unset=True, exclude_none=True)
    update_data.pop("manager_id", None)
    unset_fields = []

    if "email" in update_data:
        update_data["email"] = update_data["email"].lower()
        existing = await get_user_by_email(update_data["email"])
        if existing and existing["id"] != user_id:
            raise ValidationError("User with this email already exists")
    if "role" in update_data:
        update_data["role"] = UserRole(update_data["role"]).value

    # An omitted or null manager clears the reporting line
    manager = await _resolve_manager(user_update.manager_id, current_user.company_id, user_id)
    if manager:
        update_data["manager_id"] = manager["id"]
    elif user.get("manager_id"):
        unset_fields.append("manager_id")

    updated = await update_user(user_id, update_data, unset_fields)
    if not updated:
        raise NotFound("User not found in this company")

    logger.info(f"User {user_id} updated by admin {current_user.id}")
    return public_user(updated)


async def delete_company_user(current_user: CurrentUser, user_id: str) -> None:
    _require_admin(current_user)
    await _load_company_user(current_user, user_id)

    if user_id == current_user.id:
        raise ValidationError("Admin cannot delete their own account")

    if not await delete_user(user_id):
        raise NotFound("User not found in this company")
    logger.info(f"User {user_id} deleted by admin {current_user.id}")
