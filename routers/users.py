from fastapi import APIRouter, Depends, HTTPException, status, Body
from typing import Annotated, List
import traceback

from models.user import User, UserCreate, UserRole, UserUpdate, CurrentUser
from routers.auth import check_user_role, get_password_hash
from services.errors import ExpenseAppError
from services.user_service import (
    create_company_user,
    list_company_users,
    update_company_user,
    delete_company_user
)
from logging_config import logger

router = APIRouter()

admin_only = check_user_role([UserRole.ADMIN])

# Create a user in the admin's company
@router.post(
    "",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user (Admin only)",
    description="""
    Create an employee, manager or admin in the current admin's company.

    `manager_id` is optional and must reference a user of the same company.
    When a manager is assigned, both the new user and the manager are notified.
    """,
    response_description="Returns the created user without password material"
)
async def create_user_account(
    current_user: Annotated[CurrentUser, Depends(admin_only)],
    user_data: UserCreate = Body(
        ...,
        example={
            "name": "Eve Employee",
            "email": "eve@acme.com",
            "password": "password123",
            "role": "employee",
            "manager_id": "60d21b4667d0d8992e610c85"
        }
    )
):
    try:
        logger.info(f"Creating {user_data.role.value} account in company {current_user.company_id}")
        return await create_company_user(current_user, user_data, get_password_hash(user_data.password))
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error creating user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating user"
        )

# Get all users of the company (admin only)
@router.get(
    "",
    response_model=List[User],
    summary="Get all users (Admin only)",
    response_description="Returns the users of the admin's company"
)
async def read_users(
    current_user: Annotated[CurrentUser, Depends(admin_only)]
):
    try:
        users = await list_company_users(current_user)
        logger.info(f"Retrieved {len(users)} users")
        return users
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error retrieving users: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error retrieving users"
        )

# Update user by ID (admin only)
@router.put(
    "/{user_id}",
    response_model=User,
    summary="Update user by ID (Admin only)",
    description="""
    Update a user's name, email, role or manager.

    Omitting `manager_id` (or sending null) removes the user's manager.
    Users outside the admin's company are reported as not found.
    """,
    response_description="Returns the updated user information"
)
async def update_user_by_id(
    user_id: str,
    current_user: Annotated[CurrentUser, Depends(admin_only)],
    user_update: UserUpdate = Body(
        ...,
        example={
            "name": "Eve Employee",
            "role": "manager",
            "manager_id": None
        }
    )
):
    try:
        logger.info(f"Updating user with ID: {user_id}")
        return await update_company_user(current_user, user_id, user_update)
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error updating user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating user"
        )

# Delete user by ID (admin only)
@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user by ID (Admin only)",
    description="""
    Permanently remove a user of the admin's company. An admin cannot delete
    their own account.
    """,
    response_description="No content is returned on successful deletion"
)
async def delete_user_by_id(
    user_id: str,
    current_user: Annotated[CurrentUser, Depends(admin_only)]
):
    try:
        logger.info(f"Deleting user with ID: {user_id}")
        await delete_company_user(current_user, user_id)
        return None
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error deleting user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deleting user"
        )
