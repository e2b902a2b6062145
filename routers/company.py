from fastapi import APIRouter, Depends, HTTPException, status, Body
from typing import Annotated
import traceback

from models.company import Company, CompanyUpdate
from models.user import CurrentUser, UserRole
from routers.auth import get_current_user, check_user_role
from services.errors import ExpenseAppError
from services.company_service import get_company_for_user, update_company_policy
from logging_config import logger

router = APIRouter()

# Get the current user's company
@router.get(
    "",
    response_model=Company,
    summary="Get company details",
    response_description="Returns the company of the current user, including its approval policy"
)
async def read_company(
    current_user: Annotated[CurrentUser, Depends(get_current_user)]
):
    try:
        return await get_company_for_user(current_user)
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error getting company: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error getting company"
        )

# Update company policy (admin only)
@router.put(
    "",
    response_model=Company,
    summary="Update company settings (Admin only)",
    description="""
    Update the company name, base currency and approval policy.

    - `approval_threshold`: claims at or below this amount are approved automatically
    - `require_manager_approval`: route claims above the threshold to the submitter's manager
    - `require_admin_approval`: route claims above the threshold to the company admin

    Fields that are not provided remain unchanged. Policy changes apply to claims
    submitted afterwards; existing claims keep their workflow.
    """,
    response_description="Returns the updated company"
)
async def update_company_settings(
    current_user: Annotated[CurrentUser, Depends(check_user_role([UserRole.ADMIN]))],
    company_update: CompanyUpdate = Body(
        ...,
        example={
            "approval_threshold": 500,
            "require_manager_approval": True,
            "require_admin_approval": True
        }
    )
):
    try:
        logger.info(f"Updating company {current_user.company_id}")
        return await update_company_policy(current_user, company_update)
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error updating company: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating company"
        )
