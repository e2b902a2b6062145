from fastapi import APIRouter, Depends, HTTPException, status
from typing import Annotated, List
import traceback

from models.expense import Expense
from models.user import CurrentUser, UserRole
from routers.auth import check_user_role
from services.errors import ExpenseAppError
from services.expense_service import list_team_expenses
from logging_config import logger

router = APIRouter()

# Get all expenses of the manager's direct reports
@router.get(
    "/expenses",
    response_model=List[Expense],
    summary="Get team expenses (Manager only)",
    description="""
    List the claims submitted by the current manager's direct reports,
    newest incurred date first.
    """,
    response_description="Returns the team's claims"
)
async def read_team_expenses(
    current_user: Annotated[CurrentUser, Depends(check_user_role([UserRole.MANAGER]))]
):
    try:
        logger.info(f"Getting team expenses for manager {current_user.id}")
        return await list_team_expenses(current_user)
    except (HTTPException, ExpenseAppError):
        raise
    except Exception as e:
        logger.error(f"Error getting team expenses: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error getting team expenses"
        )
