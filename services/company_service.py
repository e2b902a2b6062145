from typing import Any, Dict

from database.operations import get_company, update_company, create_company
from models.company import CompanyUpdate
from models.user import CurrentUser, UserRole
from services.currency import currency_symbol
from services.errors import Forbidden, NotFound
from logging_config import logger

DEFAULT_POLICY = {
    "approval_threshold": 1000,
    "require_manager_approval": True,
    "require_admin_approval": False,
}

async def register_company(name: str, currency_code: str) -> Dict[str, Any]:
    company_data = {
        "name": name,
        "currency": currency_code.upper(),
        "currency_symbol": currency_symbol(currency_code),
        **DEFAULT_POLICY,
    }
    company_id = await create_company(company_data)
    logger.info(f"Company registered: {name} ({company_id}), currency {company_data['currency']}")
    return {**company_data, "id": company_id}

async def get_company_for_user(current_user: CurrentUser) -> Dict[str, Any]:
    company = await get_company(current_user.company_id)
    if not company:
        raise NotFound("Company not found")
    return company

async def update_company_policy(current_user: CurrentUser, company_update: CompanyUpdate) -> Dict[str, Any]:
    """Partial update of the caller's company; admins only."""
    if current_user.role != UserRole.ADMIN:
        raise Forbidden("Access denied. Admin role required.")

    update_data = company_update.model_dump(exclude_unset=True, exclude_none=True)
    if "currency" in update_data:
        update_data["currency_symbol"] = currency_symbol(update_data["currency"])

    if not update_data:
        return await get_company_for_user(current_user)

    company = await update_company(current_user.company_id, update_data)
    if not company:
        raise NotFound("Company not found")

    logger.info(f"Company {current_user.company_id} updated by {current_user.id}: {sorted(update_data)}")
    return company
