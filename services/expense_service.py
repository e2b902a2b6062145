"""
Expense claim lifecycle: submission, approver decisions and role-scoped reads.

Glues the pure workflow engine to persistence, notifications and currency
conversion. Raises the domain errors from `services.errors`; routers turn
them into HTTP responses.
"""
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from database.operations import (
    create_expense,
    find_expense_ids,
    get_company,
    get_company_admin,
    get_expense,
    get_expenses,
    get_team_member_ids,
    get_user_by_id,
    get_user_names,
    update_expense_workflow,
)
from models.expense import ApprovalStatus, ApprovalStep, ExpenseCreate, ExpenseDecision
from models.notification import NotificationType
from models.user import CurrentUser, UserRole
from services import currency
from services.errors import ConcurrentModification, Forbidden, NotFound
from services.notifier import notify
from services.workflow import apply_decision, approval_progress, build_approval_workflow, parse_decision
from config import MAX_DECISION_RETRIES
from logging_config import logger

APPROVER_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


def format_money(amount: float, currency_code: str) -> str:
    return f"{amount:,.2f} {currency_code}"


def step_document(step: ApprovalStep) -> Dict[str, Any]:
    doc = step.model_dump()
    doc["status"] = step.status.value
    doc["approver_role"] = step.approver_role.value
    return doc


def serialize_expense(
    expense: Dict[str, Any],
    employee_names: Optional[Dict[str, str]] = None,
    converted_amount: Optional[float] = None
) -> Dict[str, Any]:
    data = dict(expense)
    incurred = data.get("date")
    if isinstance(incurred, datetime):
        data["date"] = incurred.date()
    completed, required = approval_progress(data.get("approval_workflow"))
    data["approvals_completed"] = completed
    data["approvals_required"] = required
    data["employee_name"] = (employee_names or {}).get(data.get("employee_id"))
    data["converted_amount"] = converted_amount
    return data


async def _load_company(company_id: str) -> Dict[str, Any]:
    company = await get_company(company_id)
    if not company:
        raise NotFound("Company not found")
    return company


# Submission
async def submit_expense(current_user: CurrentUser, expense_in: ExpenseCreate) -> Dict[str, Any]:
    # Policy and reporting line are read fresh on every submission
    user = await get_user_by_id(current_user.id)
    if not user:
        raise NotFound("User not found")
    company = await _load_company(user["company_id"])

    manager = None
    if user.get("manager_id"):
        manager = await get_user_by_id(user["manager_id"])
        if manager and manager.get("company_id") != user["company_id"]:
            logger.warning(f"Ignoring manager {manager['id']} of user {user['id']}: belongs to another company")
            manager = None

    admin = await get_company_admin(company["id"])

    plan = build_approval_workflow(expense_in.amount, company, manager=manager, admin=admin)
    logger.debug(
        f"Workflow for {user['id']}: {len(plan.steps)} step(s), status {plan.status.value}, "
        f"auto_approved={plan.auto_approved}"
    )

    expense_doc = {
        "employee_id": user["id"],
        "company_id": company["id"],
        "amount": expense_in.amount,
        "currency": expense_in.currency,
        "category": expense_in.category,
        "description": expense_in.description,
        "date": datetime.combine(expense_in.date, time.min),
        "receipt_url": expense_in.receipt_url,
        "status": plan.status.value,
        "approval_workflow": [step_document(step) for step in plan.steps],
        "version": 0,
    }
    expense_id = await create_expense(expense_doc)
    logger.info(f"Expense {expense_id} submitted by {user['id']}: {format_money(expense_in.amount, expense_in.currency)}, status {plan.status.value}")

    money = format_money(expense_in.amount, expense_in.currency)
    employee_name = user.get("name", "An employee")

    if plan.auto_approved:
        await notify(
            user["id"],
            f"Your expense claim of {money} for {expense_in.category} was automatically approved.",
            NotificationType.EXPENSE_AUTO_APPROVED,
            expense_id
        )
    else:
        if plan.manager_step:
            await notify(
                manager["id"],
                f"{employee_name} submitted an expense claim of {money} for {expense_in.category} that is awaiting your approval.",
                NotificationType.APPROVAL_REQUESTED,
                expense_id
            )
            if admin and admin["id"] != manager["id"]:
                await notify(
                    admin["id"],
                    f"An expense claim of {money} from {employee_name} was routed to {manager.get('name')} for approval.",
                    NotificationType.EXPENSE_ROUTED,
                    expense_id
                )
        if plan.admin_step:
            await notify(
                admin["id"],
                f"Your approval is required for an expense claim of {money} from {employee_name}.",
                NotificationType.APPROVAL_REQUESTED,
                expense_id
            )
        if plan.steps:
            await notify(
                user["id"],
                f"Your expense claim of {money} for {expense_in.category} was submitted for approval.",
                NotificationType.EXPENSE_SUBMITTED,
                expense_id
            )
        else:
            await notify(
                user["id"],
                f"Your expense claim of {money} for {expense_in.category} was approved; no approver was required.",
                NotificationType.EXPENSE_AUTO_APPROVED,
                expense_id
            )

    created = await get_expense(expense_id)
    return serialize_expense(created or {**expense_doc, "id": expense_id}, {user["id"]: user.get("name")})


# Decisions
async def decide_expense(current_user: CurrentUser, expense_id: str, decision: ExpenseDecision) -> Dict[str, Any]:
    if current_user.role not in APPROVER_ROLES:
        raise Forbidden("Not authorized to approve/reject expenses")
    parse_decision(decision.status)

    for attempt in range(1, MAX_DECISION_RETRIES + 1):
        expense = await get_expense(expense_id)
        if not expense:
            raise NotFound("Expense not found")
        if expense.get("company_id") != current_user.company_id:
            raise Forbidden("Not authorized to act on this expense")

        outcome = apply_decision(expense, current_user.id, decision.status, decision.comments)
        written = await update_expense_workflow(
            expense_id,
            expense.get("version", 0),
            [step_document(step) for step in outcome.steps],
            outcome.status.value
        )
        if written:
            break
        logger.warning(f"Concurrent update on expense {expense_id}, retrying decision (attempt {attempt})")
    else:
        raise ConcurrentModification("The expense was modified concurrently, please retry")

    logger.info(
        f"Expense {expense_id}: {current_user.id} {outcome.step.status.value} their step, "
        f"claim status {outcome.status.value}"
    )

    money = format_money(expense.get("amount", 0), expense.get("currency", ""))
    admin = await get_company_admin(current_user.company_id)
    notify_admin = admin is not None and admin["id"] != current_user.id

    if outcome.step.status == ApprovalStatus.REJECTED:
        await notify(
            expense["employee_id"],
            f"Your expense claim of {money} was rejected by {current_user.name}.",
            NotificationType.EXPENSE_REJECTED,
            expense_id
        )
        if notify_admin:
            await notify(
                admin["id"],
                f"An expense claim of {money} was rejected by {current_user.name}.",
                NotificationType.EXPENSE_REJECTED,
                expense_id
            )
    else:
        suffix = " It is now fully approved." if outcome.status == ApprovalStatus.APPROVED else ""
        await notify(
            expense["employee_id"],
            f"Your expense claim of {money} was approved by {current_user.name}.{suffix}",
            NotificationType.EXPENSE_APPROVED,
            expense_id
        )
        if notify_admin:
            await notify(
                admin["id"],
                f"An expense claim of {money} was approved by {current_user.name}.{suffix}",
                NotificationType.EXPENSE_APPROVED,
                expense_id
            )

    updated = await get_expense(expense_id)
    if not updated:
        raise NotFound("Expense not found")
    names = await get_user_names([updated["employee_id"]])
    return serialize_expense(updated, names)


# Reads
async def get_expense_for_user(current_user: CurrentUser, expense_id: str) -> Dict[str, Any]:
    expense = await get_expense(expense_id)
    if not expense:
        raise NotFound("Expense not found")
    if expense.get("company_id") != current_user.company_id:
        raise Forbidden("User not authorized")
    names = await get_user_names([expense["employee_id"]])
    return serialize_expense(expense, names)


def build_visibility_query(current_user: CurrentUser, team_member_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    """Mongo filter for the claims current_user may list."""
    role = current_user.role
    if role == UserRole.ADMIN:
        return {"company_id": current_user.company_id}
    elif role == UserRole.MANAGER:
        return {
            "company_id": current_user.company_id,
            "$or": [
                {"employee_id": {"$in": list(team_member_ids or [])}},
                {"employee_id": current_user.id},
                {"approval_workflow.approver": current_user.id},
            ]
        }
    elif role == UserRole.EMPLOYEE:
        return {"employee_id": current_user.id}
    raise Forbidden(f"Unsupported role: {role}")


async def list_expenses_for_user(current_user: CurrentUser) -> List[Dict[str, Any]]:
    company = await _load_company(current_user.company_id)

    if current_user.role == UserRole.MANAGER:
        team_member_ids = await get_team_member_ids(current_user.id)
        query = build_visibility_query(current_user, team_member_ids)
        expense_ids = await find_expense_ids(query)
        expenses = await get_expenses({"_id": {"$in": expense_ids}})
    else:
        expenses = await get_expenses(build_visibility_query(current_user))
    logger.debug(f"{len(expenses)} expenses visible to {current_user.role.value} {current_user.id}")

    names = await get_user_names(list({e["employee_id"] for e in expenses}))

    if current_user.role not in APPROVER_ROLES:
        return [serialize_expense(e, names) for e in expenses]

    company_currency = company.get("currency", "")
    rates = await currency.get_rates((e.get("currency") for e in expenses), company_currency)
    results = []
    for expense in expenses:
        converted = None
        code = (expense.get("currency") or "").upper()
        if code and code != company_currency.upper():
            converted = currency.convert(expense["amount"], rates.get(code, currency.FALLBACK_RATE))
        results.append(serialize_expense(expense, names, converted))
    return results


async def list_team_expenses(current_user: CurrentUser) -> List[Dict[str, Any]]:
    """Claims submitted by current_user's direct reports."""
    if current_user.role != UserRole.MANAGER:
        raise Forbidden("Access denied. Manager role required.")
    team_member_ids = await get_team_member_ids(current_user.id)
    expenses = await get_expenses({
        "company_id": current_user.company_id,
        "employee_id": {"$in": team_member_ids}
    })
    names = await get_user_names(team_member_ids)
    return [serialize_expense(e, names) for e in expenses]
