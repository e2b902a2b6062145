"""
Approval workflow engine.

Pure functions over plain documents: no database access and no notifications.
The expense service feeds them the company policy, the people involved and the
stored claim, and persists whatever they return.

A claim's status is derived from its steps:

- any rejected step makes the claim ``rejected`` for good,
- the claim is ``approved`` once every step is approved,
- otherwise it stays ``pending``.

Approvers act independently; the manager-then-admin order of the steps is
presentation order only.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pydantic import BaseModel

from models.expense import ApprovalStatus, ApprovalStep
from models.user import UserRole
from services.errors import InvalidState

DEFAULT_APPROVAL_THRESHOLD = 1000


class WorkflowPlan(BaseModel):
    steps: List[ApprovalStep]
    status: ApprovalStatus
    auto_approved: bool = False
    manager_step: Optional[ApprovalStep] = None
    admin_step: Optional[ApprovalStep] = None


class DecisionOutcome(BaseModel):
    steps: List[ApprovalStep]
    status: ApprovalStatus
    step: ApprovalStep


def snapshot_step(approver: Dict[str, Any]) -> ApprovalStep:
    """Pending step for approver, with their current name and role copied in."""
    return ApprovalStep(
        id=str(ObjectId()),
        approver=approver["id"],
        approver_name=approver.get("name") or approver.get("email", ""),
        approver_role=UserRole(approver["role"]),
        status=ApprovalStatus.PENDING,
    )


def build_approval_workflow(
    amount: float,
    company: Dict[str, Any],
    manager: Optional[Dict[str, Any]] = None,
    admin: Optional[Dict[str, Any]] = None,
) -> WorkflowPlan:
    """
    Build the approval steps for a newly submitted claim.

    Args:
        amount: Claimed amount, in the claim's own currency.
        company: Company document holding the approval policy.
        manager: The submitter's manager, if one is assigned and resolvable.
        admin: The company admin, if the company has one.

    Returns:
        WorkflowPlan with the ordered steps and the initial status.
    """
    threshold = company.get("approval_threshold", DEFAULT_APPROVAL_THRESHOLD)

    if amount <= threshold:
        return WorkflowPlan(steps=[], status=ApprovalStatus.APPROVED, auto_approved=True)

    steps: List[ApprovalStep] = []
    manager_step = None
    admin_step = None

    if company.get("require_manager_approval", True) and manager:
        manager_step = snapshot_step(manager)
        steps.append(manager_step)

    if company.get("require_admin_approval", False) and amount > threshold and admin:
        if not any(step.approver == admin["id"] for step in steps):
            admin_step = snapshot_step(admin)
            steps.append(admin_step)

    status = ApprovalStatus.PENDING if steps else ApprovalStatus.APPROVED
    return WorkflowPlan(steps=steps, status=status, manager_step=manager_step, admin_step=admin_step)


def parse_decision(decision: Any) -> ApprovalStatus:
    try:
        value = ApprovalStatus(decision)
    except ValueError:
        raise InvalidState("Invalid status provided, expected 'approved' or 'rejected'")
    if value is ApprovalStatus.PENDING:
        raise InvalidState("Invalid status provided, expected 'approved' or 'rejected'")
    return value


def load_steps(raw_steps: Iterable[Dict[str, Any]]) -> List[ApprovalStep]:
    return [ApprovalStep(**step) for step in raw_steps or []]


def derive_status(steps: List[ApprovalStep], current: ApprovalStatus = ApprovalStatus.PENDING) -> ApprovalStatus:
    if current == ApprovalStatus.REJECTED:
        return ApprovalStatus.REJECTED
    if any(step.status == ApprovalStatus.REJECTED for step in steps):
        return ApprovalStatus.REJECTED
    if all(step.status == ApprovalStatus.APPROVED for step in steps):
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


def apply_decision(
    expense: Dict[str, Any],
    approver_id: str,
    decision: Any,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionOutcome:
    """
    Record approver_id's decision on their pending step of expense.

    Raises:
        InvalidState: decision is not approved/rejected, or approver_id has no
            pending step on this claim (never attached, or already acted).
    """
    verdict = parse_decision(decision)
    steps = load_steps(expense.get("approval_workflow"))

    step = next(
        (s for s in steps if s.approver == approver_id and s.status == ApprovalStatus.PENDING),
        None,
    )
    if step is None:
        raise InvalidState("No pending approval step found for this user, or you have already acted on it")

    step.status = verdict
    step.comments = comments
    step.timestamp = now or datetime.utcnow()

    current = ApprovalStatus(expense.get("status", ApprovalStatus.PENDING.value))
    return DecisionOutcome(steps=steps, status=derive_status(steps, current), step=step)


def approval_progress(steps: Iterable[Any]) -> Tuple[int, int]:
    """(approved steps, total steps) for stored or loaded steps."""
    completed = 0
    total = 0
    for step in steps or []:
        total += 1
        value = step.get("status") if isinstance(step, dict) else step.status
        if value == ApprovalStatus.APPROVED:
            completed += 1
    return completed, total
