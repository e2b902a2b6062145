import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models.expense import ExpenseCreate, ExpenseDecision
from models.user import UserRole
from services import expense_service
from services.errors import ConcurrentModification, Forbidden, InvalidState, NotFound, UpstreamUnavailable


def run(coro):
    return asyncio.run(coro)


def claim(amount, currency="USD", category="Travel", incurred=date(2025, 2, 1)):
    return ExpenseCreate(amount=amount, currency=currency, category=category, description="Trip", date=incurred)


def approve(comments=None):
    return ExpenseDecision(status="approved", comments=comments)


def reject(comments=None):
    return ExpenseDecision(status="rejected", comments=comments)


@pytest.fixture
def both_approvals(store, company):
    store.companies[company["id"]]["require_admin_approval"] = True


class TestSubmitExpense:
    def test_below_threshold_is_auto_approved(self, store, employee, manager, as_user):
        expense = run(expense_service.submit_expense(as_user(employee), claim(250)))

        assert expense["status"] == "approved"
        assert expense["approval_workflow"] == []
        assert expense["employee_name"] == "Erin Employee"
        assert expense["date"] == date(2025, 2, 1)
        assert store.notifications_for(manager["id"]) == []
        assert store.notifications_for(employee["id"]) == [
            "Your expense claim of 250.00 USD for Travel was automatically approved."
        ]

    def test_above_threshold_routes_to_manager(self, store, employee, manager, admin, as_user):
        expense = run(expense_service.submit_expense(as_user(employee), claim(1500)))

        assert expense["status"] == "pending"
        assert [s["approver"] for s in expense["approval_workflow"]] == ["manager"]
        assert expense["approvals_completed"] == 0
        assert expense["approvals_required"] == 1
        assert store.expenses[expense["id"]]["version"] == 0

        assert "awaiting your approval" in store.notifications_for(manager["id"])[0]
        assert "was routed to Mark Manager" in store.notifications_for(admin["id"])[0]
        assert "submitted for approval" in store.notifications_for(employee["id"])[0]

    def test_both_approvals_notify_admin_for_approval(self, store, both_approvals, employee, admin, as_user):
        expense = run(expense_service.submit_expense(as_user(employee), claim(1500)))

        assert [s["approver"] for s in expense["approval_workflow"]] == ["manager", "admin"]
        admin_messages = store.notifications_for(admin["id"])
        assert any("Your approval is required" in m for m in admin_messages)

    def test_manager_from_other_company_is_ignored(self, store, company, admin, as_user):
        other = store.add_company(id="other")
        outsider = store.add_user("Olga Outsider", UserRole.MANAGER, other["id"], id="outsider")
        employee = store.add_user("Ed", UserRole.EMPLOYEE, company["id"], manager_id=outsider["id"])

        expense = run(expense_service.submit_expense(as_user(employee), claim(1500)))

        assert expense["approval_workflow"] == []
        assert expense["status"] == "approved"
        assert store.notifications_for(outsider["id"]) == []

    def test_without_any_approver_claim_is_approved(self, store, company, as_user):
        loner = store.add_user("Lone Wolf", UserRole.EMPLOYEE, company["id"])

        expense = run(expense_service.submit_expense(as_user(loner), claim(5000)))

        assert expense["status"] == "approved"
        assert "no approver was required" in store.notifications_for(loner["id"])[0]

    def test_notification_failure_does_not_fail_submission(self, store, employee, as_user):
        store.fail_notifications = True

        expense = run(expense_service.submit_expense(as_user(employee), claim(1500)))

        assert expense["status"] == "pending"
        assert expense["id"] in store.expenses

    def test_policy_is_read_at_submission_time(self, store, company, employee, as_user):
        store.companies[company["id"]]["approval_threshold"] = 2000

        expense = run(expense_service.submit_expense(as_user(employee), claim(1500)))

        assert expense["status"] == "approved"

    def test_unknown_user(self, store, company, as_user):
        ghost = store.add_user("Ghost", UserRole.EMPLOYEE, company["id"])
        del store.users[ghost["id"]]

        with pytest.raises(NotFound):
            run(expense_service.submit_expense(as_user(ghost), claim(10)))


class TestDecideExpense:
    def submit(self, as_user, employee, amount=1500):
        return run(expense_service.submit_expense(as_user(employee), claim(amount)))

    def test_manager_approval_completes_single_step(self, store, employee, manager, admin, as_user):
        expense = self.submit(as_user, employee)
        store.notifications.clear()

        decided = run(expense_service.decide_expense(as_user(manager), expense["id"], approve("ok")))

        assert decided["status"] == "approved"
        assert decided["approval_workflow"][0]["comments"] == "ok"
        assert decided["approvals_completed"] == 1
        assert store.expenses[expense["id"]]["version"] == 1
        assert store.notifications_for(employee["id"]) == [
            "Your expense claim of 1,500.00 USD was approved by Mark Manager. It is now fully approved."
        ]
        assert len(store.notifications_for(admin["id"])) == 1

    def test_partial_approval_stays_pending(self, store, both_approvals, employee, manager, as_user):
        expense = self.submit(as_user, employee)

        decided = run(expense_service.decide_expense(as_user(manager), expense["id"], approve()))

        assert decided["status"] == "pending"
        assert (decided["approvals_completed"], decided["approvals_required"]) == (1, 2)
        assert store.notifications_for(employee["id"])[-1].endswith("approved by Mark Manager.")

    def test_rejection_then_admin_approval_stays_rejected(self, store, both_approvals, employee, manager, admin, as_user):
        expense = self.submit(as_user, employee)

        run(expense_service.decide_expense(as_user(manager), expense["id"], reject("No receipt")))
        decided = run(expense_service.decide_expense(as_user(admin), expense["id"], approve()))

        assert decided["status"] == "rejected"

    def test_admin_acting_is_not_notified_twice(self, store, both_approvals, employee, admin, as_user):
        expense = self.submit(as_user, employee)
        store.notifications.clear()

        run(expense_service.decide_expense(as_user(admin), expense["id"], approve()))

        assert store.notifications_for(admin["id"]) == []

    def test_double_vote_is_refused(self, store, both_approvals, employee, manager, as_user):
        expense = self.submit(as_user, employee)
        run(expense_service.decide_expense(as_user(manager), expense["id"], approve()))

        with pytest.raises(InvalidState):
            run(expense_service.decide_expense(as_user(manager), expense["id"], reject()))

    def test_employee_cannot_decide(self, store, employee, as_user):
        expense = self.submit(as_user, employee)
        with pytest.raises(Forbidden):
            run(expense_service.decide_expense(as_user(employee), expense["id"], approve()))

    def test_invalid_verdict(self, store, employee, manager, as_user):
        expense = self.submit(as_user, employee)
        with pytest.raises(InvalidState):
            run(expense_service.decide_expense(as_user(manager), expense["id"], ExpenseDecision(status="pending")))
        assert store.write_attempts == 0

    def test_unknown_expense(self, store, manager, as_user):
        with pytest.raises(NotFound):
            run(expense_service.decide_expense(as_user(manager), "missing", approve()))

    def test_other_company_is_forbidden(self, store, employee, as_user):
        expense = self.submit(as_user, employee)
        other = store.add_company(id="other")
        stranger = store.add_user("Sam Stranger", UserRole.ADMIN, other["id"])

        with pytest.raises(Forbidden):
            run(expense_service.decide_expense(as_user(stranger), expense["id"], approve()))

    def test_lost_write_is_retried(self, store, employee, manager, as_user):
        expense = self.submit(as_user, employee)
        store.lose_next_writes = 1

        decided = run(expense_service.decide_expense(as_user(manager), expense["id"], approve()))

        assert decided["status"] == "approved"
        assert store.write_attempts == 2

    def test_retries_are_bounded(self, store, employee, manager, as_user):
        expense = self.submit(as_user, employee)
        store.lose_next_writes = 100

        with patch.object(expense_service, "MAX_DECISION_RETRIES", 3):
            with pytest.raises(ConcurrentModification):
                run(expense_service.decide_expense(as_user(manager), expense["id"], approve()))

        assert store.write_attempts == 3
        assert store.expenses[expense["id"]]["status"] == "pending"

    def test_concurrent_vote_by_same_approver_is_refused_on_retry(self, store, employee, manager, as_user):
        expense = self.submit(as_user, employee)
        raced = []

        async def racing_write(expense_id, expected_version, steps, status):
            if not raced:
                # Another request by the same approver commits first
                raced.append(expense_id)
                doc = store.expenses[expense_id]
                doc["approval_workflow"][0]["status"] = "rejected"
                doc["status"] = "rejected"
                doc["version"] += 1
            return await store.update_expense_workflow(expense_id, expected_version, steps, status)

        with patch.object(expense_service, "update_expense_workflow", racing_write):
            with pytest.raises(InvalidState):
                run(expense_service.decide_expense(as_user(manager), expense["id"], approve()))

        assert store.expenses[expense["id"]]["status"] == "rejected"


class TestVisibility:
    @pytest.fixture
    def claims(self, store, company, admin, manager, employee, as_user):
        other_employee = store.add_user("Olly", UserRole.EMPLOYEE, company["id"], manager_id=admin["id"])
        own = run(expense_service.submit_expense(as_user(employee), claim(1500)))
        managers_own = run(expense_service.submit_expense(as_user(manager), claim(80)))
        unrelated = run(expense_service.submit_expense(as_user(other_employee), claim(90)))
        foreign_company = store.add_company(id="other")
        outsider = store.add_user("Xavier", UserRole.EMPLOYEE, foreign_company["id"])
        foreign = run(expense_service.submit_expense(as_user(outsider), claim(50)))
        return {"own": own, "managers_own": managers_own, "unrelated": unrelated, "foreign": foreign}

    @staticmethod
    def ids(expenses):
        return {e["id"] for e in expenses}

    def test_employee_sees_only_own(self, claims, employee, as_user):
        listed = run(expense_service.list_expenses_for_user(as_user(employee)))
        assert self.ids(listed) == {claims["own"]["id"]}

    def test_manager_sees_team_own_and_assigned(self, claims, manager, as_user):
        listed = run(expense_service.list_expenses_for_user(as_user(manager)))
        assert self.ids(listed) == {claims["own"]["id"], claims["managers_own"]["id"]}

    def test_manager_sees_claims_assigned_outside_team(self, store, claims, manager, as_user):
        store.expenses[claims["unrelated"]["id"]]["approval_workflow"] = [
            {"id": "s1", "approver": manager["id"], "approver_name": "Mark Manager",
             "approver_role": "manager", "status": "pending"}
        ]
        listed = run(expense_service.list_expenses_for_user(as_user(manager)))
        assert claims["unrelated"]["id"] in self.ids(listed)

    def test_admin_sees_whole_company(self, claims, admin, as_user):
        listed = run(expense_service.list_expenses_for_user(as_user(admin)))
        assert self.ids(listed) == {claims["own"]["id"], claims["managers_own"]["id"], claims["unrelated"]["id"]}

    def test_listing_is_newest_first(self, store, company, employee, as_user):
        for day in (3, 9, 1):
            run(expense_service.submit_expense(as_user(employee), claim(10, incurred=date(2025, 1, day))))
        listed = run(expense_service.list_expenses_for_user(as_user(employee)))
        assert [e["date"] for e in listed] == [date(2025, 1, 9), date(2025, 1, 3), date(2025, 1, 1)]

    def test_team_listing_is_direct_reports_only(self, claims, manager, as_user):
        listed = run(expense_service.list_team_expenses(as_user(manager)))
        assert self.ids(listed) == {claims["own"]["id"]}
        assert listed[0]["employee_name"] == "Erin Employee"

    def test_team_listing_requires_manager(self, claims, admin, as_user):
        with pytest.raises(Forbidden):
            run(expense_service.list_team_expenses(as_user(admin)))

    def test_get_by_id_within_company(self, claims, admin, as_user):
        found = run(expense_service.get_expense_for_user(as_user(admin), claims["own"]["id"]))
        assert found["employee_name"] == "Erin Employee"

    def test_get_by_id_other_company(self, claims, admin, as_user):
        with pytest.raises(Forbidden):
            run(expense_service.get_expense_for_user(as_user(admin), claims["foreign"]["id"]))

    def test_get_by_id_missing(self, claims, admin, as_user):
        with pytest.raises(NotFound):
            run(expense_service.get_expense_for_user(as_user(admin), "missing"))

    def test_visibility_query_per_role(self, admin, manager, employee, as_user):
        assert expense_service.build_visibility_query(as_user(admin)) == {"company_id": "acme"}
        assert expense_service.build_visibility_query(as_user(employee)) == {"employee_id": "employee"}
        query = expense_service.build_visibility_query(as_user(manager), ["employee"])
        assert query["company_id"] == "acme"
        assert {"approval_workflow.approver": "manager"} in query["$or"]


class TestConversion:
    def test_one_lookup_per_foreign_currency(self, store, company, admin, employee, as_user):
        for amount, code in ((100, "EUR"), (200, "EUR"), (300, "GBP"), (400, "USD")):
            run(expense_service.submit_expense(as_user(employee), claim(amount, currency=code)))

        rate_lookup = AsyncMock(side_effect=lambda source, target: {"EUR": 1.1, "GBP": 1.25}[source])
        with patch("services.currency.get_rate_or_fallback", rate_lookup):
            listed = run(expense_service.list_expenses_for_user(as_user(admin)))

        assert rate_lookup.await_count == 2
        converted = {(e["amount"], e["currency"]): e["converted_amount"] for e in listed}
        assert converted == {(100, "EUR"): 110.0, (200, "EUR"): 220.0, (300, "GBP"): 375.0, (400, "USD"): None}

    def test_unavailable_rate_falls_back_to_one(self, store, company, admin, employee, as_user):
        run(expense_service.submit_expense(as_user(employee), claim(120, currency="EUR")))

        with patch("services.currency.fetch_rate", side_effect=UpstreamUnavailable("down")):
            listed = run(expense_service.list_expenses_for_user(as_user(admin)))

        assert listed[0]["converted_amount"] == 120.0

    def test_malformed_rate_response_does_not_fail_listing(self, store, company, admin, employee, as_user):
        run(expense_service.submit_expense(as_user(employee), claim(80, currency="EUR")))
        response = MagicMock()
        response.json.return_value = {"rates": {"USD": "n/a"}}

        with patch("services.currency.requests.get", return_value=response):
            listed = run(expense_service.list_expenses_for_user(as_user(admin)))

        assert listed[0]["converted_amount"] == 80.0

    def test_employee_listing_is_not_converted(self, store, company, employee, as_user):
        run(expense_service.submit_expense(as_user(employee), claim(120, currency="EUR")))

        with patch("services.currency.get_rates", AsyncMock()) as get_rates:
            listed = run(expense_service.list_expenses_for_user(as_user(employee)))

        get_rates.assert_not_awaited()
        assert listed[0]["converted_amount"] is None
