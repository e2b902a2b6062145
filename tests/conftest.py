"""
Shared fixtures.

`store` replaces the functions the services import from database.operations
with an in-memory document store, so service code runs against real filters
without a MongoDB server.
"""
import itertools
from datetime import datetime

import pytest

from models.user import CurrentUser, UserRole


def _values(doc, path):
    """Values at a dotted path, descending into arrays like MongoDB does."""
    current = [doc]
    for part in path.split("."):
        found = []
        for item in current:
            if isinstance(item, list):
                found.extend(sub[part] for sub in item if isinstance(sub, dict) and part in sub)
            elif isinstance(item, dict) and part in item:
                found.append(item[part])
        current = found
    flattened = []
    for value in current:
        flattened.extend(value if isinstance(value, list) else [value])
    return flattened


def matches(doc, query):
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        values = _values(doc, key)
        if isinstance(condition, dict) and "$in" in condition:
            if not any(value in condition["$in"] for value in values):
                return False
        elif condition not in values:
            return False
    return True


class FakeStore:
    def __init__(self):
        self.companies = {}
        self.users = {}
        self.expenses = {}
        self.notifications = []
        self.fail_notifications = False
        self.lose_next_writes = 0
        self.write_attempts = 0
        self._ids = itertools.count(1)

    def _new_id(self, prefix):
        return f"{prefix}{next(self._ids)}"

    # Seeding helpers
    def add_company(self, **fields):
        company_id = fields.pop("id", None) or self._new_id("company")
        company = {
            "id": company_id,
            "name": "Acme",
            "currency": "USD",
            "currency_symbol": "$",
            "approval_threshold": 1000,
            "require_manager_approval": True,
            "require_admin_approval": False,
            **fields,
        }
        self.companies[company_id] = company
        return company

    def add_user(self, name, role, company_id, manager_id=None, **fields):
        user_id = fields.pop("id", None) or self._new_id("user")
        user = {
            "id": user_id,
            "_id": user_id,
            "name": name,
            "email": f"{name.lower().replace(' ', '.')}@example.com",
            "role": role.value,
            "company_id": company_id,
            "hashed_password": "hashed",
            "created_at": datetime(2025, 1, next(self._ids) % 28 + 1),
            **fields,
        }
        if manager_id:
            user["manager_id"] = manager_id
        self.users[user_id] = user
        return user

    # database.operations replacements
    async def get_company(self, company_id):
        company = self.companies.get(company_id)
        return dict(company) if company else None

    async def update_company(self, company_id, update_data):
        if company_id not in self.companies:
            return None
        self.companies[company_id].update(update_data)
        return dict(self.companies[company_id])

    async def create_company(self, company_data):
        return self.add_company(**company_data)["id"]

    async def get_user_by_id(self, user_id):
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def get_user_by_email(self, email):
        return next((dict(u) for u in self.users.values() if u["email"] == email), None)

    async def get_users_by_company(self, company_id):
        return [dict(u) for u in self.users.values() if u["company_id"] == company_id]

    async def get_company_admin(self, company_id):
        admins = [u for u in self.users.values() if u["company_id"] == company_id and u["role"] == "admin"]
        admins.sort(key=lambda u: u["created_at"])
        return dict(admins[0]) if admins else None

    async def get_team_member_ids(self, manager_id):
        return [u["id"] for u in self.users.values() if u.get("manager_id") == manager_id]

    async def get_user_names(self, user_ids):
        return {i: self.users[i]["name"] for i in user_ids if i in self.users}

    async def create_user(self, user_data):
        user_id = self._new_id("user")
        self.users[user_id] = {**user_data, "id": user_id, "_id": user_id, "created_at": datetime.utcnow()}
        return user_id

    async def update_user(self, user_id, update_data, unset_fields=None):
        if user_id not in self.users:
            return None
        self.users[user_id].update(update_data)
        for field in unset_fields or []:
            self.users[user_id].pop(field, None)
        return dict(self.users[user_id])

    async def delete_user(self, user_id):
        return self.users.pop(user_id, None) is not None

    async def create_expense(self, expense_data):
        expense_id = self._new_id("expense")
        now = datetime.utcnow()
        self.expenses[expense_id] = {
            **expense_data, "id": expense_id, "_id": expense_id, "created_at": now, "updated_at": now
        }
        return expense_id

    async def get_expense(self, expense_id):
        expense = self.expenses.get(expense_id)
        if not expense:
            return None
        doc = dict(expense)
        doc["approval_workflow"] = [dict(step) for step in expense.get("approval_workflow", [])]
        doc.pop("_id", None)
        return doc

    async def find_expense_ids(self, query):
        return [e["_id"] for e in self.expenses.values() if matches(e, query)]

    async def get_expenses(self, query):
        found = [dict(e) for e in self.expenses.values() if matches(e, query)]
        found.sort(key=lambda e: (e["date"], e["created_at"]), reverse=True)
        for doc in found:
            doc.pop("_id", None)
        return found

    async def update_expense_workflow(self, expense_id, expected_version, approval_workflow, status):
        self.write_attempts += 1
        expense = self.expenses.get(expense_id)
        if not expense:
            return False
        if self.lose_next_writes:
            # Simulate another writer committing first
            self.lose_next_writes -= 1
            expense["version"] = expense.get("version", 0) + 1
            return False
        if expense.get("version", 0) != expected_version:
            return False
        expense["approval_workflow"] = approval_workflow
        expense["status"] = status
        expense["version"] = expected_version + 1
        return True

    async def create_notification(self, notification_data):
        if self.fail_notifications:
            raise RuntimeError("notification store down")
        self.notifications.append(notification_data)
        return f"n{len(self.notifications)}"

    def notifications_for(self, user_id):
        return [n["message"] for n in self.notifications if n["user_id"] == user_id]


PATCHED = {
    "services.expense_service": [
        "create_expense", "find_expense_ids", "get_company", "get_company_admin", "get_expense",
        "get_expenses", "get_team_member_ids", "get_user_by_id", "get_user_names", "update_expense_workflow",
    ],
    "services.notifier": ["create_notification"],
    "services.user_service": [
        "create_user", "delete_user", "get_user_by_email", "get_user_by_id", "get_users_by_company", "update_user",
    ],
    "services.company_service": ["get_company", "update_company", "create_company"],
}


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for module, names in PATCHED.items():
        for name in names:
            monkeypatch.setattr(f"{module}.{name}", getattr(fake, name))
    return fake


@pytest.fixture
def company(store):
    return store.add_company(id="acme")


@pytest.fixture
def admin(store, company):
    return store.add_user("Alice Admin", UserRole.ADMIN, company["id"], id="admin")


@pytest.fixture
def manager(store, company, admin):
    return store.add_user("Mark Manager", UserRole.MANAGER, company["id"], manager_id=admin["id"], id="manager")


@pytest.fixture
def employee(store, company, manager):
    return store.add_user("Erin Employee", UserRole.EMPLOYEE, company["id"], manager_id=manager["id"], id="employee")


def current_user_for(user):
    return CurrentUser(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        role=UserRole(user["role"]),
        company_id=user["company_id"],
        manager_id=user.get("manager_id"),
    )


@pytest.fixture
def as_user():
    return current_user_for
