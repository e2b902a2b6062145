#!/usr/bin/env python3
"""
Demo Data Generator Script for the Expense Management System

This script populates the MongoDB database with a demonstration company:
one admin, a couple of managers, their teams, and a spread of expense claims
pushed through the real approval workflow.
"""

import asyncio
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path so we can import from the main application
sys.path.append(str(Path(__file__).parent.parent))

from database.db import init_db
from database.operations import create_user, get_user_by_email, get_user_by_id
from models.company import CompanyUpdate
from models.expense import EXPENSE_CATEGORIES, ExpenseCreate, ExpenseDecision
from models.user import CurrentUser, UserRole
from routers.auth import get_password_hash
from services.company_service import register_company, update_company_policy
from services.errors import ExpenseAppError
from services.expense_service import decide_expense, submit_expense
from logging_config import logger

# Configuration
COMPANY_NAME = "Demo Holdings"
COMPANY_CURRENCY = "USD"
NUM_MANAGERS = 2
NUM_EMPLOYEES_PER_MANAGER = 3
NUM_EXPENSES_PER_EMPLOYEE = 4
DEMO_PASSWORD = "password123"

# Demo data
NAMES = {
    "first": ["James", "Mary", "John", "Patricia", "Robert", "Jennifer", "Michael", "Linda", "William", "Elizabeth",
              "David", "Barbara", "Richard", "Susan", "Joseph", "Jessica", "Thomas", "Sarah", "Charles", "Karen"],
    "last": ["Smith", "Johnson", "Williams", "Jones", "Brown", "Davis", "Miller", "Wilson", "Moore", "Taylor",
             "Anderson", "Thomas", "Jackson", "White", "Harris", "Martin", "Thompson", "Garcia", "Martinez", "Robinson"]
}

DESCRIPTIONS = {
    "Travel": ["Flight to client site", "Train tickets", "Taxi from airport"],
    "Meals & Entertainment": ["Team lunch", "Client dinner"],
    "Office Supplies": ["Printer paper and toner", "Notebooks"],
    "Software & Subscriptions": ["Design tool license", "Cloud storage plan"],
    "Marketing": ["Conference booth", "Printed flyers"],
    "Training & Development": ["Online course", "Workshop fee"],
    "Equipment": ["Laptop stand", "External monitor"],
    "Other": ["Courier fees"],
}

FOREIGN_CURRENCIES = ["EUR", "GBP", "INR"]


def random_name():
    return f"{random.choice(NAMES['first'])} {random.choice(NAMES['last'])}"


async def create_demo_user(name, email, role, company_id, manager_id=None):
    existing = await get_user_by_email(email)
    if existing:
        logger.info(f"User {email} already exists, reusing it")
        return existing
    user_doc = {
        "name": name,
        "email": email,
        "role": role.value,
        "company_id": company_id,
        "hashed_password": get_password_hash(DEMO_PASSWORD),
    }
    if manager_id:
        user_doc["manager_id"] = manager_id
    user_id = await create_user(user_doc)
    return await get_user_by_id(user_id)


def as_current_user(user):
    return CurrentUser(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        role=UserRole(user["role"]),
        company_id=user["company_id"],
        manager_id=user.get("manager_id"),
    )


async def generate_demo_data():
    await init_db()

    company = await register_company(COMPANY_NAME, COMPANY_CURRENCY)
    admin = await create_demo_user("Ada Admin", "admin@demo.example.com", UserRole.ADMIN, company["id"])
    admin_ctx = as_current_user(admin)

    await update_company_policy(admin_ctx, CompanyUpdate(
        approval_threshold=200,
        require_manager_approval=True,
        require_admin_approval=True,
    ))

    managers = []
    employees = []
    for m in range(NUM_MANAGERS):
        manager = await create_demo_user(
            random_name(), f"manager{m + 1}@demo.example.com", UserRole.MANAGER, company["id"], admin["id"]
        )
        managers.append(manager)
        for e in range(NUM_EMPLOYEES_PER_MANAGER):
            employee = await create_demo_user(
                random_name(), f"employee{m + 1}{e + 1}@demo.example.com", UserRole.EMPLOYEE, company["id"], manager["id"]
            )
            employees.append(employee)

    submitted = []
    for employee in employees:
        for _ in range(NUM_EXPENSES_PER_EMPLOYEE):
            category = random.choice(EXPENSE_CATEGORIES)
            claim = ExpenseCreate(
                amount=round(random.uniform(20, 2500), 2),
                currency=random.choice([COMPANY_CURRENCY] * 3 + FOREIGN_CURRENCIES),
                category=category,
                description=random.choice(DESCRIPTIONS[category]),
                date=date.today() - timedelta(days=random.randint(0, 60)),
            )
            submitted.append(await submit_expense(as_current_user(employee), claim))

    # Let approvers act on roughly half of the pending claims
    approvers = {user["id"]: as_current_user(user) for user in managers + [admin]}
    for expense in submitted:
        if expense["status"] != "pending" or random.random() < 0.5:
            continue
        for step in expense["approval_workflow"]:
            decision = ExpenseDecision(
                status=random.choice(["approved", "approved", "approved", "rejected"]),
                comments="Reviewed in demo run",
            )
            try:
                await decide_expense(approvers[step["approver"]], expense["id"], decision)
            except ExpenseAppError as e:
                logger.warning(f"Demo decision skipped: {e.message}")

    print(f"Company: {company['name']} ({company['id']})")
    print(f"Admin login: admin@demo.example.com / {DEMO_PASSWORD}")
    print(f"Managers: {len(managers)}, employees: {len(employees)}, claims: {len(submitted)}")


if __name__ == "__main__":
    asyncio.run(generate_demo_data())
