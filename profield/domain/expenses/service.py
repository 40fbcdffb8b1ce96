"""Expense service - categories, expense entry and the review workflow"""

import logging
from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_dispatch import Job
from ...models_expense import Expense, ExpenseCategory
from ...permissions import has_permission
from ...services.events import publish_to_user
from ...services.notification_service import NotificationService
from ...shared.money import quantize
from .repository import ExpenseRepository
from .schemas import (
    EXPENSE_STATUSES,
    CategoryCreate,
    CategoryTotal,
    CategoryUpdate,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseSummary,
    ExpenseUpdate,
)

logger = logging.getLogger(__name__)


def to_expense_response(expense: Expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=expense.id,
        organization_id=expense.organization_id,
        user_id=expense.user_id,
        category_id=expense.category_id,
        category_name=expense.category.name if expense.category else None,
        job_id=expense.job_id,
        amount=expense.amount,
        currency=expense.currency,
        vendor=expense.vendor,
        description=expense.description,
        expense_date=expense.expense_date,
        receipt_url=expense.receipt_url,
        status=expense.status,
        review_notes=expense.review_notes,
        reviewed_by=expense.reviewed_by,
        reviewed_at=expense.reviewed_at,
        created_at=expense.created_at,
    )


def day_bounds(start_date: Optional[date], end_date: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive date range as datetimes covering whole days"""
    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date, time.max) if end_date else None
    return start, end


class ExpenseService:
    """Service layer for expense business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ExpenseRepository()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def get_categories(self, user: User, include_inactive: bool = False) -> list[ExpenseCategory]:
        return self.repo.get_categories(self.db, user.organization_id, include_inactive)

    def _get_category(self, category_id: int, user: User) -> ExpenseCategory:
        category = self.repo.get_category(self.db, category_id, user.organization_id)
        if not category:
            raise HTTPException(status_code=404, detail="Expense category not found")
        return category

    def create_category(self, data: CategoryCreate, user: User) -> ExpenseCategory:
        if self.repo.category_name_exists(self.db, user.organization_id, data.name):
            raise HTTPException(status_code=409, detail=f"Category '{data.name}' already exists")
        category = self.repo.create_category(self.db, user.organization_id, **data.model_dump())
        logger.info(f"🏷️ Expense category {category.id} '{category.name}' created")
        return category

    def update_category(self, category_id: int, data: CategoryUpdate, user: User) -> ExpenseCategory:
        category = self._get_category(category_id, user)
        updates = data.model_dump(exclude_unset=True)
        for key in ("name", "is_active"):
            if updates.get(key) is None:
                updates.pop(key, None)

        if "name" in updates:
            updates["name"] = updates["name"].strip()
            if self.repo.category_name_exists(self.db, user.organization_id, updates["name"], category.id):
                raise HTTPException(status_code=409, detail=f"Category '{updates['name']}' already exists")
        return self.repo.update(self.db, category, **updates)

    def delete_category(self, category_id: int, user: User) -> dict:
        """Categories with expenses are deactivated so history keeps its labels"""
        category = self._get_category(category_id, user)
        if self.repo.category_in_use(self.db, category.id):
            self.repo.update(self.db, category, is_active=False)
            logger.info(f"🏷️ Expense category {category_id} in use - deactivated")
            return {"message": "Category has expenses and was deactivated", "deactivated": True}

        self.repo.delete(self.db, category)
        return {"message": "Category deleted", "deactivated": False}

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def _check_references(self, user: User, category_id: Optional[int], job_id: Optional[int]) -> None:
        if category_id is not None:
            category = self._get_category(category_id, user)
            if not category.is_active:
                raise HTTPException(status_code=400, detail="Expense category is inactive")
        if job_id is not None:
            job = self.db.query(Job.id).filter(Job.id == job_id, Job.organization_id == user.organization_id).first()
            if not job:
                raise HTTPException(status_code=404, detail="Job not found")

    def get_expenses(
        self,
        user: User,
        status: Optional[str] = None,
        category_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        mine: bool = False,
    ) -> list[Expense]:
        """Approvers see the whole organization unless they ask for their own"""
        if status and status != "all" and status not in EXPENSE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
        owner = user.id if mine or not has_permission(user, "expenses.approve") else None
        start, end = day_bounds(start_date, end_date)
        return self.repo.search_expenses(self.db, user.organization_id, owner, status, category_id, start, end)

    def get_expense(self, expense_id: int, user: User) -> Expense:
        expense = self.repo.get_expense(self.db, expense_id, user.organization_id)
        if not expense or (expense.user_id != user.id and not has_permission(user, "expenses.approve")):
            raise HTTPException(status_code=404, detail="Expense not found")
        return expense

    def _check_can_modify(self, expense: Expense, user: User) -> None:
        if has_permission(user, "expenses.approve"):
            return
        if expense.user_id != user.id:
            raise HTTPException(status_code=403, detail="You can only modify your own expenses")
        if expense.status != "pending":
            raise HTTPException(status_code=400, detail="Only pending expenses can be modified")

    def create_expense(self, data: ExpenseCreate, user: User) -> Expense:
        self._check_references(user, data.category_id, data.job_id)
        values = data.model_dump()
        values["expense_date"] = values["expense_date"] or datetime.utcnow()
        expense = self.repo.create_expense(
            self.db, organization_id=user.organization_id, user_id=user.id, status="pending", **values
        )
        logger.info(f"💸 Expense {expense.id} ({expense.amount} {expense.currency}) logged by user {user.id}")
        return expense

    def update_expense(self, expense_id: int, data: ExpenseUpdate, user: User) -> Expense:
        expense = self.get_expense(expense_id, user)
        self._check_can_modify(expense, user)

        updates = data.model_dump(exclude_unset=True)
        for key in ("amount", "expense_date"):
            if updates.get(key) is None:
                updates.pop(key, None)
        self._check_references(user, updates.get("category_id"), updates.get("job_id"))
        return self.repo.update(self.db, expense, **updates)

    def delete_expense(self, expense_id: int, user: User) -> None:
        expense = self.get_expense(expense_id, user)
        self._check_can_modify(expense, user)
        self.repo.delete(self.db, expense)
        logger.info(f"🗑️ Expense {expense_id} deleted by user {user.id}")

    async def _review(self, expense_id: int, user: User, allowed_from: str, new_status: str, notes: Optional[str]) -> Expense:
        expense = self.get_expense(expense_id, user)
        if expense.status != allowed_from:
            raise HTTPException(
                status_code=400,
                detail=f"Only {allowed_from} expenses can be marked {new_status}",
            )

        updates = {"status": new_status, "reviewed_by": user.id, "reviewed_at": datetime.utcnow()}
        if notes:
            updates["review_notes"] = notes
        expense = self.repo.update(self.db, expense, **updates)
        logger.info(f"🧾 Expense {expense.id} {new_status} by user {user.id}")

        payload = to_expense_response(expense).model_dump(mode="json")
        await publish_to_user(expense.user_id, expense.organization_id, "expense_reviewed", payload)

        owner = self.db.query(User).filter(User.id == expense.user_id).first()
        if owner and owner.id != user.id:
            message = f"Your expense of {expense.amount} {expense.currency} was {new_status}"
            if notes:
                message = f"{message}: {notes}"
            await NotificationService(self.db).notify(
                owner,
                type="expense_reviewed",
                title=f"Expense {new_status}",
                message=message,
                related_entity_type="expense",
                related_entity_id=expense.id,
                created_by=user.id,
            )
        return expense

    async def approve_expense(self, expense_id: int, user: User, notes: Optional[str] = None) -> Expense:
        return await self._review(expense_id, user, "pending", "approved", notes)

    async def reject_expense(self, expense_id: int, user: User, reason: Optional[str] = None) -> Expense:
        return await self._review(expense_id, user, "pending", "rejected", reason)

    async def reimburse_expense(self, expense_id: int, user: User) -> Expense:
        return await self._review(expense_id, user, "approved", "reimbursed", None)

    def get_summary(self, user: User, start_date: Optional[date] = None, end_date: Optional[date] = None) -> ExpenseSummary:
        expenses = self.get_expenses(user, start_date=start_date, end_date=end_date)

        by_category: dict[Optional[int], dict] = {}
        by_status: dict[str, Decimal] = defaultdict(Decimal)
        total = Decimal("0")
        for expense in expenses:
            amount = quantize(expense.amount)
            total += amount
            by_status[expense.status] += amount
            bucket = by_category.setdefault(
                expense.category_id,
                {
                    "category_id": expense.category_id,
                    "category_name": expense.category.name if expense.category else "Uncategorized",
                    "total": Decimal("0"),
                    "count": 0,
                },
            )
            bucket["total"] += amount
            bucket["count"] += 1

        categories = sorted(by_category.values(), key=lambda b: b["total"], reverse=True)
        return ExpenseSummary(
            total_amount=float(total),
            expense_count=len(expenses),
            by_category=[CategoryTotal(**{**b, "total": float(b["total"])}) for b in categories],
            by_status={status: float(by_status.get(status, 0)) for status in EXPENSE_STATUSES},
        )
