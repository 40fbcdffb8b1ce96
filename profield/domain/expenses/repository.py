"""Expense repository - Database operations for expenses and categories"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models_expense import Expense, ExpenseCategory


class ExpenseRepository:
    """Repository for expense database operations"""

    # Categories

    @staticmethod
    def get_categories(db: Session, organization_id: int, include_inactive: bool = False) -> list[ExpenseCategory]:
        query = db.query(ExpenseCategory).filter(ExpenseCategory.organization_id == organization_id)
        if not include_inactive:
            query = query.filter(ExpenseCategory.is_active.is_(True))
        return query.order_by(ExpenseCategory.name).all()

    @staticmethod
    def get_category(db: Session, category_id: int, organization_id: int) -> Optional[ExpenseCategory]:
        return (
            db.query(ExpenseCategory)
            .filter(ExpenseCategory.id == category_id, ExpenseCategory.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def category_name_exists(db: Session, organization_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(ExpenseCategory.id).filter(
            ExpenseCategory.organization_id == organization_id,
            func.lower(ExpenseCategory.name) == name.lower(),
        )
        if exclude_id:
            query = query.filter(ExpenseCategory.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def create_category(db: Session, organization_id: int, **data) -> ExpenseCategory:
        category = ExpenseCategory(organization_id=organization_id, **data)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    @staticmethod
    def category_in_use(db: Session, category_id: int) -> bool:
        return db.query(Expense.id).filter(Expense.category_id == category_id).first() is not None

    # Expenses

    @staticmethod
    def search_expenses(
        db: Session,
        organization_id: int,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        category_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Expense]:
        query = (
            db.query(Expense)
            .options(joinedload(Expense.category))
            .filter(Expense.organization_id == organization_id)
        )
        if user_id is not None:
            query = query.filter(Expense.user_id == user_id)
        if status and status != "all":
            query = query.filter(Expense.status == status)
        if category_id:
            query = query.filter(Expense.category_id == category_id)
        if start_date:
            query = query.filter(Expense.expense_date >= start_date)
        if end_date:
            query = query.filter(Expense.expense_date <= end_date)
        return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()

    @staticmethod
    def get_expense(db: Session, expense_id: int, organization_id: int) -> Optional[Expense]:
        return (
            db.query(Expense)
            .options(joinedload(Expense.category))
            .filter(Expense.id == expense_id, Expense.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def create_expense(db: Session, **data) -> Expense:
        expense = Expense(**data)
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def update(db: Session, obj, **updates):
        for key, value in updates.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
        db.commit()
        db.refresh(obj)
        return obj

    @staticmethod
    def delete(db: Session, obj) -> None:
        db.delete(obj)
        db.commit()
