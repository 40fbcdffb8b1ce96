"""Expense router - categories, expenses and review workflow"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...database import get_db
from ...models import User
from .schemas import (
    CategoryCreate,
    CategoryDeleteResponse,
    CategoryResponse,
    CategoryUpdate,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseSummary,
    ExpenseUpdate,
    ReviewRequest,
)
from .service import ExpenseService, to_expense_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["Expenses"])
categories_router = APIRouter(prefix="/expense-categories", tags=["Expenses"])


def get_expense_service(db: Session = Depends(get_db)) -> ExpenseService:
    """Dependency injection for ExpenseService"""
    return ExpenseService(db)


# ============================================================================
# CATEGORIES
# ============================================================================


@categories_router.get("", response_model=list[CategoryResponse])
async def get_categories(
    include_inactive: bool = Query(False),
    current_user: User = Depends(require_permission("expenses.view")),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.get_categories(current_user, include_inactive)


@categories_router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.create_category(data, current_user)


@categories_router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.update_category(category_id, data, current_user)


@categories_router.delete("/{category_id}", response_model=CategoryDeleteResponse)
async def delete_category(
    category_id: int,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    """Delete, or deactivate when expenses still reference the category"""
    return service.delete_category(category_id, current_user)


# ============================================================================
# EXPENSES
# ============================================================================


@router.get("", response_model=list[ExpenseResponse])
async def get_expenses(
    status: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    mine: bool = Query(False),
    current_user: User = Depends(require_permission("expenses.view")),
    service: ExpenseService = Depends(get_expense_service),
):
    expenses = service.get_expenses(current_user, status, category_id, start_date, end_date, mine)
    return [to_expense_response(e) for e in expenses]


@router.get("/summary", response_model=ExpenseSummary)
async def get_expense_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(require_permission("expenses.view")),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.get_summary(current_user, start_date, end_date)


@router.post("", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    data: ExpenseCreate,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    return to_expense_response(service.create_expense(data, current_user))


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    current_user: User = Depends(require_permission("expenses.view")),
    service: ExpenseService = Depends(get_expense_service),
):
    return to_expense_response(service.get_expense(expense_id, current_user))


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    return to_expense_response(service.update_expense(expense_id, data, current_user))


@router.delete("/{expense_id}", status_code=204)
async def delete_expense(
    expense_id: int,
    current_user: User = Depends(require_permission("expenses.manage")),
    service: ExpenseService = Depends(get_expense_service),
):
    service.delete_expense(expense_id, current_user)
    return Response(status_code=204)


# ============================================================================
# REVIEW WORKFLOW
# ============================================================================


@router.post("/{expense_id}/approve", response_model=ExpenseResponse)
async def approve_expense(
    expense_id: int,
    data: Optional[ReviewRequest] = None,
    current_user: User = Depends(require_permission("expenses.approve")),
    service: ExpenseService = Depends(get_expense_service),
):
    notes = data.reason if data else None
    return to_expense_response(await service.approve_expense(expense_id, current_user, notes))


@router.post("/{expense_id}/reject", response_model=ExpenseResponse)
async def reject_expense(
    expense_id: int,
    data: Optional[ReviewRequest] = None,
    current_user: User = Depends(require_permission("expenses.approve")),
    service: ExpenseService = Depends(get_expense_service),
):
    reason = data.reason if data else None
    return to_expense_response(await service.reject_expense(expense_id, current_user, reason))


@router.post("/{expense_id}/reimburse", response_model=ExpenseResponse)
async def reimburse_expense(
    expense_id: int,
    current_user: User = Depends(require_permission("expenses.approve")),
    service: ExpenseService = Depends(get_expense_service),
):
    return to_expense_response(await service.reimburse_expense(expense_id, current_user))
