"""Invoice router - invoices, payments and dashboard stats"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...database import get_db
from ...models import User
from .schemas import (
    DashboardStats,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceSendResponse,
    InvoiceUpdate,
    MarkPaidRequest,
    PaymentResponse,
)
from .service import InvoiceService, to_invoice_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])
payments_router = APIRouter(prefix="/payments", tags=["Payments"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[InvoiceResponse])
async def get_invoices(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_permission("invoices.view")),
    service: InvoiceService = Depends(get_invoice_service),
):
    return [to_invoice_response(i) for i in service.get_invoices(current_user, status)]


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(await service.create_invoice(data, current_user))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: User = Depends(require_permission("invoices.view")),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.get_invoice(invoice_id, current_user))


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Update header fields; line items are replaced only when sent"""
    return to_invoice_response(await service.update_invoice(invoice_id, data, current_user))


@router.delete("/{invoice_id}", status_code=204)
async def delete_invoice(
    invoice_id: int,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: InvoiceService = Depends(get_invoice_service),
):
    await service.delete_invoice(invoice_id, current_user)
    return Response(status_code=204)


# ============================================================================
# WORKFLOW
# ============================================================================


@router.post("/{invoice_id}/send", response_model=InvoiceSendResponse)
async def send_invoice(
    invoice_id: int,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice, email_sent = await service.send_invoice(invoice_id, current_user)
    return InvoiceSendResponse(
        message="Invoice sent" if email_sent else "Invoice marked as sent",
        email_sent=email_sent,
        invoice=to_invoice_response(invoice),
    )


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: int,
    data: Optional[MarkPaidRequest] = None,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Record a manual payment for the full invoice total"""
    invoice = await service.mark_paid(invoice_id, data or MarkPaidRequest(), current_user)
    return to_invoice_response(invoice)


# ============================================================================
# PAYMENTS & DASHBOARD
# ============================================================================


@payments_router.get("", response_model=list[PaymentResponse])
async def get_payments(
    current_user: User = Depends(require_permission("invoices.view")),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_payments(current_user)


@dashboard_router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    current_user: User = Depends(require_permission("invoices.view")),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_dashboard_stats(current_user)
