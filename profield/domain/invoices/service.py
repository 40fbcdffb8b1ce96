"""Invoice service - totals, numbering, sending and payment of invoices"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...email_service import send_invoice_email
from ...models import Customer, User
from ...models_invoice import Invoice
from ...services.events import publish
from ...services.notification_service import NotificationService
from ...shared.money import compute_totals, line_amount
from .repository import InvoiceRepository
from .schemas import (
    DashboardStats,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceUpdate,
    LineItemCreate,
    LineItemResponse,
    MarkPaidRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30
NUMBER_ATTEMPTS = 3


def display_status(invoice: Invoice, now: Optional[datetime] = None) -> str:
    """Sent invoices past their due date are reported as overdue"""
    now = now or datetime.utcnow()
    if invoice.status == "sent" and invoice.due_date and invoice.due_date < now:
        return "overdue"
    return invoice.status


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        organization_id=invoice.organization_id,
        user_id=invoice.user_id,
        customer_id=invoice.customer_id,
        customer_name=invoice.customer.name if invoice.customer else None,
        quote_id=invoice.quote_id,
        invoice_number=invoice.invoice_number,
        status=display_status(invoice),
        subtotal=invoice.subtotal,
        tax_rate=invoice.tax_rate or 0,
        tax_amount=invoice.tax_amount or 0,
        total=invoice.total,
        currency=invoice.currency,
        notes=invoice.notes,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        paid_at=invoice.paid_at,
        payment_method=invoice.payment_method,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        line_items=[LineItemResponse.model_validate(item) for item in invoice.line_items],
    )


def price_line_items(items: list[LineItemCreate], tax_rate: Decimal) -> tuple[list[dict], dict]:
    """Line rows plus recomputed totals. Client-sent amounts are never trusted."""
    rows = [
        {
            "description": item.description,
            "quantity": item.quantity,
            "rate": item.rate,
            "amount": line_amount(item.quantity, item.rate),
        }
        for item in items
    ]
    subtotal, tax_amount, total = compute_totals([r["amount"] for r in rows], tax_rate)
    return rows, {"subtotal": subtotal, "tax_amount": tax_amount, "total": total}


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    def _get_customer(self, customer_id: int, user: User) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.organization_id == user.organization_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def _check_number(self, user: User, number: str, exclude_id: Optional[int] = None) -> None:
        if self.repo.number_exists(self.db, user.organization_id, number, exclude_id):
            raise HTTPException(status_code=409, detail=f"Invoice number {number} already exists")

    def get_invoices(self, user: User, status: Optional[str] = None) -> list[Invoice]:
        return self.repo.get_invoices(self.db, user.organization_id, status)

    def get_invoice(self, invoice_id: int, user: User) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id, user.organization_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def create_invoice_record(
        self,
        user: User,
        customer_id: int,
        line_items: list[LineItemCreate],
        tax_rate: Decimal = Decimal("0"),
        currency: str = "USD",
        notes: Optional[str] = None,
        status: str = "draft",
        invoice_number: Optional[str] = None,
        invoice_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        quote_id: Optional[int] = None,
    ) -> Invoice:
        """Shared by direct creation and quote conversion"""
        self._get_customer(customer_id, user)

        invoice_date = invoice_date or datetime.utcnow()
        due_date = due_date or invoice_date + timedelta(days=DEFAULT_DUE_DAYS)
        if due_date < invoice_date:
            raise HTTPException(status_code=400, detail="Due date cannot be before the invoice date")

        requested_number = invoice_number
        if requested_number:
            self._check_number(user, requested_number)

        rows, totals = price_line_items(line_items, tax_rate)
        organization_id, user_id = user.organization_id, user.id
        # A concurrent create can take the same number between the lookup and the insert
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            invoice_number = requested_number or self.repo.next_invoice_number(
                self.db, organization_id, invoice_date.year
            )
            try:
                invoice = self.repo.create_invoice(
                    self.db,
                    rows,
                    organization_id=organization_id,
                    user_id=user_id,
                    customer_id=customer_id,
                    quote_id=quote_id,
                    invoice_number=invoice_number,
                    status=status,
                    tax_rate=tax_rate,
                    currency=currency,
                    notes=notes,
                    invoice_date=invoice_date,
                    due_date=due_date,
                    **totals,
                )
                break
            except IntegrityError:
                logger.warning(f"⚠️ Invoice number {invoice_number} taken concurrently (attempt {attempt})")
                if requested_number:
                    raise HTTPException(status_code=409, detail=f"Invoice number {invoice_number} already exists")
        else:
            raise HTTPException(status_code=409, detail="Could not allocate an invoice number, please retry")
        logger.info(f"🧾 Invoice {invoice.invoice_number} created (total {invoice.total}) by user {user_id}")
        return invoice

    async def create_invoice(self, data: InvoiceCreate, user: User) -> Invoice:
        invoice = self.create_invoice_record(
            user,
            customer_id=data.customer_id,
            line_items=data.line_items,
            tax_rate=data.tax_rate,
            currency=data.currency,
            notes=data.notes,
            status=data.status,
            invoice_number=data.invoice_number,
            invoice_date=data.invoice_date,
            due_date=data.due_date,
        )
        await publish(
            user.organization_id, "invoice_created", to_invoice_response(invoice).model_dump(mode="json")
        )
        return invoice

    async def update_invoice(self, invoice_id: int, data: InvoiceUpdate, user: User) -> Invoice:
        invoice = self.get_invoice(invoice_id, user)
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Paid invoices cannot be edited")

        updates = data.model_dump(exclude_unset=True, exclude={"line_items"})
        for key in ("customer_id", "invoice_number", "status", "tax_rate", "invoice_date", "due_date"):
            if updates.get(key) is None:
                updates.pop(key, None)

        if "customer_id" in updates:
            self._get_customer(updates["customer_id"], user)
        if "invoice_number" in updates and updates["invoice_number"] != invoice.invoice_number:
            self._check_number(user, updates["invoice_number"], exclude_id=invoice.id)

        invoice_date = updates.get("invoice_date", invoice.invoice_date)
        due_date = updates.get("due_date", invoice.due_date)
        if due_date < invoice_date:
            raise HTTPException(status_code=400, detail="Due date cannot be before the invoice date")

        tax_rate = updates.get("tax_rate", invoice.tax_rate or Decimal("0"))
        rows = None
        if data.line_items is not None:
            rows, totals = price_line_items(data.line_items, tax_rate)
        else:
            items = [
                LineItemCreate(description=i.description, quantity=i.quantity, rate=i.rate)
                for i in invoice.line_items
            ]
            _, totals = price_line_items(items, tax_rate)
        updates.update(totals)

        invoice = self.repo.update_invoice(self.db, invoice, line_items=rows, **updates)
        await publish(
            user.organization_id, "invoice_updated", to_invoice_response(invoice).model_dump(mode="json")
        )
        return invoice

    async def delete_invoice(self, invoice_id: int, user: User) -> None:
        invoice = self.get_invoice(invoice_id, user)
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Paid invoices cannot be deleted")

        number = invoice.invoice_number
        released = self.repo.delete_invoice(self.db, invoice)
        logger.info(f"🗑️ Invoice {number} deleted by user {user.id}")
        await publish(user.organization_id, "invoice_deleted", {"id": invoice_id, "invoice_number": number})

        if released:
            logger.info(f"↩️ Quote {released.quote_number} reopened after invoice {number} was deleted")
            await publish(
                user.organization_id,
                "quote_updated",
                {"id": released.id, "quote_number": released.quote_number, "status": released.status},
            )

    async def send_invoice(self, invoice_id: int, user: User) -> tuple[Invoice, bool]:
        """Mark as sent and email the customer when possible"""
        invoice = self.get_invoice(invoice_id, user)
        if invoice.status in ("paid", "cancelled"):
            raise HTTPException(status_code=400, detail=f"Cannot send a {invoice.status} invoice")

        invoice = self.repo.update_invoice(self.db, invoice, status="sent")

        email_sent = False
        customer = invoice.customer
        if customer and customer.email:
            try:
                email_sent = await send_invoice_email(
                    to=customer.email,
                    customer_name=customer.name,
                    invoice_number=invoice.invoice_number,
                    total=invoice.total,
                    due_date=invoice.due_date.strftime("%Y-%m-%d"),
                    currency=invoice.currency,
                )
            except Exception as e:
                logger.error(f"❌ Invoice {invoice.invoice_number} email failed: {e}")
        else:
            logger.debug(f"⚠️ No customer email for invoice {invoice.invoice_number}")

        await publish(
            user.organization_id,
            "invoice_sent",
            {"id": invoice.id, "invoice_number": invoice.invoice_number, "email_sent": email_sent},
        )
        return invoice, email_sent

    async def mark_paid(self, invoice_id: int, data: MarkPaidRequest, user: User) -> Invoice:
        """Record a completed payment of the full total"""
        invoice = self.get_invoice(invoice_id, user)
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Invoice is already paid")
        if invoice.status == "cancelled":
            raise HTTPException(status_code=400, detail="Cancelled invoices cannot be paid")

        self.repo.add_payment(
            self.db,
            invoice,
            amount=invoice.total,
            currency=invoice.currency,
            method=data.method,
            status="completed",
            external_id=data.reference,
        )
        updates = {"status": "paid", "paid_at": datetime.utcnow(), "payment_method": data.method}
        if data.notes:
            updates["notes"] = f"{invoice.notes}\n{data.notes}" if invoice.notes else data.notes
        invoice = self.repo.update_invoice(self.db, invoice, **updates)
        logger.info(f"💰 Invoice {invoice.invoice_number} paid ({data.method}) recorded by user {user.id}")

        await publish(
            user.organization_id,
            "invoice_paid",
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "total": float(invoice.total),
                "method": data.method,
            },
        )

        owner = self.db.query(User).filter(User.id == invoice.user_id).first()
        if owner and owner.is_active:
            await NotificationService(self.db).notify(
                owner,
                type="invoice_paid",
                title="Invoice paid",
                message=f"Invoice {invoice.invoice_number} was paid ({invoice.total} {invoice.currency})",
                related_entity_type="invoice",
                related_entity_id=invoice.id,
                created_by=user.id,
            )
        return invoice

    def get_payments(self, user: User):
        return self.repo.get_payments(self.db, user.organization_id)

    def get_dashboard_stats(self, user: User) -> DashboardStats:
        return DashboardStats(**self.repo.get_stats(self.db, user.organization_id))
