"""Quote service - quote lifecycle and conversion to invoices"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...email_service import send_quote_email
from ...models import Customer, User
from ...models_invoice import Invoice, Quote
from ...services.events import publish
from ..invoices.schemas import LineItemCreate, LineItemResponse
from ..invoices.service import DEFAULT_DUE_DAYS, InvoiceService, price_line_items
from .repository import QuoteRepository
from .schemas import QuoteCreate, QuoteEmailRequest, QuoteEmailResponse, QuoteResponse, QuoteUpdate

logger = logging.getLogger(__name__)

DEFAULT_VALID_DAYS = 30
NUMBER_ATTEMPTS = 3


def display_status(quote: Quote, now: Optional[datetime] = None) -> str:
    """Open quotes past their expiry date are reported as expired"""
    now = now or datetime.utcnow()
    if quote.status in ("draft", "sent") and quote.expiry_date and quote.expiry_date < now:
        return "expired"
    return quote.status


def to_quote_response(quote: Quote) -> QuoteResponse:
    return QuoteResponse(
        id=quote.id,
        organization_id=quote.organization_id,
        user_id=quote.user_id,
        customer_id=quote.customer_id,
        customer_name=quote.customer.name if quote.customer else None,
        quote_number=quote.quote_number,
        status=display_status(quote),
        subtotal=quote.subtotal,
        tax_rate=quote.tax_rate or 0,
        tax_amount=quote.tax_amount or 0,
        total=quote.total,
        currency=quote.currency,
        notes=quote.notes,
        quote_date=quote.quote_date,
        expiry_date=quote.expiry_date,
        accepted_at=quote.accepted_at,
        converted_invoice_id=quote.converted_invoice_id,
        created_at=quote.created_at,
        updated_at=quote.updated_at,
        line_items=[LineItemResponse.model_validate(item) for item in quote.line_items],
    )


def _items_of(quote: Quote) -> list[LineItemCreate]:
    return [LineItemCreate(description=i.description, quantity=i.quantity, rate=i.rate) for i in quote.line_items]


class QuoteService:
    """Service layer for quote business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = QuoteRepository()

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
            raise HTTPException(status_code=409, detail=f"Quote number {number} already exists")

    async def _emit(self, user: User, event_type: str, quote: Quote) -> None:
        await publish(user.organization_id, event_type, to_quote_response(quote).model_dump(mode="json"))

    def get_quotes(self, user: User, status: Optional[str] = None) -> list[Quote]:
        return self.repo.get_quotes(self.db, user.organization_id, status)

    def get_quote(self, quote_id: int, user: User) -> Quote:
        quote = self.repo.get_quote(self.db, quote_id, user.organization_id)
        if not quote:
            raise HTTPException(status_code=404, detail="Quote not found")
        return quote

    async def create_quote(self, data: QuoteCreate, user: User) -> Quote:
        self._get_customer(data.customer_id, user)

        quote_date = data.quote_date or datetime.utcnow()
        expiry_date = data.expiry_date or quote_date + timedelta(days=DEFAULT_VALID_DAYS)
        if expiry_date < quote_date:
            raise HTTPException(status_code=400, detail="Expiry date cannot be before the quote date")

        if data.quote_number:
            self._check_number(user, data.quote_number)

        rows, totals = price_line_items(data.line_items, data.tax_rate)
        organization_id, user_id = user.organization_id, user.id
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            number = data.quote_number or self.repo.next_quote_number(self.db, organization_id, quote_date.year)
            try:
                quote = self.repo.create_quote(
                    self.db,
                    rows,
                    organization_id=organization_id,
                    user_id=user_id,
                    customer_id=data.customer_id,
                    quote_number=number,
                    status="draft",
                    tax_rate=data.tax_rate,
                    currency=data.currency,
                    notes=data.notes,
                    quote_date=quote_date,
                    expiry_date=expiry_date,
                    **totals,
                )
                break
            except IntegrityError:
                logger.warning(f"⚠️ Quote number {number} taken concurrently (attempt {attempt})")
                if data.quote_number:
                    raise HTTPException(status_code=409, detail=f"Quote number {number} already exists")
        else:
            raise HTTPException(status_code=409, detail="Could not allocate a quote number, please retry")
        logger.info(f"📝 Quote {quote.quote_number} created (total {quote.total}) by user {user.id}")
        await self._emit(user, "quote_created", quote)
        return quote

    async def update_quote(self, quote_id: int, data: QuoteUpdate, user: User) -> Quote:
        quote = self.get_quote(quote_id, user)
        if quote.status in ("accepted", "converted"):
            raise HTTPException(status_code=400, detail=f"Cannot edit a {quote.status} quote")

        updates = data.model_dump(exclude_unset=True, exclude={"line_items"})
        for key in ("customer_id", "quote_number", "tax_rate", "quote_date"):
            if updates.get(key) is None:
                updates.pop(key, None)

        if "customer_id" in updates:
            self._get_customer(updates["customer_id"], user)
        if "quote_number" in updates and updates["quote_number"] != quote.quote_number:
            self._check_number(user, updates["quote_number"], exclude_id=quote.id)

        tax_rate = updates.get("tax_rate", quote.tax_rate or Decimal("0"))
        rows = None
        if data.line_items is not None:
            rows, totals = price_line_items(data.line_items, tax_rate)
        else:
            _, totals = price_line_items(_items_of(quote), tax_rate)
        updates.update(totals)

        quote = self.repo.update_quote(self.db, quote, line_items=rows, **updates)
        await self._emit(user, "quote_updated", quote)
        return quote

    async def delete_quote(self, quote_id: int, user: User) -> None:
        quote = self.get_quote(quote_id, user)
        if quote.status == "converted":
            raise HTTPException(status_code=400, detail="Converted quotes cannot be deleted")
        self.repo.delete_quote(self.db, quote)
        logger.info(f"🗑️ Quote {quote_id} deleted by user {user.id}")
        await publish(user.organization_id, "quote_deleted", {"id": quote_id})

    async def send_quote(self, quote_id: int, user: User) -> Quote:
        quote = self.get_quote(quote_id, user)
        if quote.status in ("accepted", "converted"):
            raise HTTPException(status_code=400, detail=f"Cannot send a {quote.status} quote")
        quote = self.repo.update_quote(self.db, quote, status="sent")
        await self._emit(user, "quote_sent", quote)
        return quote

    async def accept_quote(self, quote_id: int, user: User) -> Quote:
        quote = self.get_quote(quote_id, user)
        status = display_status(quote)
        if status == "expired":
            raise HTTPException(status_code=400, detail="Quote has expired")
        if status not in ("draft", "sent"):
            raise HTTPException(status_code=400, detail=f"Cannot accept a {status} quote")

        quote = self.repo.update_quote(self.db, quote, status="accepted", accepted_at=datetime.utcnow())
        logger.info(f"✅ Quote {quote.quote_number} accepted")
        await self._emit(user, "quote_accepted", quote)
        return quote

    async def reject_quote(self, quote_id: int, user: User) -> Quote:
        quote = self.get_quote(quote_id, user)
        if quote.status not in ("draft", "sent"):
            raise HTTPException(status_code=400, detail=f"Cannot reject a {quote.status} quote")
        quote = self.repo.update_quote(self.db, quote, status="rejected")
        await self._emit(user, "quote_rejected", quote)
        return quote

    async def convert_to_invoice(self, quote_id: int, user: User) -> Invoice:
        """Turn an accepted quote into a draft invoice"""
        quote = self.get_quote(quote_id, user)
        if quote.status != "accepted":
            raise HTTPException(status_code=400, detail="Quote cannot be converted. It must be accepted first.")

        invoice_date = datetime.utcnow()
        invoice = InvoiceService(self.db).create_invoice_record(
            user,
            customer_id=quote.customer_id,
            line_items=_items_of(quote),
            tax_rate=quote.tax_rate or Decimal("0"),
            currency=quote.currency,
            notes=quote.notes,
            status="draft",
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=DEFAULT_DUE_DAYS),
            quote_id=quote.id,
        )
        quote = self.repo.update_quote(self.db, quote, status="converted", converted_invoice_id=invoice.id)
        logger.info(f"🔁 Quote {quote.quote_number} converted to invoice {invoice.invoice_number}")

        await publish(
            user.organization_id,
            "quote_converted",
            {
                "quote_id": quote.id,
                "quote_number": quote.quote_number,
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
            },
        )
        return invoice

    async def email_quote(self, quote_id: int, data: QuoteEmailRequest, user: User) -> QuoteEmailResponse:
        quote = self.get_quote(quote_id, user)
        if quote.status == "converted":
            raise HTTPException(status_code=400, detail="Converted quotes cannot be emailed")

        subject = data.subject or f"Quote {quote.quote_number}"
        try:
            sent = await send_quote_email(
                to=data.to,
                customer_name=quote.customer.name if quote.customer else "there",
                quote_number=quote.quote_number,
                total=quote.total,
                currency=quote.currency,
                subject=subject,
                message=data.message,
            )
        except Exception as e:
            logger.error(f"❌ Quote {quote.quote_number} email to {data.to} failed: {e}")
            raise HTTPException(status_code=502, detail="Failed to send quote email") from e

        if quote.status in ("draft", "rejected", "expired"):
            quote = self.repo.update_quote(self.db, quote, status="sent")
        await self._emit(user, "quote_sent", quote)

        return QuoteEmailResponse(
            message="Quote emailed successfully" if sent else "Quote marked as sent; email delivery is not configured",
            to=data.to,
            subject=subject,
            sent=sent,
        )
