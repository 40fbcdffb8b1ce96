"""Invoice repository - Database operations for invoices and payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models_invoice import Invoice, InvoiceLineItem, Payment, Quote


def overdue_clause(now: datetime):
    return and_(Invoice.status == "sent", Invoice.due_date < now)


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get_invoices(db: Session, organization_id: int, status: Optional[str] = None) -> list[Invoice]:
        """Invoices newest first. "overdue" and "sent" are split on the due date."""
        now = datetime.utcnow()
        query = (
            db.query(Invoice)
            .options(joinedload(Invoice.line_items), joinedload(Invoice.customer))
            .filter(Invoice.organization_id == organization_id)
        )

        if status == "overdue":
            query = query.filter(or_(Invoice.status == "overdue", overdue_clause(now)))
        elif status == "sent":
            query = query.filter(Invoice.status == "sent", Invoice.due_date >= now)
        elif status and status != "all":
            query = query.filter(Invoice.status == status)

        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    @staticmethod
    def get_invoice(db: Session, invoice_id: int, organization_id: int) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .options(joinedload(Invoice.line_items), joinedload(Invoice.customer))
            .filter(Invoice.id == invoice_id, Invoice.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def number_exists(
        db: Session, organization_id: int, invoice_number: str, exclude_id: Optional[int] = None
    ) -> bool:
        query = db.query(Invoice.id).filter(
            Invoice.organization_id == organization_id, Invoice.invoice_number == invoice_number
        )
        if exclude_id:
            query = query.filter(Invoice.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def next_invoice_number(db: Session, organization_id: int, year: int) -> str:
        """INV-{YYYY}-{org:04d}-{seq:04d}, sequence per organization per year"""
        prefix = f"INV-{year}-{organization_id:04d}-"
        used = (
            db.query(func.count(Invoice.id))
            .filter(Invoice.organization_id == organization_id, Invoice.invoice_number.like(f"{prefix}%"))
            .scalar()
        )
        seq = used + 1
        while InvoiceRepository.number_exists(db, organization_id, f"{prefix}{seq:04d}"):
            seq += 1
        return f"{prefix}{seq:04d}"

    @staticmethod
    def create_invoice(db: Session, line_items: list[dict], **data) -> Invoice:
        invoice = Invoice(**data)
        invoice.line_items = [InvoiceLineItem(**item) for item in line_items]
        db.add(invoice)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        db.refresh(invoice)
        return invoice

    @staticmethod
    def update_invoice(db: Session, invoice: Invoice, line_items: Optional[list[dict]] = None, **updates) -> Invoice:
        for key, value in updates.items():
            if hasattr(invoice, key):
                setattr(invoice, key, value)
        if line_items is not None:
            invoice.line_items = [InvoiceLineItem(**item) for item in line_items]
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def delete_invoice(db: Session, invoice: Invoice) -> Optional[Quote]:
        """
        Delete the invoice. A quote converted into it goes back to accepted so
        it can be converted again; that quote is returned.
        """
        quote = (
            db.query(Quote)
            .filter(Quote.organization_id == invoice.organization_id, Quote.converted_invoice_id == invoice.id)
            .first()
        )
        if quote:
            quote.status = "accepted"
            quote.converted_invoice_id = None
        db.delete(invoice)
        db.commit()
        if quote:
            db.refresh(quote)
        return quote

    @staticmethod
    def add_payment(db: Session, invoice: Invoice, **data) -> Payment:
        payment = Payment(invoice_id=invoice.id, organization_id=invoice.organization_id, **data)
        db.add(payment)
        return payment

    @staticmethod
    def get_payments(db: Session, organization_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.organization_id == organization_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def get_stats(db: Session, organization_id: int) -> dict:
        now = datetime.utcnow()
        base = db.query(Invoice).filter(Invoice.organization_id == organization_id)

        total = base.count()
        paid = base.filter(Invoice.status == "paid").count()
        overdue = base.filter(or_(Invoice.status == "overdue", overdue_clause(now))).count()
        pending = base.filter(
            or_(Invoice.status == "draft", and_(Invoice.status == "sent", Invoice.due_date >= now))
        ).count()

        revenue = (
            db.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.organization_id == organization_id, Payment.status == "completed")
            .scalar()
        )
        outstanding = (
            db.query(func.coalesce(func.sum(Invoice.total), 0))
            .filter(Invoice.organization_id == organization_id, Invoice.status.in_(["sent", "overdue"]))
            .scalar()
        )

        return {
            "total_invoices": total,
            "paid_invoices": paid,
            "pending_invoices": pending,
            "overdue_invoices": overdue,
            "total_revenue": float(revenue or 0),
            "outstanding_amount": float(outstanding or 0),
        }
