"""Quote repository - Database operations for quotes"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models_invoice import Quote, QuoteLineItem


class QuoteRepository:
    """Repository for quote database operations"""

    @staticmethod
    def get_quotes(db: Session, organization_id: int, status: Optional[str] = None) -> list[Quote]:
        query = (
            db.query(Quote)
            .options(joinedload(Quote.line_items), joinedload(Quote.customer))
            .filter(Quote.organization_id == organization_id)
        )
        if status and status != "all":
            query = query.filter(Quote.status == status)
        return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()

    @staticmethod
    def get_quote(db: Session, quote_id: int, organization_id: int) -> Optional[Quote]:
        return (
            db.query(Quote)
            .options(joinedload(Quote.line_items), joinedload(Quote.customer))
            .filter(Quote.id == quote_id, Quote.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def number_exists(db: Session, organization_id: int, quote_number: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(Quote.id).filter(Quote.organization_id == organization_id, Quote.quote_number == quote_number)
        if exclude_id:
            query = query.filter(Quote.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def next_quote_number(db: Session, organization_id: int, year: int) -> str:
        """QUO-{YYYY}-{org:04d}-{seq:04d}"""
        prefix = f"QUO-{year}-{organization_id:04d}-"
        used = (
            db.query(func.count(Quote.id))
            .filter(Quote.organization_id == organization_id, Quote.quote_number.like(f"{prefix}%"))
            .scalar()
        )
        seq = used + 1
        while QuoteRepository.number_exists(db, organization_id, f"{prefix}{seq:04d}"):
            seq += 1
        return f"{prefix}{seq:04d}"

    @staticmethod
    def create_quote(db: Session, line_items: list[dict], **data) -> Quote:
        quote = Quote(**data)
        quote.line_items = [QuoteLineItem(**item) for item in line_items]
        db.add(quote)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        db.refresh(quote)
        return quote

    @staticmethod
    def update_quote(db: Session, quote: Quote, line_items: Optional[list[dict]] = None, **updates) -> Quote:
        for key, value in updates.items():
            if hasattr(quote, key):
                setattr(quote, key, value)
        if line_items is not None:
            quote.line_items = [QuoteLineItem(**item) for item in line_items]
        db.commit()
        db.refresh(quote)
        return quote

    @staticmethod
    def delete_quote(db: Session, quote: Quote) -> None:
        db.delete(quote)
        db.commit()
