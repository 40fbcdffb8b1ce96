"""Customer repository - Database operations for customers"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer
from ...models_dispatch import Job
from ...models_invoice import Invoice, Quote


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def search_customers(db: Session, organization_id: int, search: Optional[str] = None) -> list[Customer]:
        """Newest first, optionally filtered by name/email/phone"""
        query = db.query(Customer).filter(Customer.organization_id == organization_id)

        if search:
            search_term = f"%{search.strip().lower()}%"
            query = query.filter(
                (Customer.name.ilike(search_term))
                | (Customer.email.ilike(search_term))
                | (Customer.phone.ilike(search_term))
            )

        return query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()

    @staticmethod
    def get_customer(db: Session, customer_id: int, organization_id: int) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def create_customer(db: Session, organization_id: int, **data) -> Customer:
        customer = Customer(organization_id=organization_id, **data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def update_customer(db: Session, customer: Customer, **updates) -> Customer:
        for key, value in updates.items():
            if hasattr(customer, key):
                setattr(customer, key, value)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def has_documents(db: Session, customer_id: int) -> bool:
        """True when invoices or quotes still reference the customer"""
        if db.query(Invoice.id).filter(Invoice.customer_id == customer_id).first():
            return True
        return db.query(Quote.id).filter(Quote.customer_id == customer_id).first() is not None

    @staticmethod
    def delete_customer(db: Session, customer: Customer) -> None:
        """Jobs outlive the customer; they keep their copied address and coordinates"""
        db.query(Job).filter(Job.customer_id == customer.id).update(
            {Job.customer_id: None}, synchronize_session=False
        )
        db.delete(customer)
        db.commit()
