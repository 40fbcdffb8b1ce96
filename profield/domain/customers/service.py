"""Customer service - Business logic for customer operations"""

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Optional

from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...models import Customer, User
from ...services.directions import DirectionsClient
from ...services.events import publish
from .repository import CustomerRepository
from .schemas import CustomerCreate, CustomerResponse, CustomerUpdate

logger = logging.getLogger(__name__)


def serialize_customer(customer: Customer) -> dict:
    return CustomerResponse.model_validate(customer).model_dump(mode="json")


def full_address(customer: Customer) -> str:
    parts = [customer.address, customer.city, customer.state, customer.zip_code]
    return ", ".join(p for p in parts if p)


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session, directions: Optional[DirectionsClient] = None):
        self.db = db
        self.repo = CustomerRepository()
        self.directions = directions or DirectionsClient()

    def get_customers(self, user: User, search: Optional[str] = None) -> list[Customer]:
        return self.repo.search_customers(self.db, user.organization_id, search)

    def get_customer(self, customer_id: int, user: User) -> Customer:
        customer = self.repo.get_customer(self.db, customer_id, user.organization_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    async def _geocode(self, customer: Customer) -> None:
        """Fill in coordinates from the address when the caller didn't send any"""
        if customer.latitude is not None and customer.longitude is not None:
            return
        address = full_address(customer)
        if not address:
            return
        coords = await self.directions.geocode(address)
        if coords:
            customer.latitude, customer.longitude = coords
            self.db.commit()
            self.db.refresh(customer)
            logger.info(f"📍 Geocoded customer {customer.id}")

    async def create_customer(self, data: CustomerCreate, user: User) -> Customer:
        logger.info(f"📥 Creating customer for org {user.organization_id}")
        customer = self.repo.create_customer(
            self.db, user.organization_id, created_by=user.id, **data.model_dump()
        )
        await self._geocode(customer)
        await publish(user.organization_id, "customer_created", serialize_customer(customer))
        return customer

    async def update_customer(self, customer_id: int, data: CustomerUpdate, user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") is None:
            updates.pop("name", None)

        address_changed = any(k in updates for k in ("address", "city", "state", "zip_code"))
        coords_given = "latitude" in updates or "longitude" in updates
        if address_changed and not coords_given:
            updates["latitude"] = None
            updates["longitude"] = None

        customer = self.repo.update_customer(self.db, customer, **updates)
        if address_changed:
            await self._geocode(customer)

        await publish(user.organization_id, "customer_updated", serialize_customer(customer))
        return customer

    async def delete_customer(self, customer_id: int, user: User) -> None:
        customer = self.get_customer(customer_id, user)
        if self.repo.has_documents(self.db, customer.id):
            raise HTTPException(
                status_code=400,
                detail="Customer has invoices or quotes and cannot be deleted",
            )

        self.repo.delete_customer(self.db, customer)
        logger.info(f"🗑️ Customer {customer_id} deleted by user {user.id}")
        await publish(user.organization_id, "customer_deleted", {"id": customer_id})

    def export_customers_csv(self, user: User, search: Optional[str] = None) -> StreamingResponse:
        """Export customers as CSV"""
        logger.info(f"📊 CSV Export requested by user {user.id}")
        customers = self.get_customers(user, search)

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(
            ["ID", "Name", "Email", "Phone", "Address", "City", "State", "ZIP", "Country", "Notes", "Created At"]
        )
        for customer in customers:
            writer.writerow(
                [
                    customer.id,
                    customer.name,
                    customer.email or "",
                    customer.phone or "",
                    customer.address or "",
                    customer.city or "",
                    customer.state or "",
                    customer.zip_code or "",
                    customer.country or "",
                    customer.notes or "",
                    customer.created_at.strftime("%Y-%m-%d %H:%M:%S") if customer.created_at else "",
                ]
            )

        output.seek(0)
        filename = f"customers_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        logger.info(f"✅ CSV export successful: {filename} ({len(customers)} customers)")

        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename={filename}",
                "Cache-Control": "no-cache",
            },
        )
