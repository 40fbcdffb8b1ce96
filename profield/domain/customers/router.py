"""Customer router - FastAPI endpoints for customer operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...database import get_db
from ...models import User
from ...services.directions import DirectionsClient, get_directions_client
from .schemas import CustomerCreate, CustomerResponse, CustomerUpdate
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(
    db: Session = Depends(get_db),
    directions: DirectionsClient = Depends(get_directions_client),
) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db, directions)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[CustomerResponse])
async def get_customers(
    search: Optional[str] = Query(None),
    current_user: User = Depends(require_permission("customers.view")),
    service: CustomerService = Depends(get_customer_service),
):
    """Customers of the organization, newest first"""
    return service.get_customers(current_user, search)


@router.get("/export")
async def export_customers_csv(
    search: Optional[str] = Query(None),
    current_user: User = Depends(require_permission("customers.view")),
    service: CustomerService = Depends(get_customer_service),
):
    """Export customers as CSV with the same filter as the list"""
    return service.export_customers_csv(current_user, search)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    current_user: User = Depends(require_permission("customers.view")),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_customer(customer_id, current_user)


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(require_permission("customers.manage")),
    service: CustomerService = Depends(get_customer_service),
):
    return await service.create_customer(data, current_user)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    current_user: User = Depends(require_permission("customers.manage")),
    service: CustomerService = Depends(get_customer_service),
):
    return await service.update_customer(customer_id, data, current_user)


@router.delete("/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: int,
    current_user: User = Depends(require_permission("customers.manage")),
    service: CustomerService = Depends(get_customer_service),
):
    await service.delete_customer(customer_id, current_user)
    return Response(status_code=204)
