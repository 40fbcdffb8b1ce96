"""Quote router - FastAPI endpoints for quotes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...database import get_db
from ...models import User
from ..invoices.schemas import InvoiceResponse
from ..invoices.service import to_invoice_response
from .schemas import QuoteCreate, QuoteEmailRequest, QuoteEmailResponse, QuoteResponse, QuoteUpdate
from .service import QuoteService, to_quote_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["Quotes"])


def get_quote_service(db: Session = Depends(get_db)) -> QuoteService:
    """Dependency injection for QuoteService"""
    return QuoteService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[QuoteResponse])
async def get_quotes(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_permission("quotes.view")),
    service: QuoteService = Depends(get_quote_service),
):
    return [to_quote_response(q) for q in service.get_quotes(current_user, status)]


@router.post("", response_model=QuoteResponse, status_code=201)
async def create_quote(
    data: QuoteCreate,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(await service.create_quote(data, current_user))


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: int,
    current_user: User = Depends(require_permission("quotes.view")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(service.get_quote(quote_id, current_user))


@router.put("/{quote_id}", response_model=QuoteResponse)
async def update_quote(
    quote_id: int,
    data: QuoteUpdate,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(await service.update_quote(quote_id, data, current_user))


@router.delete("/{quote_id}", status_code=204)
async def delete_quote(
    quote_id: int,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    await service.delete_quote(quote_id, current_user)
    return Response(status_code=204)


# ============================================================================
# WORKFLOW
# ============================================================================


@router.post("/{quote_id}/send", response_model=QuoteResponse)
async def send_quote(
    quote_id: int,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(await service.send_quote(quote_id, current_user))


@router.post("/{quote_id}/accept", response_model=QuoteResponse)
async def accept_quote(
    quote_id: int,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(await service.accept_quote(quote_id, current_user))


@router.post("/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    quote_id: int,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return to_quote_response(await service.reject_quote(quote_id, current_user))


@router.post("/{quote_id}/convert-to-invoice", response_model=InvoiceResponse, status_code=201)
async def convert_quote_to_invoice(
    quote_id: int,
    current_user: User = Depends(require_permission("invoices.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    """Create a draft invoice from an accepted quote"""
    return to_invoice_response(await service.convert_to_invoice(quote_id, current_user))


@router.post("/{quote_id}/email", response_model=QuoteEmailResponse)
async def email_quote(
    quote_id: int,
    data: QuoteEmailRequest,
    current_user: User = Depends(require_permission("quotes.manage")),
    service: QuoteService = Depends(get_quote_service),
):
    return await service.email_quote(quote_id, data, current_user)
