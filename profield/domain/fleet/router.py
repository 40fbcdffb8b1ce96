"""Fleet router - gas card providers, cards, assignments and vehicles"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...database import get_db
from ...models import User
from .schemas import (
    AssignmentCreate,
    AssignmentResponse,
    CheckoutRequest,
    GasCardCreate,
    GasCardResponse,
    GasCardUpdate,
    LocationCreate,
    LocationResponse,
    ProviderCreate,
    ProviderResponse,
    ProviderUpdate,
    ReturnRequest,
    VehicleCreate,
    VehicleResponse,
)
from .service import FleetService, to_assignment_response

logger = logging.getLogger(__name__)

providers_router = APIRouter(prefix="/gas-card-providers", tags=["Fleet"])
cards_router = APIRouter(prefix="/gas-cards", tags=["Fleet"])
assignments_router = APIRouter(prefix="/gas-card-assignments", tags=["Fleet"])
vehicles_router = APIRouter(prefix="/vehicles", tags=["Fleet"])


def get_fleet_service(db: Session = Depends(get_db)) -> FleetService:
    """Dependency injection for FleetService"""
    return FleetService(db)


# ============================================================================
# PROVIDERS
# ============================================================================


@providers_router.get("", response_model=list[ProviderResponse])
async def get_providers(
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_providers(current_user)


@providers_router.post("", response_model=ProviderResponse, status_code=201)
async def create_provider(
    data: ProviderCreate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.create_provider(data, current_user)


@providers_router.put("/{provider_id}", response_model=ProviderResponse)
async def update_provider(
    provider_id: int,
    data: ProviderUpdate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.update_provider(provider_id, data, current_user)


@providers_router.delete("/{provider_id}", status_code=204)
async def delete_provider(
    provider_id: int,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    service.delete_provider(provider_id, current_user)
    return Response(status_code=204)


# ============================================================================
# GAS CARDS
# ============================================================================


@cards_router.get("", response_model=list[GasCardResponse])
async def get_cards(
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_cards(current_user)


@cards_router.post("", response_model=GasCardResponse, status_code=201)
async def create_card(
    data: GasCardCreate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.create_card(data, current_user)


@cards_router.get("/{card_id}", response_model=GasCardResponse)
async def get_card(
    card_id: int,
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_card(card_id, current_user)


@cards_router.put("/{card_id}", response_model=GasCardResponse)
async def update_card(
    card_id: int,
    data: GasCardUpdate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.update_card(card_id, data, current_user)


@cards_router.delete("/{card_id}", status_code=204)
async def delete_card(
    card_id: int,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    service.delete_card(card_id, current_user)
    return Response(status_code=204)


@cards_router.post("/{card_id}/checkout", response_model=AssignmentResponse, status_code=201)
async def checkout_card(
    card_id: int,
    data: Optional[CheckoutRequest] = None,
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    """Check a card out to yourself"""
    assignment = await service.checkout(card_id, data or CheckoutRequest(), current_user)
    return to_assignment_response(assignment)


# ============================================================================
# ASSIGNMENTS
# ============================================================================


@assignments_router.get("", response_model=list[AssignmentResponse])
async def get_assignments(
    active: Optional[bool] = Query(None),
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return [to_assignment_response(a) for a in service.get_assignments(current_user, active)]


@assignments_router.get("/mine", response_model=list[AssignmentResponse])
async def get_my_assignments(
    active: Optional[bool] = Query(None),
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return [to_assignment_response(a) for a in service.get_my_assignments(current_user, active)]


@assignments_router.post("", response_model=AssignmentResponse, status_code=201)
async def create_assignment(
    data: AssignmentCreate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return to_assignment_response(await service.create_assignment(data, current_user))


@assignments_router.put("/{assignment_id}/return", response_model=AssignmentResponse)
async def return_card(
    assignment_id: int,
    data: Optional[ReturnRequest] = None,
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    notes = data.notes if data else None
    return to_assignment_response(await service.return_card(assignment_id, current_user, notes))


# ============================================================================
# VEHICLES
# ============================================================================


@vehicles_router.get("", response_model=list[VehicleResponse])
async def get_vehicles(
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_vehicles(current_user)


@vehicles_router.post("", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    data: VehicleCreate,
    current_user: User = Depends(require_permission("fleet.manage")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.create_vehicle(data, current_user)


@vehicles_router.post("/{vehicle_id}/locations", response_model=LocationResponse, status_code=201)
async def record_location(
    vehicle_id: int,
    data: LocationCreate,
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    """Record a GPS ping and broadcast it to the organization"""
    return await service.record_location(vehicle_id, data, current_user)


@vehicles_router.get("/{vehicle_id}/location", response_model=LocationResponse)
async def get_latest_location(
    vehicle_id: int,
    current_user: User = Depends(require_permission("fleet.view")),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_latest_location(vehicle_id, current_user)
