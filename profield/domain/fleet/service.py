"""Fleet service - gas card custody and vehicle GPS tracking"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_fleet import GasCard, GasCardAssignment, GasCardProvider, Vehicle, VehicleLocation
from ...permissions import has_permission
from ...services.events import publish
from ...services.notification_service import NotificationService
from ...services.gps import calculate_speed, haversine_distance, is_significant_movement
from ...shared.validators import mask_card_number
from .repository import FleetRepository
from .schemas import (
    AssignmentCreate,
    AssignmentResponse,
    CheckoutRequest,
    GasCardCreate,
    GasCardResponse,
    GasCardUpdate,
    LocationCreate,
    ProviderCreate,
    ProviderUpdate,
    VehicleCreate,
)

logger = logging.getLogger(__name__)

# A vehicle standing still this long alerts fleet managers, at most once per dedup window
STOP_ALERT_MINUTES = 15
ALERT_DEDUP_MINUTES = 5


def to_card_response(card: GasCard, assigned_to_user_id: Optional[int] = None) -> GasCardResponse:
    masked = mask_card_number(card.card_number)
    return GasCardResponse(
        id=card.id,
        card_name=card.card_name,
        card_last4=masked[-4:],
        masked_number=masked,
        provider=card.provider,
        spending_limit=card.spending_limit,
        status=card.status,
        notes=card.notes,
        assigned_to_user_id=assigned_to_user_id,
        created_at=card.created_at,
    )


def to_assignment_response(assignment: GasCardAssignment) -> AssignmentResponse:
    card = assignment.gas_card
    return AssignmentResponse(
        id=assignment.id,
        gas_card_id=assignment.gas_card_id,
        card_name=card.card_name if card else None,
        card_last4=mask_card_number(card.card_number)[-4:] if card else None,
        assigned_to_user_id=assignment.assigned_to_user_id,
        assigned_to_name=assignment.assigned_to.display_name if assignment.assigned_to else None,
        assigned_by_user_id=assignment.assigned_by_user_id,
        assigned_date=assignment.assigned_date,
        expected_return_date=assignment.expected_return_date,
        returned_date=assignment.returned_date,
        purpose=assignment.purpose,
        notes=assignment.notes,
        status=assignment.status,
    )


class FleetService:
    """Service layer for gas cards and vehicles"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = FleetRepository()
        self.notifications = NotificationService(db)

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def get_providers(self, user: User) -> list[GasCardProvider]:
        return self.repo.get_providers(self.db, user.organization_id)

    def _get_provider(self, provider_id: int, user: User) -> GasCardProvider:
        provider = self.repo.get_provider(self.db, provider_id, user.organization_id)
        if not provider:
            raise HTTPException(status_code=404, detail="Gas card provider not found")
        return provider

    def create_provider(self, data: ProviderCreate, user: User) -> GasCardProvider:
        if self.repo.provider_name_exists(self.db, user.organization_id, data.name):
            raise HTTPException(status_code=409, detail=f"Provider '{data.name}' already exists")
        return self.repo.add(self.db, GasCardProvider(organization_id=user.organization_id, **data.model_dump()))

    def update_provider(self, provider_id: int, data: ProviderUpdate, user: User) -> GasCardProvider:
        provider = self._get_provider(provider_id, user)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") is None:
            updates.pop("name", None)
        if "name" in updates and self.repo.provider_name_exists(
            self.db, user.organization_id, updates["name"], provider.id
        ):
            raise HTTPException(status_code=409, detail=f"Provider '{updates['name']}' already exists")
        return self.repo.update(self.db, provider, **updates)

    def delete_provider(self, provider_id: int, user: User) -> None:
        self.repo.delete(self.db, self._get_provider(provider_id, user))

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def get_cards(self, user: User) -> list[GasCardResponse]:
        holders = self.repo.open_assignments_by_card(self.db, user.organization_id)
        return [to_card_response(c, holders.get(c.id)) for c in self.repo.get_cards(self.db, user.organization_id)]

    def _get_card(self, card_id: int, user: User) -> GasCard:
        card = self.repo.get_card(self.db, card_id, user.organization_id)
        if not card:
            raise HTTPException(status_code=404, detail="Gas card not found")
        return card

    def get_card(self, card_id: int, user: User) -> GasCardResponse:
        card = self._get_card(card_id, user)
        open_assignment = self.repo.get_open_assignment(self.db, card.id)
        return to_card_response(card, open_assignment.assigned_to_user_id if open_assignment else None)

    def create_card(self, data: GasCardCreate, user: User) -> GasCardResponse:
        card = self.repo.add(self.db, GasCard(organization_id=user.organization_id, **data.model_dump()))
        logger.info(f"⛽ Gas card {card.id} ({mask_card_number(card.card_number)}) added by user {user.id}")
        return to_card_response(card)

    def update_card(self, card_id: int, data: GasCardUpdate, user: User) -> GasCardResponse:
        card = self._get_card(card_id, user)
        updates = data.model_dump(exclude_unset=True)
        for key in ("card_name", "card_number", "status"):
            if updates.get(key) is None:
                updates.pop(key, None)

        open_assignment = self.repo.get_open_assignment(self.db, card.id)
        if updates.get("status") == "inactive" and open_assignment:
            raise HTTPException(status_code=400, detail="Return the card before deactivating it")

        card = self.repo.update(self.db, card, **updates)
        return to_card_response(card, open_assignment.assigned_to_user_id if open_assignment else None)

    def delete_card(self, card_id: int, user: User) -> None:
        card = self._get_card(card_id, user)
        if self.repo.card_has_history(self.db, card.id):
            raise HTTPException(
                status_code=400, detail="Card has assignment history; set its status to inactive instead"
            )
        self.repo.delete(self.db, card)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def get_assignments(self, user: User, active: Optional[bool] = None) -> list[GasCardAssignment]:
        """Fleet managers see every assignment; others only their own"""
        owner = None if has_permission(user, "fleet.manage") else user.id
        return self.repo.get_assignments(self.db, user.organization_id, active, owner)

    def get_my_assignments(self, user: User, active: Optional[bool] = None) -> list[GasCardAssignment]:
        return self.repo.get_assignments(self.db, user.organization_id, active, user.id)

    async def _assign(
        self,
        card: GasCard,
        assignee: User,
        assigned_by: User,
        expected_return_date: Optional[datetime],
        purpose: Optional[str],
        notes: Optional[str],
    ) -> GasCardAssignment:
        if card.status != "active":
            raise HTTPException(status_code=400, detail=f"Only active cards can be assigned (card is {card.status})")
        if self.repo.get_open_assignment(self.db, card.id):
            raise HTTPException(status_code=409, detail="Gas card is already assigned")

        assignment = self.repo.add(
            self.db,
            GasCardAssignment(
                organization_id=card.organization_id,
                gas_card_id=card.id,
                assigned_to_user_id=assignee.id,
                assigned_by_user_id=assigned_by.id,
                assigned_date=datetime.utcnow(),
                expected_return_date=expected_return_date,
                purpose=purpose,
                notes=notes,
                status="assigned",
            ),
        )
        logger.info(f"⛽ Gas card {card.id} assigned to user {assignee.id} by {assigned_by.id}")
        await publish(
            card.organization_id, "gas_card_assigned", to_assignment_response(assignment).model_dump(mode="json")
        )
        return assignment

    async def create_assignment(self, data: AssignmentCreate, user: User) -> GasCardAssignment:
        card = self._get_card(data.gas_card_id, user)
        assignee = self.repo.get_user(self.db, data.assigned_to_user_id, user.organization_id)
        if not assignee or not assignee.is_active:
            raise HTTPException(status_code=404, detail="User not found")
        return await self._assign(card, assignee, user, data.expected_return_date, data.purpose, data.notes)

    async def checkout(self, card_id: int, data: CheckoutRequest, user: User) -> GasCardAssignment:
        """Self check-out: the caller is both assignee and assigner"""
        card = self._get_card(card_id, user)
        return await self._assign(card, user, user, data.expected_return_date, data.purpose, data.notes)

    async def return_card(self, assignment_id: int, user: User, notes: Optional[str] = None) -> GasCardAssignment:
        assignment = self.repo.get_assignment(self.db, assignment_id, user.organization_id)
        if not assignment:
            raise HTTPException(status_code=404, detail="Assignment not found")
        if assignment.assigned_to_user_id != user.id and not has_permission(user, "fleet.manage"):
            raise HTTPException(status_code=403, detail="Only the card holder or a fleet manager can return it")
        if assignment.status == "returned":
            raise HTTPException(status_code=400, detail="Gas card already returned")

        updates = {"status": "returned", "returned_date": datetime.utcnow()}
        if notes:
            updates["notes"] = f"{assignment.notes}\n{notes}" if assignment.notes else notes
        assignment = self.repo.update(self.db, assignment, **updates)
        logger.info(f"⛽ Gas card {assignment.gas_card_id} returned (assignment {assignment.id})")
        await publish(
            assignment.organization_id,
            "gas_card_returned",
            to_assignment_response(assignment).model_dump(mode="json"),
        )
        return assignment

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    def get_vehicles(self, user: User) -> list[Vehicle]:
        return self.repo.get_vehicles(self.db, user.organization_id)

    def _get_vehicle(self, vehicle_id: int, user: User) -> Vehicle:
        vehicle = self.repo.get_vehicle(self.db, vehicle_id, user.organization_id)
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")
        return vehicle

    def create_vehicle(self, data: VehicleCreate, user: User) -> Vehicle:
        if data.assigned_user_id is not None and not self.repo.get_user(
            self.db, data.assigned_user_id, user.organization_id
        ):
            raise HTTPException(status_code=404, detail="User not found")
        return self.repo.add(self.db, Vehicle(organization_id=user.organization_id, **data.model_dump()))

    async def record_location(self, vehicle_id: int, data: LocationCreate, user: User) -> VehicleLocation:
        """Store a ping; distance and speed come from the previous ping"""
        vehicle = self._get_vehicle(vehicle_id, user)
        if not vehicle.is_active:
            raise HTTPException(status_code=400, detail="Vehicle is inactive")

        recorded_at = data.recorded_at or datetime.utcnow()
        previous = self.repo.get_latest_location(self.db, vehicle.id)

        distance = 0.0
        speed = data.speed_mph or 0.0
        if previous:
            distance = haversine_distance(previous.latitude, previous.longitude, data.latitude, data.longitude)
            elapsed = (recorded_at - previous.recorded_at).total_seconds()
            if data.speed_mph is None:
                speed = calculate_speed(distance, elapsed)

        location = self.repo.add(
            self.db,
            VehicleLocation(
                organization_id=vehicle.organization_id,
                vehicle_id=vehicle.id,
                latitude=data.latitude,
                longitude=data.longitude,
                speed_mph=round(speed, 2),
                heading=data.heading,
                distance_from_previous_miles=round(distance, 4),
                is_moving=is_significant_movement(distance, speed),
                recorded_at=recorded_at,
            ),
        )

        await publish(
            vehicle.organization_id,
            "vehicle_location",
            {
                "vehicle_id": vehicle.id,
                "vehicle_name": vehicle.name,
                "latitude": location.latitude,
                "longitude": location.longitude,
                "speed_mph": location.speed_mph,
                "heading": location.heading,
                "is_moving": location.is_moving,
                "distance_from_previous_miles": location.distance_from_previous_miles,
                "recorded_at": location.recorded_at.isoformat(),
            },
        )
        if not location.is_moving:
            await self._check_long_stop(vehicle, location)
        return location

    async def _check_long_stop(self, vehicle: Vehicle, location: VehicleLocation) -> None:
        stopped_since = self.repo.get_stop_start(self.db, vehicle.id)
        if stopped_since is None:
            return
        stopped_minutes = int((location.recorded_at - stopped_since).total_seconds() // 60)
        if stopped_minutes < STOP_ALERT_MINUTES:
            return

        recent = datetime.utcnow() - timedelta(minutes=ALERT_DEDUP_MINUTES)
        if self.repo.stop_alert_sent_since(self.db, vehicle, recent):
            return

        logger.info(f"🛑 Vehicle {vehicle.id} stopped for {stopped_minutes} min")
        managers = [
            u for u in self.repo.get_active_users(self.db, vehicle.organization_id) if has_permission(u, "fleet.manage")
        ]
        for manager in managers:
            await self.notifications.notify(
                manager,
                "vehicle_stopped",
                "Vehicle stopped",
                f"{vehicle.name} has not moved for {stopped_minutes} minutes",
                priority="high",
                related_entity_type="vehicle",
                related_entity_id=vehicle.id,
            )

        await publish(
            vehicle.organization_id,
            "vehicle_stopped",
            {
                "vehicle_id": vehicle.id,
                "name": vehicle.name,
                "latitude": location.latitude,
                "longitude": location.longitude,
                "stopped_since": stopped_since.isoformat(),
                "stopped_minutes": stopped_minutes,
            },
        )

    def get_latest_location(self, vehicle_id: int, user: User) -> VehicleLocation:
        vehicle = self._get_vehicle(vehicle_id, user)
        location = self.repo.get_latest_location(self.db, vehicle.id)
        if not location:
            raise HTTPException(status_code=404, detail="No location reported for this vehicle")
        return location
