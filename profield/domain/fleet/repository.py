"""Fleet repository - Database operations for gas cards and vehicles"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import User
from ...models_fleet import GasCard, GasCardAssignment, GasCardProvider, Vehicle, VehicleLocation
from ...models_messaging import Notification


class FleetRepository:
    """Repository for fleet database operations"""

    @staticmethod
    def add(db: Session, obj):
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj

    @staticmethod
    def update(db: Session, obj, **updates):
        for key, value in updates.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
        db.commit()
        db.refresh(obj)
        return obj

    @staticmethod
    def delete(db: Session, obj) -> None:
        db.delete(obj)
        db.commit()

    @staticmethod
    def get_user(db: Session, user_id: int, organization_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id, User.organization_id == organization_id).first()

    # Providers

    @staticmethod
    def get_providers(db: Session, organization_id: int) -> list[GasCardProvider]:
        return (
            db.query(GasCardProvider)
            .filter(GasCardProvider.organization_id == organization_id)
            .order_by(GasCardProvider.name)
            .all()
        )

    @staticmethod
    def get_provider(db: Session, provider_id: int, organization_id: int) -> Optional[GasCardProvider]:
        return (
            db.query(GasCardProvider)
            .filter(GasCardProvider.id == provider_id, GasCardProvider.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def provider_name_exists(db: Session, organization_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(GasCardProvider.id).filter(
            GasCardProvider.organization_id == organization_id,
            func.lower(GasCardProvider.name) == name.lower(),
        )
        if exclude_id:
            query = query.filter(GasCardProvider.id != exclude_id)
        return query.first() is not None

    # Cards

    @staticmethod
    def get_cards(db: Session, organization_id: int) -> list[GasCard]:
        return db.query(GasCard).filter(GasCard.organization_id == organization_id).order_by(GasCard.card_name).all()

    @staticmethod
    def get_card(db: Session, card_id: int, organization_id: int) -> Optional[GasCard]:
        return db.query(GasCard).filter(GasCard.id == card_id, GasCard.organization_id == organization_id).first()

    @staticmethod
    def get_open_assignment(db: Session, card_id: int) -> Optional[GasCardAssignment]:
        return (
            db.query(GasCardAssignment)
            .filter(GasCardAssignment.gas_card_id == card_id, GasCardAssignment.status == "assigned")
            .first()
        )

    @staticmethod
    def open_assignments_by_card(db: Session, organization_id: int) -> dict[int, int]:
        rows = (
            db.query(GasCardAssignment.gas_card_id, GasCardAssignment.assigned_to_user_id)
            .filter(GasCardAssignment.organization_id == organization_id, GasCardAssignment.status == "assigned")
            .all()
        )
        return {card_id: user_id for card_id, user_id in rows}

    @staticmethod
    def card_has_history(db: Session, card_id: int) -> bool:
        return db.query(GasCardAssignment.id).filter(GasCardAssignment.gas_card_id == card_id).first() is not None

    # Assignments

    @staticmethod
    def get_assignments(
        db: Session, organization_id: int, active: Optional[bool] = None, user_id: Optional[int] = None
    ) -> list[GasCardAssignment]:
        query = (
            db.query(GasCardAssignment)
            .options(joinedload(GasCardAssignment.gas_card), joinedload(GasCardAssignment.assigned_to))
            .filter(GasCardAssignment.organization_id == organization_id)
        )
        if active is True:
            query = query.filter(GasCardAssignment.status == "assigned")
        elif active is False:
            query = query.filter(GasCardAssignment.status == "returned")
        if user_id is not None:
            query = query.filter(GasCardAssignment.assigned_to_user_id == user_id)
        return query.order_by(GasCardAssignment.assigned_date.desc(), GasCardAssignment.id.desc()).all()

    @staticmethod
    def get_assignment(db: Session, assignment_id: int, organization_id: int) -> Optional[GasCardAssignment]:
        return (
            db.query(GasCardAssignment)
            .filter(GasCardAssignment.id == assignment_id, GasCardAssignment.organization_id == organization_id)
            .first()
        )

    # Vehicles

    @staticmethod
    def get_vehicles(db: Session, organization_id: int) -> list[Vehicle]:
        return db.query(Vehicle).filter(Vehicle.organization_id == organization_id).order_by(Vehicle.name).all()

    @staticmethod
    def get_vehicle(db: Session, vehicle_id: int, organization_id: int) -> Optional[Vehicle]:
        return db.query(Vehicle).filter(Vehicle.id == vehicle_id, Vehicle.organization_id == organization_id).first()

    @staticmethod
    def get_latest_location(db: Session, vehicle_id: int) -> Optional[VehicleLocation]:
        return (
            db.query(VehicleLocation)
            .filter(VehicleLocation.vehicle_id == vehicle_id)
            .order_by(VehicleLocation.recorded_at.desc(), VehicleLocation.id.desc())
            .first()
        )

    @staticmethod
    def get_stop_start(db: Session, vehicle_id: int) -> Optional[datetime]:
        """
        When the vehicle's current stop began: the last ping that was still
        moving, or its first ping if it has never moved.
        """
        last_moving = (
            db.query(func.max(VehicleLocation.recorded_at))
            .filter(VehicleLocation.vehicle_id == vehicle_id, VehicleLocation.is_moving.is_(True))
            .scalar()
        )
        if last_moving is not None:
            return last_moving
        return db.query(func.min(VehicleLocation.recorded_at)).filter(VehicleLocation.vehicle_id == vehicle_id).scalar()

    @staticmethod
    def stop_alert_sent_since(db: Session, vehicle: Vehicle, since: datetime) -> bool:
        return (
            db.query(Notification.id)
            .filter(
                Notification.organization_id == vehicle.organization_id,
                Notification.type == "vehicle_stopped",
                Notification.related_entity_type == "vehicle",
                Notification.related_entity_id == vehicle.id,
                Notification.created_at >= since,
            )
            .first()
            is not None
        )

    @staticmethod
    def get_active_users(db: Session, organization_id: int) -> list[User]:
        return (
            db.query(User)
            .filter(User.organization_id == organization_id, User.is_active.is_(True))
            .order_by(User.id)
            .all()
        )
