"""
Fleet models - gas cards, card assignments, vehicles and GPS pings
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class GasCardProvider(Base):
    __tablename__ = "gas_card_providers"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_gas_card_provider_name"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    website = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class GasCard(Base):
    __tablename__ = "gas_cards"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    card_name = Column(String(255), nullable=False)
    card_number = Column(String(50), nullable=False)  # Never returned in full
    provider = Column(String(255), nullable=True)
    spending_limit = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive, lost
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    assignments = relationship("GasCardAssignment", back_populates="gas_card")


class GasCardAssignment(Base):
    __tablename__ = "gas_card_assignments"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    gas_card_id = Column(Integer, ForeignKey("gas_cards.id"), nullable=False, index=True)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_date = Column(DateTime, nullable=False)
    expected_return_date = Column(DateTime, nullable=True)
    returned_date = Column(DateTime, nullable=True)
    purpose = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), default="assigned", nullable=False)  # assigned, returned
    created_at = Column(DateTime, server_default=func.now())

    gas_card = relationship("GasCard", back_populates="assignments")
    assigned_to = relationship("User", foreign_keys=[assigned_to_user_id])


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    license_plate = Column(String(20), nullable=True)
    vin = Column(String(17), nullable=True)
    assigned_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class VehicleLocation(Base):
    """A single GPS ping reported for a vehicle"""

    __tablename__ = "vehicle_locations"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    speed_mph = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    distance_from_previous_miles = Column(Float, default=0)
    is_moving = Column(Boolean, default=False, nullable=False)
    recorded_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
