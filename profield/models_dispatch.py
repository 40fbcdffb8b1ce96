"""
Dispatch model - scheduled field jobs
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    assigned_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    title = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    scheduled_start = Column(DateTime, nullable=False, index=True)
    estimated_duration = Column(Integer, default=60, nullable=False)  # Minutes on site
    priority = Column(String(20), default="medium", nullable=False)  # low, medium, high, urgent
    # scheduled, in_progress, completed, cancelled
    status = Column(String(20), default="scheduled", nullable=False, index=True)
    status_notes = Column(Text, nullable=True)
    last_known_location = Column(String(255), nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    assigned_user = relationship("User", foreign_keys=[assigned_user_id])
