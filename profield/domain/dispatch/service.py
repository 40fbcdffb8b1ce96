"""Dispatch service - job scheduling, status workflow and route planning"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_dispatch import Job
from ...permissions import has_permission
from ...services.directions import DirectionsClient
from ...services.events import publish
from ...services.notification_service import NotificationService
from ..customers.service import full_address
from .optimizer import optimize_route
from .repository import JobRepository
from .schemas import (
    JobCreate,
    JobResponse,
    JobStatusResponse,
    JobStatusUpdate,
    JobUpdate,
    OptimizeRouteRequest,
    RouteOptimization,
)

logger = logging.getLogger(__name__)

# Allowed next statuses; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    "scheduled": {"in_progress", "cancelled"},
    "in_progress": {"completed", "scheduled"},
}


def to_job_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        title=job.title,
        customer_id=job.customer_id,
        customer_name=job.customer.name if job.customer else None,
        assigned_user_id=job.assigned_user_id,
        assigned_user_name=job.assigned_user.display_name if job.assigned_user else None,
        address=job.address,
        latitude=job.latitude,
        longitude=job.longitude,
        scheduled_start=job.scheduled_start,
        estimated_duration=job.estimated_duration,
        priority=job.priority,
        status=job.status,
        status_notes=job.status_notes,
        last_known_location=job.last_known_location,
        started_at=job.started_at,
        completed_at=job.completed_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


class DispatchService:
    """Service layer for dispatch business logic"""

    def __init__(self, db: Session, directions: Optional[DirectionsClient] = None):
        self.db = db
        self.repo = JobRepository()
        self.directions = directions
        self.notifications = NotificationService(db)

    def get_scheduled_jobs(
        self, user: User, day: Optional[date] = None, assigned_user_id: Optional[int] = None
    ) -> list[Job]:
        """Jobs for one calendar day (default today)"""
        day = day or datetime.utcnow().date()
        start = datetime.combine(day, time.min)
        return self.repo.get_jobs_between(
            self.db, user.organization_id, start, start + timedelta(days=1), assigned_user_id
        )

    def get_job(self, job_id: int, user: User) -> Job:
        job = self.repo.get_job(self.db, job_id, user.organization_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    def _resolve_references(self, data: dict, user: User) -> dict:
        """Validate customer/assignee ids and copy location from the customer when missing"""
        if data.get("customer_id") is not None:
            customer = self.repo.get_customer(self.db, data["customer_id"], user.organization_id)
            if not customer:
                raise HTTPException(status_code=404, detail="Customer not found")
            if not data.get("address"):
                data["address"] = full_address(customer) or None
            if data.get("latitude") is None and data.get("longitude") is None:
                data["latitude"] = customer.latitude
                data["longitude"] = customer.longitude

        if data.get("assigned_user_id") is not None:
            if not self.repo.get_active_user(self.db, data["assigned_user_id"], user.organization_id):
                raise HTTPException(status_code=404, detail="Assigned user not found")
        return data

    async def _notify_assignee(self, job: Job, user: User) -> None:
        assignee = job.assigned_user
        if not assignee or assignee.id == user.id:
            return
        when = job.scheduled_start.strftime("%b %d %I:%M %p")
        await self.notifications.notify(
            assignee,
            "job_assigned",
            "New job assigned",
            f"{job.title} on {when}" + (f" at {job.address}" if job.address else ""),
            priority="high" if job.priority in ("high", "urgent") else "normal",
            related_entity_type="job",
            related_entity_id=job.id,
            created_by=user.id,
            send_sms=True,
        )

    async def create_job(self, data: JobCreate, user: User) -> Job:
        values = self._resolve_references(data.model_dump(), user)
        job = self.repo.create_job(
            self.db, organization_id=user.organization_id, created_by=user.id, status="scheduled", **values
        )
        logger.info(f"🛠️ Job {job.id} '{job.title}' scheduled for {job.scheduled_start} by user {user.id}")

        await publish(user.organization_id, "job_created", to_job_response(job).model_dump(mode="json"))
        if job.assigned_user_id:
            await self._notify_assignee(job, user)
        return job

    async def update_job(self, job_id: int, data: JobUpdate, user: User) -> Job:
        job = self.get_job(job_id, user)
        updates = data.model_dump(exclude_unset=True)
        for key in ("title", "scheduled_start", "estimated_duration", "priority"):
            if key in updates and updates[key] is None:
                updates.pop(key)

        previous_assignee = job.assigned_user_id
        updates = self._resolve_references(updates, user)
        job = self.repo.update_job(self.db, job, **updates)

        await publish(user.organization_id, "job_updated", to_job_response(job).model_dump(mode="json"))
        if job.assigned_user_id and job.assigned_user_id != previous_assignee:
            await self._notify_assignee(job, user)
        return job

    async def delete_job(self, job_id: int, user: User) -> None:
        job = self.get_job(job_id, user)
        self.repo.delete_job(self.db, job)
        logger.info(f"🗑️ Job {job_id} deleted by user {user.id}")
        await publish(user.organization_id, "job_deleted", {"id": job_id})

    async def update_status(self, job_id: int, data: JobStatusUpdate, user: User) -> JobStatusResponse:
        job = self.get_job(job_id, user)

        if job.assigned_user_id != user.id and not has_permission(user, "dispatch.manage"):
            raise HTTPException(status_code=403, detail="You can only update jobs assigned to you")

        allowed = STATUS_TRANSITIONS.get(job.status, set())
        if data.status not in allowed:
            raise HTTPException(
                status_code=400, detail=f"Cannot change job status from {job.status} to {data.status}"
            )

        now = datetime.utcnow()
        updates = {"status": data.status}
        if data.status == "in_progress" and job.started_at is None:
            updates["started_at"] = now
        elif data.status == "completed":
            updates["completed_at"] = now
        elif data.status == "scheduled":
            updates["started_at"] = None
        if data.notes is not None:
            updates["status_notes"] = data.notes
        if data.location is not None:
            updates["last_known_location"] = data.location

        previous = job.status
        job = self.repo.update_job(self.db, job, **updates)
        logger.info(f"🔄 Job {job.id} {previous} -> {job.status} by user {user.id}")

        response = to_job_response(job)
        await publish(
            user.organization_id,
            "job_status_updated",
            {"job": response.model_dump(mode="json"), "previous_status": previous, "updated_by": user.id},
        )
        if job.assigned_user and job.assigned_user.id != user.id:
            await self.notifications.notify(
                job.assigned_user,
                "job_status_updated",
                "Job status updated",
                f"{job.title} is now {job.status.replace('_', ' ')}",
                related_entity_type="job",
                related_entity_id=job.id,
                created_by=user.id,
            )

        return JobStatusResponse(message=f"Job status updated to {job.status}", job=response)

    async def optimize(self, data: OptimizeRouteRequest, user: User) -> RouteOptimization:
        result = await optimize_route(data.jobs, data.start_location, self.directions)
        await publish(
            user.organization_id,
            "route_optimized",
            {
                "date": (data.date or datetime.utcnow().date()).isoformat(),
                "optimized_order": result.optimized_order,
                "total_distance": result.total_distance,
                "total_duration": result.total_duration,
                "requested_by": user.id,
            },
        )
        return result
