"""Dispatch router - scheduled jobs, status updates and route optimisation"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...config import DISPATCH_RATE_LIMIT_RPM
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...services.directions import DirectionsClient, get_directions_client
from .schemas import (
    JobCreate,
    JobResponse,
    JobStatusResponse,
    JobStatusUpdate,
    JobUpdate,
    OptimizeRouteRequest,
    RouteOptimization,
)
from .service import DispatchService, to_job_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dispatch", tags=["Dispatch"])

rate_limit_optimize = create_rate_limiter(
    limit=DISPATCH_RATE_LIMIT_RPM, window_seconds=60, key_prefix="optimize_route"
)


def get_dispatch_service(
    db: Session = Depends(get_db), directions: DirectionsClient = Depends(get_directions_client)
) -> DispatchService:
    """Dependency injection for DispatchService"""
    return DispatchService(db, directions)


# ============================================================================
# JOBS
# ============================================================================


@router.get("/scheduled-jobs", response_model=list[JobResponse])
async def get_scheduled_jobs(
    day: Optional[date] = Query(None, alias="date", description="Day to list (YYYY-MM-DD), defaults to today"),
    assigned_user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_permission("dispatch.view")),
    service: DispatchService = Depends(get_dispatch_service),
):
    jobs = service.get_scheduled_jobs(current_user, day, assigned_user_id)
    return [to_job_response(job) for job in jobs]


@router.post("/jobs", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    current_user: User = Depends(require_permission("dispatch.manage")),
    service: DispatchService = Depends(get_dispatch_service),
):
    return to_job_response(await service.create_job(data, current_user))


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: int,
    current_user: User = Depends(require_permission("dispatch.view")),
    service: DispatchService = Depends(get_dispatch_service),
):
    return to_job_response(service.get_job(job_id, current_user))


@router.put("/jobs/{job_id}", response_model=JobResponse)
async def update_job(
    job_id: int,
    data: JobUpdate,
    current_user: User = Depends(require_permission("dispatch.manage")),
    service: DispatchService = Depends(get_dispatch_service),
):
    return to_job_response(await service.update_job(job_id, data, current_user))


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(
    job_id: int,
    current_user: User = Depends(require_permission("dispatch.manage")),
    service: DispatchService = Depends(get_dispatch_service),
):
    await service.delete_job(job_id, current_user)
    return Response(status_code=204)


@router.patch("/jobs/{job_id}/status", response_model=JobStatusResponse)
async def update_job_status(
    job_id: int,
    data: JobStatusUpdate,
    current_user: User = Depends(require_permission("dispatch.view")),
    service: DispatchService = Depends(get_dispatch_service),
):
    """Move a job through scheduled -> in_progress -> completed"""
    return await service.update_status(job_id, data, current_user)


# ============================================================================
# ROUTE OPTIMISATION
# ============================================================================


@router.post("/optimize-route", response_model=RouteOptimization)
async def optimize_route(
    data: OptimizeRouteRequest,
    _: None = Depends(rate_limit_optimize),
    current_user: User = Depends(require_permission("dispatch.view")),
    service: DispatchService = Depends(get_dispatch_service),
):
    """
    Order the day's stops nearest-first from the start location and price
    each leg with live traffic where Google Directions is available.
    """
    logger.info(f"🗺️ Route optimisation requested by user {current_user.id} for {len(data.jobs)} stops")
    return await service.optimize(data, current_user)
