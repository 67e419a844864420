"""Route planning API endpoints — plan, fetch and preview a technician's day."""

import logging
import uuid
from datetime import date, datetime, time, timezone
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import get_db
from models.technician import Technician
from schemas import (
    DroppedJobResponse,
    PlanRouteResponse,
    PreviewStop,
    RoutePlanRequest,
    RoutePlanResponse,
    RoutePreviewResponse,
    RouteSummary,
)
from services.duration_model import estimate_service_minutes
from services.errors import NoRoutableStops, TravelEstimationFailed, error_detail
from services.job_repository import JobRepository
from services.maps import MapsGeocoder, MapsTravelEstimator
from services.route_planner import (
    Geocoder,
    RoutableJob,
    TravelEstimator,
    format_distance,
    format_duration,
    plan_route,
)
from services.route_store import RouteRepository

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Collaborators (overridable in tests) ───────────────────

def get_geocoder() -> Geocoder:
    return MapsGeocoder()


def get_travel_estimator() -> TravelEstimator:
    return MapsTravelEstimator()


def _start_datetime(route_date: date, hhmm: str) -> datetime:
    try:
        hour, minute = (int(part) for part in hhmm.split(":"))
        return datetime.combine(route_date, time(hour, minute), tzinfo=timezone.utc)
    except ValueError:
        raise HTTPException(
            status_code=422,
            detail={"error": "InvalidStartTime", "message": f"Invalid start time '{hhmm}'"},
        )


async def _get_technician(db: AsyncSession, technician_id: uuid.UUID) -> Technician:
    result = await db.execute(select(Technician).where(Technician.id == technician_id))
    technician = result.scalar_one_or_none()
    if not technician:
        raise HTTPException(
            status_code=404,
            detail={"error": "TechnicianNotFound", "message": f"Technician {technician_id} not found"},
        )
    return technician


# ── Planning ───────────────────────────────────────────────

@router.post("/plan", response_model=PlanRouteResponse)
async def plan_technician_route(
    data: RoutePlanRequest,
    db: AsyncSession = Depends(get_db),
    geocoder: Geocoder = Depends(get_geocoder),
    estimator: TravelEstimator = Depends(get_travel_estimator),
):
    """
    Plan and store the technician's route for one day.

    Replaces any plan already stored for the same technician and date.
    Jobs whose address cannot be geocoded are left off the route and
    reported in `dropped`.
    """
    technician = await _get_technician(db, data.technician_id)

    start_address = data.start_address or technician.home_address
    if not start_address:
        raise HTTPException(
            status_code=400,
            detail={"error": "StartAddressRequired", "message": "No start address given and technician has no home address"},
        )
    start = await geocoder.resolve(start_address)
    if start is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "StartAddressNotFound", "message": f"Could not geocode start address '{start_address}'"},
        )
    start_time = _start_datetime(data.date, data.start_time or settings.DEFAULT_START_TIME)

    jobs_repo = JobRepository(db)
    jobs = await jobs_repo.get_assigned_jobs(technician.id, data.date)
    if not jobs:
        raise HTTPException(
            status_code=422,
            detail={"error": "NoRoutableStops", "message": f"No jobs scheduled for {data.date}"},
        )

    try:
        result = await plan_route(
            start,
            start_time,
            [RoutableJob.from_job(job) for job in jobs],
            geocoder=geocoder,
            estimator=estimator,
        )
    except NoRoutableStops as e:
        raise HTTPException(status_code=422, detail={**error_detail(e), "dropped_job_ids": e.dropped_job_ids})
    except TravelEstimationFailed as e:
        logger.warning("Planning failed for technician %s on %s: %s", technician.id, data.date, e)
        raise HTTPException(status_code=503, detail=error_detail(e))

    await jobs_repo.save_coordinates(result.geocoded)
    route = await RouteRepository(db).upsert(technician.id, data.date, result, start_address=start_address)

    return PlanRouteResponse(
        plan=RoutePlanResponse.model_validate(route),
        dropped_job_ids=result.dropped_job_ids,
        dropped=[
            DroppedJobResponse(job_id=d.job_id, address=d.address, reason=d.reason)
            for d in result.dropped
        ],
        summary=RouteSummary(
            total_stops=len(result.stops),
            total_distance=format_distance(result.total_distance_meters),
            total_duration=format_duration(result.total_duration_seconds),
            end_time=result.end_time,
        ),
    )


# ── Stored plans ───────────────────────────────────────────

@router.get("/{technician_id}/{route_date}", response_model=RoutePlanResponse)
async def get_route(technician_id: uuid.UUID, route_date: date, db: AsyncSession = Depends(get_db)):
    """Stored plan for the technician and date."""
    route = await RouteRepository(db).get(technician_id, route_date)
    if not route:
        raise HTTPException(
            status_code=404,
            detail={"error": "RouteNotFound", "message": f"No route planned for {route_date}"},
        )
    return route


@router.get("/{technician_id}/{route_date}/preview", response_model=RoutePreviewResponse)
async def preview_route(technician_id: uuid.UUID, route_date: date, db: AsyncSession = Depends(get_db)):
    """Unsaved view of the day's jobs with dwell estimates, in scheduled order."""
    await _get_technician(db, technician_id)
    jobs = await JobRepository(db).get_assigned_jobs(technician_id, route_date)
    stored = await RouteRepository(db).get(technician_id, route_date)

    stops = [
        PreviewStop(
            job_id=job.id,
            address=job.full_address,
            scheduled_time=job.scheduled_time,
            has_coordinates=job.has_coordinates,
            dwell_minutes=estimate_service_minutes(job.property_sqft),
        )
        for job in jobs
    ]
    total_dwell = sum(s.dwell_minutes for s in stops)

    planned_ids = {stop.job_id for stop in stored.stops} if stored else set()
    needs_optimization = bool(jobs) and planned_ids != {job.id for job in jobs}

    return RoutePreviewResponse(
        technician_id=technician_id,
        date=route_date,
        stops=stops,
        total_dwell_minutes=total_dwell,
        estimated_duration=format_duration(total_dwell * 60),
        needs_optimization=needs_optimization,
    )
