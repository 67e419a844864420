"""Job API endpoints — create, fetch, lifecycle events, cancel."""

import uuid
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.job import Job
from models.technician import Technician
from schemas import JobCreate, JobEventCreate, JobEventResponse, JobResponse, TransitionResponse
from services.errors import Conflict, InvalidTransition, JobNotFound, LifecycleError, NotAssigned, error_detail
from services.job_repository import JobRepository
from services.lifecycle import LifecycleEvent, TransitionOutcome, cancel_job, submit_event
from services.notifications import NotificationSink, WebhookNotifier

router = APIRouter()

LIFECYCLE_HTTP_STATUS = {
    InvalidTransition: 409,
    NotAssigned: 403,
    JobNotFound: 404,
    Conflict: 409,
}


def get_notifier() -> NotificationSink:
    return WebhookNotifier()


def _lifecycle_http_error(e: LifecycleError) -> HTTPException:
    return HTTPException(status_code=LIFECYCLE_HTTP_STATUS.get(type(e), 400), detail=error_detail(e))


def _transition_response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        job_id=outcome.job_id,
        previous_status=outcome.previous_status,
        new_status=outcome.new_status,
        changed=outcome.changed,
        applied=outcome.applied,
    )


# ── CRUD ───────────────────────────────────────────────────

@router.post("/", response_model=JobResponse)
async def create_job(data: JobCreate, db: AsyncSession = Depends(get_db)):
    """Schedule a new job for a technician."""
    result = await db.execute(select(Technician).where(Technician.id == data.technician_id))
    if not result.scalar_one_or_none():
        raise HTTPException(
            status_code=404,
            detail={"error": "TechnicianNotFound", "message": f"Technician {data.technician_id} not found"},
        )

    job = Job(**data.model_dump())
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    job = await JobRepository(db).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=error_detail(JobNotFound(str(job_id))))
    return job


@router.get("/{job_id}/events", response_model=list[JobEventResponse])
async def list_job_events(job_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Audit trail of applied lifecycle events, oldest first."""
    repo = JobRepository(db)
    if not await repo.get_job(job_id):
        raise HTTPException(status_code=404, detail=error_detail(JobNotFound(str(job_id))))
    return await repo.list_events(job_id)


# ── Lifecycle ──────────────────────────────────────────────

@router.post("/{job_id}/events", response_model=TransitionResponse)
async def post_job_event(
    job_id: uuid.UUID,
    data: JobEventCreate,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    """
    Submit an en_route / check_in / check_out event from the field.

    Duplicates are answered with `changed: false` instead of an error.
    """
    event = LifecycleEvent(
        job_id=job_id,
        kind=data.kind,
        technician_id=data.technician_id,
        lat=data.lat,
        lng=data.lng,
        occurred_at=data.timestamp or datetime.now(timezone.utc),
        eta_minutes=data.eta_minutes,
    )
    try:
        outcome = await submit_event(event, JobRepository(db), notifier)
    except LifecycleError as e:
        raise _lifecycle_http_error(e)
    return _transition_response(outcome)


@router.post("/{job_id}/cancel", response_model=TransitionResponse)
async def cancel(
    job_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    try:
        outcome = await cancel_job(job_id, JobRepository(db), notifier)
    except LifecycleError as e:
        raise _lifecycle_http_error(e)
    return _transition_response(outcome)
