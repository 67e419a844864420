"""
Job Lifecycle — applies field events to job status.

Events arrive from technicians' phones: possibly late, duplicated or out of
order. Every (current status, event kind) pair is routed through TRANSITIONS:

  scheduled   ─en_route→ en_route ─check_in→ in_progress ─check_out→ completed
  scheduled   ─check_in→ in_progress      (skipping en_route is allowed)

Duplicates resolve to no-ops rather than errors. Writes are conditional on
the status that was read (compare-and-swap); a lost race re-reads once.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from models.job import Job, JobEvent
from services.errors import Conflict, InvalidTransition, JobNotFound, NotAssigned
from services.job_repository import JobRepository
from services.notifications import NotificationSink

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    EN_ROUTE = "en_route"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


CANCEL_KIND = "cancel"
TERMINAL_STATUSES = ("completed", "cancelled")


@dataclass(frozen=True)
class LifecycleEvent:
    job_id: uuid.UUID
    kind: EventKind
    technician_id: uuid.UUID
    lat: float
    lng: float
    occurred_at: datetime
    eta_minutes: int | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    job_id: uuid.UUID
    previous_status: str
    new_status: str
    applied: bool  # effects written (includes en-route refresh)

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status


# (current status, kind) → target status; None = accepted no-op; absent = rejected.
# An en_route ping while en_route targets en_route: location/ETA refresh only.
TRANSITIONS: dict[tuple[str, EventKind], str | None] = {
    ("scheduled", EventKind.EN_ROUTE): "en_route",
    ("scheduled", EventKind.CHECK_IN): "in_progress",
    ("en_route", EventKind.EN_ROUTE): "en_route",
    ("en_route", EventKind.CHECK_IN): "in_progress",
    ("in_progress", EventKind.EN_ROUTE): None,
    ("in_progress", EventKind.CHECK_IN): None,
    ("in_progress", EventKind.CHECK_OUT): "completed",
    ("completed", EventKind.EN_ROUTE): None,
    ("completed", EventKind.CHECK_OUT): None,
}


def _effects(event: LifecycleEvent) -> dict:
    if event.kind is EventKind.EN_ROUTE:
        return {
            "live_lat": event.lat,
            "live_lng": event.lng,
            "eta_minutes": event.eta_minutes,
            "last_location_update": event.occurred_at,
        }
    if event.kind is EventKind.CHECK_IN:
        return {
            "checked_in_at": event.occurred_at,
            "check_in_lat": event.lat,
            "check_in_lng": event.lng,
            "live_lat": None,
            "live_lng": None,
            "eta_minutes": None,
        }
    return {
        "checked_out_at": event.occurred_at,
        "check_out_lat": event.lat,
        "check_out_lng": event.lng,
    }


async def _notify(notifier: NotificationSink | None, job: Job, previous: str, new: str) -> None:
    if notifier is None:
        return
    try:
        await notifier.notify_status_change(job, previous, new)
    except Exception as e:
        logger.error("Status notification failed: job_id=%s, error=%s", job.id, str(e))


async def submit_event(
    event: LifecycleEvent,
    jobs: JobRepository,
    notifier: NotificationSink | None = None,
) -> TransitionOutcome:
    """
    Apply one field event to its job.

    Raises:
        JobNotFound: unknown job id
        NotAssigned: job belongs to another technician
        InvalidTransition: event not allowed from the job's current status
        Conflict: the conditional write lost twice in a row
    """
    job = await jobs.get_job(event.job_id)

    for attempt in range(2):
        if job is None:
            raise JobNotFound(str(event.job_id))
        # checked on every read: the job may be reassigned between attempts
        if job.technician_id != event.technician_id:
            raise NotAssigned(str(event.job_id), str(event.technician_id))

        current = job.status
        key = (current, event.kind)
        if key not in TRANSITIONS:
            raise InvalidTransition(current, event.kind.value)

        target = TRANSITIONS[key]
        if target is None:
            logger.info("Ignoring %s for job %s: already %s", event.kind.value, job.id, current)
            return TransitionOutcome(job.id, current, current, applied=False)

        audit = JobEvent(
            job_id=job.id,
            kind=event.kind.value,
            from_status=current,
            to_status=target,
            technician_id=event.technician_id,
            lat=event.lat,
            lng=event.lng,
            occurred_at=event.occurred_at,
        )
        if await jobs.update_status(job.id, current, target, _effects(event), event=audit):
            if target != current:
                logger.info("Job %s: %s → %s (%s)", job.id, current, target, event.kind.value)
                job = await jobs.get_job(job.id)
                await _notify(notifier, job, current, target)
            return TransitionOutcome(event.job_id, current, target, applied=True)

        logger.warning(
            "Job %s changed under %s (expected %s), re-reading (attempt %d)",
            event.job_id, event.kind.value, current, attempt + 1,
        )
        job = await jobs.get_job(event.job_id)

    raise Conflict(str(event.job_id))


async def cancel_job(
    job_id: uuid.UUID,
    jobs: JobRepository,
    notifier: NotificationSink | None = None,
) -> TransitionOutcome:
    """Move any non-terminal job to cancelled."""
    job = await jobs.get_job(job_id)
    if job is None:
        raise JobNotFound(str(job_id))

    for _ in range(2):
        current = job.status
        if current in TERMINAL_STATUSES:
            raise InvalidTransition(current, CANCEL_KIND)

        now = datetime.now(timezone.utc)
        audit = JobEvent(
            job_id=job.id,
            kind=CANCEL_KIND,
            from_status=current,
            to_status="cancelled",
            occurred_at=now,
        )
        fields = {"cancelled_at": now, "live_lat": None, "live_lng": None, "eta_minutes": None}
        if await jobs.update_status(job.id, current, "cancelled", fields, event=audit):
            logger.info("Job %s cancelled (was %s)", job.id, current)
            job = await jobs.get_job(job.id)
            await _notify(notifier, job, current, "cancelled")
            return TransitionOutcome(job_id, current, "cancelled", applied=True)

        job = await jobs.get_job(job_id)
        if job is None:
            raise JobNotFound(str(job_id))

    raise Conflict(str(job_id))
