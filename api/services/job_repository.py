"""Job persistence used by the planner endpoints and the lifecycle tracker."""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.job import Job, JobEvent
from services.maps import Coordinates

# Jobs still waiting to be visited; only these are planned
PLANNABLE_STATUSES = ("scheduled", "en_route")


class JobRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_job(self, job_id: uuid.UUID) -> Job | None:
        result = await self.db.execute(
            select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_assigned_jobs(self, technician_id: uuid.UUID, route_date: date) -> list[Job]:
        result = await self.db.execute(
            select(Job)
            .where(
                Job.technician_id == technician_id,
                Job.scheduled_date == route_date,
                Job.status.in_(PLANNABLE_STATUSES),
            )
            .order_by(Job.scheduled_time, Job.created_at)
        )
        return list(result.scalars().all())

    async def list_jobs(self, technician_id: uuid.UUID, route_date: date | None = None) -> list[Job]:
        query = select(Job).where(Job.technician_id == technician_id)
        if route_date:
            query = query.where(Job.scheduled_date == route_date)
        result = await self.db.execute(query.order_by(Job.scheduled_date, Job.scheduled_time))
        return list(result.scalars().all())

    async def save_coordinates(self, geocoded: dict[str, Coordinates]) -> None:
        """Write geocoded coordinates back so the next plan skips the lookup."""
        if not geocoded:
            return
        for job_id, coords in geocoded.items():
            await self.db.execute(
                update(Job)
                .where(Job.id == uuid.UUID(job_id))
                .values(lat=coords.lat, lng=coords.lng)
                .execution_options(synchronize_session=False)
            )
        await self.db.commit()

    async def update_status(
        self,
        job_id: uuid.UUID,
        expected_status: str,
        new_status: str,
        fields: dict | None = None,
        event: JobEvent | None = None,
    ) -> bool:
        """
        Conditionally move a job from expected_status to new_status.

        The write (and the optional audit event) only lands if the row still
        holds expected_status. Returns False when another writer got there
        first; the update matched no row and nothing is written.
        """
        result = await self.db.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == expected_status)
            .values(status=new_status, **(fields or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False

        if event is not None:
            self.db.add(event)
        await self.db.commit()
        return True

    async def list_events(self, job_id: uuid.UUID) -> list[JobEvent]:
        result = await self.db.execute(
            select(JobEvent).where(JobEvent.job_id == job_id).order_by(JobEvent.id)
        )
        return list(result.scalars().all())
