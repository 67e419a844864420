"""
Route Store — persisted plans, one per (technician, date).

Re-planning replaces the previous plan wholesale: old header and stops are
deleted and the new ones inserted inside a single transaction, so readers see
either the old plan or the new one, never a merge.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.route_plan import RoutePlan, RouteStop
from services.route_planner import RoutePlanResult

logger = logging.getLogger(__name__)


class RouteRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, technician_id: uuid.UUID, route_date: date) -> RoutePlan | None:
        result = await self.db.execute(
            select(RoutePlan)
            .where(RoutePlan.technician_id == technician_id, RoutePlan.route_date == route_date)
            .options(selectinload(RoutePlan.stops))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        technician_id: uuid.UUID,
        route_date: date,
        plan: RoutePlanResult,
        start_address: str | None = None,
    ) -> RoutePlan:
        """
        Replace the stored plan for (technician, date).

        A concurrent writer can insert between our delete and insert; the
        unique constraint rejects one of us and the loser retries once.
        """
        try:
            return await self._replace(technician_id, route_date, plan, start_address)
        except IntegrityError:
            await self.db.rollback()
            logger.warning(
                "Route replace for technician %s on %s lost a race, retrying",
                technician_id, route_date,
            )
        return await self._replace(technician_id, route_date, plan, start_address)

    async def _replace(
        self,
        technician_id: uuid.UUID,
        route_date: date,
        plan: RoutePlanResult,
        start_address: str | None,
    ) -> RoutePlan:
        existing_ids = select(RoutePlan.id).where(
            RoutePlan.technician_id == technician_id,
            RoutePlan.route_date == route_date,
        )
        await self.db.execute(
            delete(RouteStop)
            .where(RouteStop.route_id.in_(existing_ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(RoutePlan)
            .where(RoutePlan.technician_id == technician_id, RoutePlan.route_date == route_date)
            .execution_options(synchronize_session=False)
        )

        route = RoutePlan(
            technician_id=technician_id,
            route_date=route_date,
            start_address=start_address,
            start_lat=plan.start.lat,
            start_lng=plan.start.lng,
            start_time=plan.start_time,
            end_time=plan.end_time,
            total_distance_meters=int(round(plan.total_distance_meters)),
            total_duration_seconds=int(round(plan.total_duration_seconds)),
            stop_count=len(plan.stops),
            algorithm=plan.algorithm,
            stops=[
                RouteStop(
                    job_id=uuid.UUID(stop.job_id),
                    stop_order=stop.order,
                    address=stop.address,
                    lat=stop.coordinates.lat,
                    lng=stop.coordinates.lng,
                    estimated_arrival=stop.arrival,
                    estimated_departure=stop.departure,
                    dwell_minutes=stop.dwell_minutes,
                    drive_seconds_from_previous=int(round(stop.drive_seconds)),
                    distance_meters_from_previous=int(round(stop.distance_meters)),
                )
                for stop in plan.stops
            ],
        )
        self.db.add(route)
        await self.db.commit()

        logger.info(
            "Stored route for technician %s on %s: %d stops",
            technician_id, route_date, route.stop_count,
        )
        return route
