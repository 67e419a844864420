"""Tests for route persistence and the job repository (in-memory SQLite)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from conftest import ROUTE_DATE, make_job
from models.route_plan import RouteStop
from services.job_repository import JobRepository
from services.maps import Coordinates
from services.route_planner import PlannedStop, RoutePlanResult
from services.route_store import RouteRepository

START = Coordinates(39.80, -89.65)
NINE_AM = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def jobs(db, technician):
    rows = [
        make_job(technician.id, "1 First St", lat=39.81, lng=-89.65, property_sqft=1200),
        make_job(technician.id, "2 Second St", lat=39.82, lng=-89.65, property_sqft=3000),
        make_job(technician.id, "3 Third St"),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


def plan_for(jobs) -> RoutePlanResult:
    clock = NINE_AM
    stops = []
    for i, job in enumerate(jobs, 1):
        arrival = clock + timedelta(minutes=10)
        departure = arrival + timedelta(minutes=60)
        stops.append(PlannedStop(
            job_id=str(job.id),
            order=i,
            address=job.full_address,
            coordinates=Coordinates(39.80 + i / 100, -89.65),
            arrival=arrival,
            departure=departure,
            dwell_minutes=60,
            drive_seconds=600.4,
            distance_meters=1609.6,
        ))
        clock = departure
    return RoutePlanResult(
        start=START,
        start_time=NINE_AM,
        end_time=clock,
        stops=stops,
        total_distance_meters=1609.6 * len(stops),
        total_duration_seconds=4200.4 * len(stops),
    )


@pytest.mark.asyncio
async def test_upsert_then_get(db, technician, jobs):
    repo = RouteRepository(db)
    await repo.upsert(technician.id, ROUTE_DATE, plan_for(jobs[:2]), start_address="100 Main St")

    stored = await repo.get(technician.id, ROUTE_DATE)
    assert stored is not None
    assert stored.stop_count == 2
    assert stored.start_address == "100 Main St"
    assert stored.algorithm == "nearest_neighbor"
    assert [s.stop_order for s in stored.stops] == [1, 2]
    assert [s.job_id for s in stored.stops] == [jobs[0].id, jobs[1].id]
    assert stored.stops[0].drive_seconds_from_previous == 600
    assert stored.total_distance_meters == 3219


@pytest.mark.asyncio
async def test_replan_replaces_without_merge(db, technician, jobs):
    repo = RouteRepository(db)
    await repo.upsert(technician.id, ROUTE_DATE, plan_for(jobs))
    await repo.upsert(technician.id, ROUTE_DATE, plan_for([jobs[2]]))

    stored = await repo.get(technician.id, ROUTE_DATE)
    assert stored.stop_count == 1
    assert [s.job_id for s in stored.stops] == [jobs[2].id]

    total_stops = (await db.execute(select(func.count()).select_from(RouteStop))).scalar_one()
    assert total_stops == 1


@pytest.mark.asyncio
async def test_get_missing_plan(db, technician):
    assert await RouteRepository(db).get(technician.id, ROUTE_DATE) is None


@pytest.mark.asyncio
async def test_assigned_jobs_excludes_finished(db, technician, jobs):
    repo = JobRepository(db)
    assert await repo.update_status(jobs[0].id, "scheduled", "cancelled")

    assigned = await repo.get_assigned_jobs(technician.id, ROUTE_DATE)
    assert {j.id for j in assigned} == {jobs[1].id, jobs[2].id}
    assert await repo.get_assigned_jobs(technician.id, ROUTE_DATE + timedelta(days=1)) == []


@pytest.mark.asyncio
async def test_conditional_update_rejects_stale_status(db, jobs):
    repo = JobRepository(db)
    assert await repo.update_status(jobs[0].id, "scheduled", "en_route")
    assert not await repo.update_status(jobs[0].id, "scheduled", "in_progress")
    assert (await repo.get_job(jobs[0].id)).status == "en_route"


@pytest.mark.asyncio
async def test_save_coordinates(db, jobs):
    repo = JobRepository(db)
    await repo.save_coordinates({str(jobs[2].id): Coordinates(39.83, -89.66)})

    fresh = await repo.get_job(jobs[2].id)
    assert fresh.has_coordinates
    assert fresh.lat == pytest.approx(39.83)
