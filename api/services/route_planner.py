"""
Route Planner — Daily visit sequence for one technician.

Nearest-neighbor greedy heuristic:
  - Start at the technician's start location and start time
  - Each round, price the drive from the current position to every
    unvisited job (queries fan out concurrently) and go to the quickest one
  - Arrival = current time + drive; departure = arrival + shoot duration
  - Ties on drive time go to the smaller job id so plans are reproducible

Greedy, not an exact TSP solver. Arrival times depend on the greedy order.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from config import settings
from services.duration_model import estimate_service_minutes
from services.errors import GeocodingFailed, NoRoutableStops, TravelEstimationFailed
from services.maps import Coordinates, TravelEstimate

logger = logging.getLogger(__name__)

ALGORITHM = "nearest_neighbor"
DROP_REASON_GEOCODING = "geocoding_failed"


class Geocoder(Protocol):
    async def resolve(self, address: str) -> Coordinates | None: ...


class TravelEstimator(Protocol):
    async def estimate(self, origin: Coordinates, dest: Coordinates) -> TravelEstimate: ...


@dataclass(frozen=True)
class RoutableJob:
    """The planning-relevant, read-only view of a job."""

    job_id: str
    address: str
    coordinates: Coordinates | None = None
    property_sqft: float | None = None

    @classmethod
    def from_job(cls, job) -> "RoutableJob":
        coords = Coordinates(float(job.lat), float(job.lng)) if job.has_coordinates else None
        return cls(
            job_id=str(job.id),
            address=job.full_address,
            coordinates=coords,
            property_sqft=job.property_sqft,
        )


@dataclass
class PlannedStop:
    job_id: str
    order: int
    address: str
    coordinates: Coordinates
    arrival: datetime
    departure: datetime
    dwell_minutes: int
    drive_seconds: float
    distance_meters: float


@dataclass
class DroppedJob:
    job_id: str
    address: str
    reason: str


@dataclass
class RoutePlanResult:
    start: Coordinates
    start_time: datetime
    end_time: datetime
    stops: list[PlannedStop]
    total_distance_meters: float
    total_duration_seconds: float
    dropped: list[DroppedJob] = field(default_factory=list)
    geocoded: dict[str, Coordinates] = field(default_factory=dict)
    algorithm: str = ALGORITHM

    @property
    def dropped_job_ids(self) -> list[str]:
        return [d.job_id for d in self.dropped]


async def _resolve_coordinates(
    jobs: Sequence[RoutableJob],
    geocoder: Geocoder,
) -> tuple[list[tuple[RoutableJob, Coordinates]], list[DroppedJob], dict[str, Coordinates]]:
    """Geocode jobs lacking coordinates, one at a time. Failures drop the job."""
    routable: list[tuple[RoutableJob, Coordinates]] = []
    dropped: list[DroppedJob] = []
    geocoded: dict[str, Coordinates] = {}

    for job in jobs:
        if job.coordinates is not None:
            routable.append((job, job.coordinates))
            continue

        coords = None
        try:
            coords = await geocoder.resolve(job.address)
        except Exception as e:
            logger.warning("Geocoder error for job %s ('%s'): %s", job.job_id, job.address, e)

        if coords is None:
            logger.warning("Dropping job from route: %s", GeocodingFailed(job.job_id, job.address))
            dropped.append(DroppedJob(job.job_id, job.address, DROP_REASON_GEOCODING))
            continue

        geocoded[job.job_id] = coords
        routable.append((job, coords))

    return routable, dropped, geocoded


async def _estimate_leg(
    estimator: TravelEstimator,
    origin: Coordinates,
    dest: Coordinates,
) -> TravelEstimate:
    try:
        leg = await estimator.estimate(origin, dest)
    except Exception as e:
        raise TravelEstimationFailed(
            f"Drive time unavailable for {origin.lat},{origin.lng} → {dest.lat},{dest.lng}: {e}"
        ) from e

    if (
        leg is None
        or not math.isfinite(leg.duration_seconds)
        or not math.isfinite(leg.distance_meters)
        or leg.duration_seconds < 0
        or leg.distance_meters < 0
    ):
        raise TravelEstimationFailed(
            f"Invalid drive time for {origin.lat},{origin.lng} → {dest.lat},{dest.lng}: {leg!r}"
        )
    return leg


async def _price_round(
    estimator: TravelEstimator,
    position: Coordinates,
    unvisited: list[tuple[RoutableJob, Coordinates]],
) -> list[TravelEstimate]:
    """Price every unvisited job from position concurrently; one failure cancels the rest."""
    tasks = [
        asyncio.create_task(_estimate_leg(estimator, position, coords))
        for _, coords in unvisited
    ]
    try:
        return await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # collect outcomes so no leg outlives the round or leaves an unretrieved error
        await asyncio.gather(*tasks, return_exceptions=True)


async def _sequence(
    start: Coordinates,
    start_time: datetime,
    routable: list[tuple[RoutableJob, Coordinates]],
    estimator: TravelEstimator,
) -> tuple[list[PlannedStop], float, float]:
    unvisited = list(routable)
    position = start
    clock = start_time
    total_distance = 0.0
    total_duration = 0.0
    stops: list[PlannedStop] = []

    while unvisited:
        legs = await _price_round(estimator, position, unvisited)
        best = min(
            range(len(unvisited)),
            key=lambda i: (legs[i].duration_seconds, unvisited[i][0].job_id),
        )
        job, coords = unvisited.pop(best)
        leg = legs[best]

        dwell_minutes = estimate_service_minutes(job.property_sqft)
        arrival = clock + timedelta(seconds=leg.duration_seconds)
        departure = arrival + timedelta(minutes=dwell_minutes)

        stops.append(PlannedStop(
            job_id=job.job_id,
            order=len(stops) + 1,
            address=job.address,
            coordinates=coords,
            arrival=arrival,
            departure=departure,
            dwell_minutes=dwell_minutes,
            drive_seconds=leg.duration_seconds,
            distance_meters=leg.distance_meters,
        ))

        total_distance += leg.distance_meters
        total_duration += leg.duration_seconds + dwell_minutes * 60
        position = coords
        clock = departure

    return stops, total_distance, total_duration


async def plan_route(
    start: Coordinates,
    start_time: datetime,
    jobs: Sequence[RoutableJob],
    *,
    geocoder: Geocoder,
    estimator: TravelEstimator,
    timeout_seconds: float | None = None,
) -> RoutePlanResult:
    """
    Build the day's stop sequence.

    Args:
        start: Where the technician begins the day
        start_time: Planned departure from start
        jobs: Jobs to visit; those without coordinates are geocoded
        geocoder: Resolves addresses for jobs lacking coordinates
        estimator: Prices each drive leg
        timeout_seconds: Bound on the drive-time phase (defaults to PLANNING_TIMEOUT_SEC)

    Returns:
        RoutePlanResult with ordered stops, totals and dropped jobs

    Raises:
        NoRoutableStops: no job could be geocoded
        TravelEstimationFailed: any drive-time query failed or the phase timed out
    """
    routable, dropped, geocoded = await _resolve_coordinates(jobs, geocoder)
    if not routable:
        raise NoRoutableStops([d.job_id for d in dropped])

    timeout = settings.PLANNING_TIMEOUT_SEC if timeout_seconds is None else timeout_seconds
    try:
        stops, total_distance, total_duration = await asyncio.wait_for(
            _sequence(start, start_time, routable, estimator),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise TravelEstimationFailed(
            f"Drive-time estimation exceeded {timeout:.1f}s"
        ) from e

    logger.info(
        "Planned %d stops (%d dropped), %.0f m, %.0f s",
        len(stops), len(dropped), total_distance, total_duration,
    )

    return RoutePlanResult(
        start=start,
        start_time=start_time,
        end_time=stops[-1].departure,
        stops=stops,
        total_distance_meters=total_distance,
        total_duration_seconds=total_duration,
        dropped=dropped,
        geocoded=geocoded,
    )


# ── Display helpers ────────────────────────────────────────

def format_distance(meters: float) -> str:
    """Miles with one decimal, or feet under a tenth of a mile."""
    miles = meters / 1609.344
    if miles < 0.1:
        return f"{round(meters * 3.28084)} ft"
    return f"{miles:.1f} mi"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = round((seconds % 3600) / 60)
    if hours > 0:
        return f"{hours} hr {minutes} min"
    return f"{minutes} min"
