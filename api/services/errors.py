"""Typed errors raised by the planning and lifecycle services.

Routers translate these into HTTP responses; services never retry on them.
"""

from __future__ import annotations


class PlanningError(Exception):
    """Base class for route-planning failures."""

    code = "PlanningError"


class NoRoutableStops(PlanningError):
    code = "NoRoutableStops"

    def __init__(self, dropped_job_ids: list[str] | None = None):
        self.dropped_job_ids = dropped_job_ids or []
        super().__init__(
            f"No job could be placed on the route ({len(self.dropped_job_ids)} dropped)"
        )


class TravelEstimationFailed(PlanningError):
    code = "TravelEstimationFailed"


class GeocodingFailed(PlanningError):
    """Per-job and non-fatal: the job is dropped and reported, never raised to callers."""

    code = "GeocodingFailed"

    def __init__(self, job_id: str, address: str):
        self.job_id = job_id
        self.address = address
        super().__init__(f"Could not geocode '{address}' for job {job_id}")


class TravelEstimationError(Exception):
    """Raised by a travel estimator when it cannot price a leg."""


class LifecycleError(Exception):
    """Base class for rejected lifecycle events."""

    code = "LifecycleError"


class InvalidTransition(LifecycleError):
    code = "InvalidTransition"

    def __init__(self, current_status: str, kind: str):
        self.current_status = current_status
        self.kind = kind
        super().__init__(f"Cannot apply '{kind}' to a job that is '{current_status}'")


class NotAssigned(LifecycleError):
    code = "NotAssigned"

    def __init__(self, job_id: str, technician_id: str):
        self.job_id = job_id
        self.technician_id = technician_id
        super().__init__(f"Job {job_id} is not assigned to technician {technician_id}")


class JobNotFound(LifecycleError):
    code = "JobNotFound"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class Conflict(LifecycleError):
    code = "Conflict"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was modified concurrently, please retry")


def error_detail(error: Exception) -> dict:
    """HTTPException detail body for a typed service error."""
    return {"error": getattr(error, "code", type(error).__name__), "message": str(error)}
