"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import date, datetime, time
from enum import Enum
from pydantic import BaseModel, Field

from services.lifecycle import EventKind


# ── Enums ──────────────────────────────────────────────────

class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    EN_ROUTE = "en_route"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ── Technician Schemas ─────────────────────────────────────

class TechnicianCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    home_address: str | None = None


class TechnicianResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str | None
    phone: str | None
    home_address: str | None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ── Job Schemas ────────────────────────────────────────────

class JobCreate(BaseModel):
    technician_id: uuid.UUID
    scheduled_date: date
    scheduled_time: time | None = None
    street: str
    city: str
    state: str
    zip: str
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    property_sqft: int | None = Field(None, gt=0)


class JobResponse(BaseModel):
    id: uuid.UUID
    technician_id: uuid.UUID
    scheduled_date: date
    scheduled_time: time | None
    full_address: str
    lat: float | None
    lng: float | None
    property_sqft: int | None
    status: JobStatus
    checked_in_at: datetime | None
    checked_out_at: datetime | None
    live_lat: float | None
    live_lng: float | None
    eta_minutes: int | None
    last_location_update: datetime | None
    cancelled_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class JobEventCreate(BaseModel):
    technician_id: uuid.UUID
    kind: EventKind
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    timestamp: datetime | None = None  # device time; server time if omitted
    eta_minutes: int | None = Field(None, ge=0)


class JobEventResponse(BaseModel):
    id: int
    job_id: uuid.UUID
    kind: str
    from_status: str | None
    to_status: str
    technician_id: uuid.UUID | None
    lat: float | None
    lng: float | None
    occurred_at: datetime
    recorded_at: datetime

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    job_id: uuid.UUID
    previous_status: JobStatus
    new_status: JobStatus
    changed: bool
    applied: bool


# ── Route Schemas ──────────────────────────────────────────

class RoutePlanRequest(BaseModel):
    technician_id: uuid.UUID
    date: date
    start_address: str | None = None  # defaults to technician's home address
    start_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")


class RouteStopResponse(BaseModel):
    job_id: uuid.UUID
    stop_order: int
    address: str | None
    lat: float
    lng: float
    estimated_arrival: datetime
    estimated_departure: datetime
    dwell_minutes: int
    drive_seconds_from_previous: int
    distance_meters_from_previous: int

    class Config:
        from_attributes = True


class RoutePlanResponse(BaseModel):
    id: uuid.UUID
    technician_id: uuid.UUID
    route_date: date
    start_address: str | None
    start_lat: float
    start_lng: float
    start_time: datetime
    end_time: datetime
    total_distance_meters: int
    total_duration_seconds: int
    stop_count: int
    algorithm: str
    created_at: datetime
    stops: list[RouteStopResponse] = []

    class Config:
        from_attributes = True


class DroppedJobResponse(BaseModel):
    job_id: uuid.UUID
    address: str
    reason: str


class RouteSummary(BaseModel):
    total_stops: int
    total_distance: str  # "12.3 mi"
    total_duration: str  # "3 hr 45 min"
    end_time: datetime


class PlanRouteResponse(BaseModel):
    plan: RoutePlanResponse
    dropped_job_ids: list[uuid.UUID]
    dropped: list[DroppedJobResponse]
    summary: RouteSummary


class PreviewStop(BaseModel):
    job_id: uuid.UUID
    address: str
    scheduled_time: time | None
    has_coordinates: bool
    dwell_minutes: int


class RoutePreviewResponse(BaseModel):
    technician_id: uuid.UUID
    date: date
    stops: list[PreviewStop]
    total_dwell_minutes: int
    estimated_duration: str
    needs_optimization: bool
