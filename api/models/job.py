"""Job and JobEvent ORM models — scheduled site visits and their lifecycle audit."""

import uuid
from datetime import date, datetime, time, timezone
from sqlalchemy import String, Integer, Numeric, Date, Time, DateTime, ForeignKey, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base

JOB_STATUSES = ("scheduled", "en_route", "in_progress", "completed", "cancelled")
EVENT_KINDS = ("en_route", "check_in", "check_out", "cancel")

job_status_enum = PgEnum(*JOB_STATUSES, name="job_status")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    technician_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("technicians.id"), nullable=False, index=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scheduled_time: Mapped[time | None] = mapped_column(Time)

    # Address
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    zip: Mapped[str] = mapped_column(String(20), nullable=False)
    lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    property_sqft: Mapped[int | None] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(
        job_status_enum,
        default="scheduled",
        nullable=False,
    )

    # Check-in / check-out
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    check_in_lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    check_in_lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    checked_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    check_out_lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    check_out_lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))

    # Live location while en route
    live_lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    live_lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    eta_minutes: Mapped[int | None] = mapped_column(Integer)
    last_location_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    technician = relationship("Technician", back_populates="jobs", lazy="noload")
    events = relationship("JobEvent", back_populates="job", lazy="noload", order_by="JobEvent.id")

    @property
    def full_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip}"

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class JobEvent(Base):
    __tablename__ = "job_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(PgEnum(*EVENT_KINDS, name="job_event_kind"), nullable=False)
    from_status: Mapped[str | None] = mapped_column(job_status_enum)
    to_status: Mapped[str] = mapped_column(job_status_enum, nullable=False)
    technician_id: Mapped[uuid.UUID | None] = mapped_column()
    lat: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    lng: Mapped[float | None] = mapped_column(Numeric(10, 7, asdecimal=False))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    job = relationship("Job", back_populates="events")
