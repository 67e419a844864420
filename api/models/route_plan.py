"""RoutePlan and RouteStop ORM models — one planned day per technician."""

import uuid
from datetime import date, datetime, timezone
from sqlalchemy import String, Integer, Numeric, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoutePlan(Base):
    __tablename__ = "route_plans"
    __table_args__ = (UniqueConstraint("technician_id", "route_date", name="uq_route_plans_technician_date"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    technician_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("technicians.id"), nullable=False)
    route_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_address: Mapped[str | None] = mapped_column(String(500))
    start_lat: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    start_lng: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_distance_meters: Mapped[int] = mapped_column(Integer, default=0)
    total_duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    stop_count: Mapped[int] = mapped_column(Integer, default=0)
    algorithm: Mapped[str] = mapped_column(String(40), default="nearest_neighbor")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    stops = relationship(
        "RouteStop",
        back_populates="plan",
        lazy="selectin",
        order_by="RouteStop.stop_order",
        cascade="all, delete-orphan",
    )


class RouteStop(Base):
    __tablename__ = "route_stops"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    route_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("route_plans.id", ondelete="CASCADE"), nullable=False)
    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    stop_order: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500))
    lat: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    lng: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    estimated_arrival: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    estimated_departure: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    dwell_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    drive_seconds_from_previous: Mapped[int] = mapped_column(Integer, default=0)
    distance_meters_from_previous: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    plan = relationship("RoutePlan", back_populates="stops")
