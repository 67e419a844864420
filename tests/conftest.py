"""Shared fixtures: in-memory SQLite database and seeded technician/jobs."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

# Must be set before config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("STATUS_WEBHOOK_URL", "")

import uuid
from datetime import date

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.database import Base
from models import Job, Technician

ROUTE_DATE = date(2026, 3, 14)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def technician(db):
    tech = Technician(
        full_name="Dana Reyes",
        email="dana@fieldroute.test",
        phone="555-0100",
        home_address="100 Main St, Springfield, IL 62701",
    )
    db.add(tech)
    await db.commit()
    return tech


def make_job(technician_id: uuid.UUID, street: str, **kwargs) -> Job:
    fields = {
        "technician_id": technician_id,
        "scheduled_date": ROUTE_DATE,
        "street": street,
        "city": "Springfield",
        "state": "IL",
        "zip": "62701",
    }
    fields.update(kwargs)
    return Job(**fields)
