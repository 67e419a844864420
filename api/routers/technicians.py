"""Technician API endpoints — create, fetch, list scheduled jobs."""

import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.technician import Technician
from schemas import JobResponse, TechnicianCreate, TechnicianResponse
from services.job_repository import JobRepository

router = APIRouter()


def _not_found(technician_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"error": "TechnicianNotFound", "message": f"Technician {technician_id} not found"},
    )


@router.post("/", response_model=TechnicianResponse)
async def create_technician(data: TechnicianCreate, db: AsyncSession = Depends(get_db)):
    if data.email:
        existing = await db.execute(select(Technician).where(Technician.email == data.email))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=409,
                detail={"error": "TechnicianExists", "message": "Technician with this email already exists"},
            )

    technician = Technician(**data.model_dump())
    db.add(technician)
    await db.commit()
    await db.refresh(technician)
    return technician


@router.get("/{technician_id}", response_model=TechnicianResponse)
async def get_technician(technician_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Technician).where(Technician.id == technician_id))
    technician = result.scalar_one_or_none()
    if not technician:
        raise _not_found(technician_id)
    return technician


@router.get("/{technician_id}/jobs", response_model=list[JobResponse])
async def list_technician_jobs(
    technician_id: uuid.UUID,
    date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    """All jobs for the technician, optionally limited to one day."""
    result = await db.execute(select(Technician).where(Technician.id == technician_id))
    if not result.scalar_one_or_none():
        raise _not_found(technician_id)
    return await JobRepository(db).list_jobs(technician_id, date)
