from __future__ import annotations
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.db import get_session
from geoquest.auth_deps import get_current_operator
from geoquest.models.tour import Tour, Checkpoint
from geoquest.schemas.tour import TourCreate, TourPublic, CheckpointPublic

router = APIRouter(prefix="/tours", tags=["tours"])
log = structlog.get_logger()

def to_public(tour: Tour) -> TourPublic:
    return TourPublic(
        id=tour.id, operator_id=tour.operator_id, name=tour.name, variant=tour.variant,
        max_teams=tour.max_teams, created_at=tour.created_at,
        checkpoints=[
            CheckpointPublic(
                id=c.id, order_index=c.order_index, name=c.name, latitude=c.latitude, longitude=c.longitude,
                unlock_radius_m=c.unlock_radius_m, mission_title=c.mission_title,
                mission_description=c.mission_description, mission_type=c.mission_type,
                gms_connection=c.gms_connection, gms_meaning=c.gms_meaning, gms_joy=c.gms_joy,
                gms_growth=c.gms_growth, hint1=c.hint1, hint2=c.hint2, hint3=c.hint3,
                time_limit_seconds=c.time_limit_seconds, bonus_photo_points=c.bonus_photo_points,
            )
            for c in sorted(tour.checkpoints, key=lambda c: c.order_index)
        ],
    )

async def _load_tour(session: AsyncSession, tour_id: UUID) -> Tour | None:
    return await session.scalar(
        select(Tour).where(Tour.id == tour_id).execution_options(populate_existing=True)
    )

@router.post("", response_model=TourPublic, status_code=201)
async def create_tour(
    payload: TourCreate,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    tour = Tour(operator_id=operator_id, name=payload.name, variant=payload.variant, max_teams=payload.max_teams)
    tour.checkpoints = [
        Checkpoint(order_index=i, **cp.model_dump())
        for i, cp in enumerate(payload.checkpoints)
    ]
    session.add(tour)
    await session.commit()
    tour = await _load_tour(session, tour.id)
    log.info("tour_created", tour_id=str(tour.id), checkpoints=len(tour.checkpoints))
    return to_public(tour)

@router.get("/{tour_id}", response_model=TourPublic)
async def get_tour(
    tour_id: UUID,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    tour = await _load_tour(session, tour_id)
    if not tour or tour.operator_id != operator_id:
        raise HTTPException(status_code=404, detail="Tour not found")
    return to_public(tour)
