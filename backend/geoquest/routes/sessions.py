from __future__ import annotations
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.db import get_session
from geoquest.auth_deps import get_current_operator
from geoquest.models.tour import Tour
from geoquest.models.game_session import GameSession, Team
from geoquest.schemas.session import (
    SessionCreate, SessionPublic, StatusChange, GeofenceUpdate, TeamPublic, ScoreDrift,
)
from geoquest.services.join_code import generate_code
from geoquest.services.lifecycle import load_session, transition_status
from geoquest.services.realtime import RealtimeChannel, get_channel
from geoquest.services.scoring import verify_session_scores

router = APIRouter(prefix="/sessions", tags=["sessions"])
log = structlog.get_logger()

async def to_public(session: AsyncSession, gs: GameSession) -> SessionPublic:
    teams = (await session.execute(
        select(Team).where(Team.session_id == gs.id).order_by(Team.created_at, Team.name)
    )).scalars().all()
    return SessionPublic(
        id=gs.id, tour_id=gs.tour_id, status=gs.status, join_code=gs.join_code, variant=gs.variant,
        is_test_mode=gs.is_test_mode, geofence_polygon=gs.geofence_polygon,
        started_at=gs.started_at, completed_at=gs.completed_at, created_at=gs.created_at,
        teams=[
            TeamPublic(
                id=t.id, name=t.name, current_checkpoint_index=t.current_checkpoint_index,
                completed_checkpoints=list(t.completed_checkpoints or []), total_score=t.total_score,
                bonus_points=t.bonus_points, is_active=t.is_active, is_outside_geofence=t.is_outside_geofence,
                last_latitude=t.last_latitude, last_longitude=t.last_longitude, last_position_at=t.last_position_at,
            )
            for t in teams
        ],
    )

async def _owned_session(session: AsyncSession, session_id: UUID, operator_id: UUID) -> GameSession:
    gs = await load_session(session, session_id)
    if not gs or gs.operator_id != operator_id:
        raise HTTPException(status_code=404, detail="Session not found")
    return gs

@router.post("", response_model=SessionPublic, status_code=201)
async def create_session(
    payload: SessionCreate,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    tour = await session.get(Tour, payload.tour_id)
    if not tour or tour.operator_id != operator_id:
        raise HTTPException(status_code=404, detail="Tour not found")
    if not tour.checkpoints:
        raise HTTPException(status_code=422, detail="Tour has no checkpoints")
    tour_id, variant = tour.id, payload.variant or tour.variant
    polygon = [p.model_dump() for p in payload.geofence_polygon] if payload.geofence_polygon else None

    # Generate a unique join code (retry on collision)
    for _ in range(5):
        gs = GameSession(
            tour_id=tour_id, operator_id=operator_id, status="draft", join_code=generate_code(),
            variant=variant, is_test_mode=payload.is_test_mode, geofence_polygon=polygon,
        )
        session.add(gs)
        try:
            await session.commit()
            break
        except IntegrityError:
            await session.rollback()
    else:
        raise HTTPException(status_code=500, detail="Could not allocate a join code")

    log.info("session_created", session_id=str(gs.id), tour_id=str(tour_id), join_code=gs.join_code)
    return await to_public(session, await load_session(session, gs.id))

@router.get("/{session_id}", response_model=SessionPublic)
async def get_game_session(
    session_id: UUID,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    gs = await _owned_session(session, session_id, operator_id)
    return await to_public(session, gs)

@router.post("/{session_id}/status", response_model=SessionPublic)
async def change_status(
    session_id: UUID,
    payload: StatusChange,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
    channel: RealtimeChannel = Depends(get_channel),
):
    await _owned_session(session, session_id, operator_id)
    # release the plain read before taking the row lock
    await session.commit()
    try:
        gs = await transition_status(session, session_id, payload.status, channel)
    except LookupError:
        raise HTTPException(status_code=404, detail="Session not found")
    return await to_public(session, gs)

@router.put("/{session_id}/geofence", response_model=SessionPublic)
async def set_geofence(
    session_id: UUID,
    payload: GeofenceUpdate,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    gs = await _owned_session(session, session_id, operator_id)
    gs.geofence_polygon = [p.model_dump() for p in payload.geofence_polygon] if payload.geofence_polygon else None
    await session.commit()
    log.info("geofence_updated", session_id=str(session_id),
             vertices=len(gs.geofence_polygon) if gs.geofence_polygon else 0)
    return await to_public(session, gs)

def _log_drift(session_id: UUID, reports: list[dict], repaired: bool) -> None:
    drifted = sum(1 for r in reports if not r["consistent"])
    if drifted:
        log.warning("session_score_drift", session_id=str(session_id), teams=drifted, repaired=repaired)

@router.get("/{session_id}/scores/verify", response_model=list[ScoreDrift])
async def verify_scores(
    session_id: UUID,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    gs = await _owned_session(session, session_id, operator_id)
    reports = await verify_session_scores(session, gs.id, gs.tour_id)
    _log_drift(session_id, reports, repaired=False)
    return [ScoreDrift(**r) for r in reports]

@router.post("/{session_id}/scores/repair", response_model=list[ScoreDrift])
async def repair_scores(
    session_id: UUID,
    session: AsyncSession = Depends(get_session),
    operator_id: UUID = Depends(get_current_operator),
):
    gs = await _owned_session(session, session_id, operator_id)
    reports = await verify_session_scores(session, gs.id, gs.tour_id, repair=True)
    await session.commit()
    _log_drift(session_id, reports, repaired=True)
    return [ScoreDrift(**r) for r in reports]
