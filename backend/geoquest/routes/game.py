from __future__ import annotations
import asyncio
import uuid
from dataclasses import asdict
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, WebSocket, WebSocketDisconnect, Query
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.config import settings
from geoquest.db import get_session
from geoquest.auth_deps import get_team
from geoquest.models.game_session import GameSession, Team
from geoquest.models.tour import Tour
from geoquest.schemas.game import (
    JoinRequest, JoinResponse, PositionIn, PositionOut, UnlockRequest, UnlockResponse, CheckpointMission,
    SubmitRequest, SubmitResponse, PhotoOut, LeaderboardRow, Leaderboard, TeamCheckpoint, TeamState,
    TeamView, TeamReport,
)
from geoquest.services.errors import NotActive, InvalidInput
from geoquest.services.evaluation import evaluate_submission
from geoquest.services.geofence import Position
from geoquest.services.join_code import generate_team_token
from geoquest.services.lifecycle import load_session
from geoquest.services.media import prepare_photo, ext_for_mime
from geoquest.services.oracle import ScoringOracle, get_oracle
from geoquest.services.progression import report_position, attempt_unlock, tour_checkpoints
from geoquest.services.realtime import RealtimeChannel, get_channel, session_channel
from geoquest.services.scoring import ensure_score_row, rank, team_report
from geoquest.services.storage import put_bytes

router = APIRouter(prefix="/game", tags=["game"])
log = structlog.get_logger()

JOINABLE = ("lobby", "active", "paused")

def _photo_prefix(session_id, team_id) -> str:
    return f"sessions/{session_id}/teams/{team_id}/"

async def _team_session(session: AsyncSession, session_id: UUID, team: Team) -> GameSession:
    if team.session_id != session_id:
        raise HTTPException(status_code=404, detail="Session not found")
    gs = await load_session(session, session_id)
    if not gs:
        raise HTTPException(status_code=404, detail="Session not found")
    return gs

async def leaderboard_rows(session: AsyncSession, session_id: UUID, total: int, current_team_id=None) -> list[LeaderboardRow]:
    ranked = await rank(session, session_id)
    return [
        LeaderboardRow(
            rank=i + 1, team_name=t.name, total_score=t.total_score, bonus_points=t.bonus_points,
            checkpoints_done=len(t.completed_checkpoints or []),
            current_checkpoint_index=t.current_checkpoint_index,
            finished=t.current_checkpoint_index >= total,
            is_current_team=(t.id == current_team_id),
        )
        for i, t in enumerate(ranked)
    ]

@router.post("/join", response_model=JoinResponse)
async def join(payload: JoinRequest, session: AsyncSession = Depends(get_session)):
    code = payload.join_code.strip().upper()
    name = payload.team_name.strip()
    if not name:
        raise InvalidInput("Team name must not be blank")
    gs = await session.scalar(select(GameSession).where(GameSession.join_code == code))
    if not gs:
        raise HTTPException(status_code=404, detail="Unknown join code")
    if gs.status not in JOINABLE:
        raise NotActive(gs.status)

    existing = await session.scalar(
        select(Team).where(Team.session_id == gs.id, func.lower(Team.name) == name.lower())
    )
    if existing:
        # rejoin from another device
        return JoinResponse(team_id=existing.id, team_token=existing.token, session_id=gs.id,
                            variant=gs.variant, status=gs.status)

    tour = await session.get(Tour, gs.tour_id)
    count = await session.scalar(select(func.count()).select_from(Team).where(Team.session_id == gs.id))
    if int(count or 0) >= tour.max_teams:
        raise HTTPException(status_code=409, detail="Session is full")

    team = Team(session_id=gs.id, name=name, token=generate_team_token(), completed_checkpoints=[])
    session.add(team)
    try:
        await session.flush()
        await ensure_score_row(session, gs.id, team.id)
        await session.commit()
    except IntegrityError:
        # another device registered the same name first
        await session.rollback()
        raise HTTPException(status_code=409, detail="Team name taken, join again to rejoin")

    log.info("team_joined", session_id=str(gs.id), team_id=str(team.id))
    return JoinResponse(team_id=team.id, team_token=team.token, session_id=gs.id,
                        variant=gs.variant, status=gs.status)

@router.post("/photo", response_model=PhotoOut, status_code=201)
async def upload_photo(
    file: UploadFile = File(..., description="JPEG or PNG photo"),
    team: Team = Depends(get_team),
):
    data = await file.read()
    try:
        data, mime = prepare_photo(data)
    except ValueError as e:
        raise InvalidInput(str(e))
    key = f"{_photo_prefix(team.session_id, team.id)}{uuid.uuid4()}.{ext_for_mime(mime)}"
    put_bytes(key, data, mime)
    log.info("photo_uploaded", team_id=str(team.id), key=key, size=len(data))
    return PhotoOut(photo_ref=key)

@router.post("/position", response_model=PositionOut)
async def position(
    payload: PositionIn,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
    channel: RealtimeChannel = Depends(get_channel),
):
    rep = await report_position(
        session, team.id, Position(payload.latitude, payload.longitude, payload.accuracy_m), channel
    )
    return PositionOut(is_outside_geofence=rep.is_outside_geofence, throttled=rep.throttled)

@router.post("/unlock", response_model=UnlockResponse)
async def unlock(
    payload: UnlockRequest,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
    channel: RealtimeChannel = Depends(get_channel),
):
    pos = None
    if payload.position is not None:
        pos = Position(payload.position.latitude, payload.position.longitude, payload.position.accuracy_m)
    try:
        res = await attempt_unlock(session, team.id, payload.checkpoint_id, channel, position=pos)
    except LookupError:
        raise HTTPException(status_code=404, detail="Checkpoint not found")
    return UnlockResponse(
        already_completed=res.already_completed,
        checkpoint=CheckpointMission(**res.checkpoint),
        current_checkpoint_index=res.current_index,
        finished=res.finished,
        distance_m=round(res.distance_m) if res.distance_m is not None else None,
    )

@router.post("/submit", response_model=SubmitResponse)
async def submit(
    payload: SubmitRequest,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
    oracle: ScoringOracle = Depends(get_oracle),
    channel: RealtimeChannel = Depends(get_channel),
):
    if payload.photo_ref and not payload.photo_ref.startswith(_photo_prefix(team.session_id, team.id)):
        raise InvalidInput("Photo does not belong to this team")
    try:
        res = await evaluate_submission(
            session, team.id, payload.checkpoint_id, oracle, channel,
            answer=payload.answer, photo_ref=payload.photo_ref, timeout_s=settings.oracle_timeout_s,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="Checkpoint not found")
    return SubmitResponse(**asdict(res))

@router.get("/sessions/{session_id}", response_model=TeamView)
async def team_view(
    session_id: UUID,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
):
    gs = await _team_session(session, session_id, team)
    cps = await tour_checkpoints(session, gs.tour_id)
    done = set(team.completed_checkpoints or [])
    checkpoints = []
    for c in cps:
        unlocked = str(c.id) in done
        checkpoints.append(TeamCheckpoint(
            id=c.id, order_index=c.order_index, name=c.name, latitude=c.latitude, longitude=c.longitude,
            unlock_radius_m=c.unlock_radius_m, mission_type=c.mission_type,
            gms_connection=c.gms_connection, gms_meaning=c.gms_meaning, gms_joy=c.gms_joy,
            gms_growth=c.gms_growth, bonus_photo_points=c.bonus_photo_points,
            # missions and hints are revealed by the unlock
            mission_title=c.mission_title if unlocked else None,
            mission_description=c.mission_description if unlocked else None,
            hint1=c.hint1 if unlocked else None,
            hint2=c.hint2 if unlocked else None,
            hint3=c.hint3 if unlocked else None,
            is_completed=unlocked,
            is_current=c.order_index == team.current_checkpoint_index,
        ))
    return TeamView(
        session_id=gs.id, status=gs.status, variant=gs.variant, is_test_mode=gs.is_test_mode,
        checkpoints=checkpoints,
        team=TeamState(
            id=team.id, name=team.name, current_checkpoint_index=team.current_checkpoint_index,
            completed_checkpoints=list(team.completed_checkpoints or []), total_score=team.total_score,
            bonus_points=team.bonus_points, is_outside_geofence=team.is_outside_geofence,
            finished=team.current_checkpoint_index >= len(cps),
        ),
        scoreboard=await leaderboard_rows(session, gs.id, len(cps), team.id),
    )

@router.get("/sessions/{session_id}/leaderboard", response_model=Leaderboard)
async def leaderboard(
    session_id: UUID,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
):
    gs = await _team_session(session, session_id, team)
    total = len(await tour_checkpoints(session, gs.tour_id))
    return Leaderboard(session_id=gs.id, status=gs.status, total_checkpoints=total,
                       rows=await leaderboard_rows(session, gs.id, total, team.id))

@router.get("/sessions/{session_id}/report", response_model=TeamReport)
async def report(
    session_id: UUID,
    team: Team = Depends(get_team),
    session: AsyncSession = Depends(get_session),
):
    gs = await _team_session(session, session_id, team)
    return TeamReport(**await team_report(session, gs.id, gs.tour_id, team))

async def stop_forwarding(pump: asyncio.Task) -> Exception | None:
    """Cancel the push pump and collect its outcome, returning the error it died with if any."""
    pump.cancel()
    try:
        await pump
    except asyncio.CancelledError:
        return None
    except Exception as exc:
        return exc
    return None

@router.websocket("/sessions/{session_id}/events")
async def events(
    websocket: WebSocket,
    session_id: UUID,
    token: str = Query(...),
    session: AsyncSession = Depends(get_session),
    channel: RealtimeChannel = Depends(get_channel),
):
    team = await session.scalar(select(Team).where(Team.token == token))
    if not team or team.session_id != session_id:
        await websocket.close(code=4401)
        return
    team_id = team.id
    # no database work while the socket is open
    await session.close()

    await websocket.accept()
    log.info("events_connected", session_id=str(session_id), team_id=str(team_id))

    async def forward():
        async for msg in channel.subscribe(session_channel(session_id)):
            await websocket.send_json(msg)

    pump = asyncio.create_task(forward())
    try:
        # inbound frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.info("events_disconnected", session_id=str(session_id), team_id=str(team_id))
    finally:
        err = await stop_forwarding(pump)
        if err is not None:
            log.warning("events_forward_failed", session_id=str(session_id), team_id=str(team_id), error=repr(err))
