from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_tz
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from geoquest.config import settings
from geoquest.models.game_session import Team
from geoquest.models.tour import Checkpoint
from geoquest.services.errors import OutOfOrder, TooFar
from geoquest.services.geo import distance_m
from geoquest.services.geofence import Position, check_range, outside_polygon
from geoquest.services.lifecycle import require_active_session
from geoquest.services.realtime import (
    RealtimeChannel, broadcast_team_position, broadcast_geofence_alert, broadcast_checkpoint_unlocked,
)

log = structlog.get_logger()


def _as_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=dt_tz.utc)


async def load_team(session: AsyncSession, team_id: UUID) -> Team:
    team = await session.scalar(select(Team).where(Team.id == team_id).execution_options(populate_existing=True))
    if team is None:
        raise LookupError(f"team {team_id} not found")
    return team


async def tour_checkpoints(session: AsyncSession, tour_id: UUID) -> list[Checkpoint]:
    return list((await session.execute(
        select(Checkpoint).where(Checkpoint.tour_id == tour_id).order_by(Checkpoint.order_index)
    )).scalars().all())


def checkpoint_view(cp: Checkpoint) -> dict:
    return {
        "id": cp.id,
        "order_index": cp.order_index,
        "name": cp.name,
        "mission_title": cp.mission_title,
        "mission_description": cp.mission_description,
        "mission_type": cp.mission_type,
        "hint1": cp.hint1,
        "hint2": cp.hint2,
        "hint3": cp.hint3,
        "time_limit_seconds": cp.time_limit_seconds,
        "bonus_photo_points": cp.bonus_photo_points,
    }

# ---------- position ----------

@dataclass(frozen=True)
class PositionReport:
    is_outside_geofence: bool
    throttled: bool


async def report_position(
    session: AsyncSession,
    team_id: UUID,
    pos: Position,
    channel: RealtimeChannel,
    *,
    now: datetime | None = None,
) -> PositionReport:
    """Store the last known fix and update the session-polygon containment flag."""
    team = await load_team(session, team_id)
    gs = await require_active_session(session, team.session_id, lock="share")
    now = now or datetime.now(dt_tz.utc)

    last_at = _as_utc(team.last_position_at)
    should_broadcast = last_at is None or (now - last_at).total_seconds() > settings.position_broadcast_interval_s
    was_outside = bool(team.is_outside_geofence)
    is_outside = outside_polygon(pos, gs.geofence_polygon)

    team.last_latitude = pos.latitude
    team.last_longitude = pos.longitude
    team.last_accuracy_m = pos.accuracy_m
    team.last_position_at = now
    team.is_outside_geofence = is_outside
    session_id, team_name = gs.id, team.name
    await session.commit()

    if is_outside and not was_outside:
        log.info("geofence_left", session_id=str(session_id), team_id=str(team_id))
        await broadcast_geofence_alert(channel, session_id, team_name, pos.latitude, pos.longitude)
    if should_broadcast:
        await broadcast_team_position(channel, session_id, team_name, pos.latitude, pos.longitude, is_outside)
    return PositionReport(is_outside_geofence=is_outside, throttled=not should_broadcast)

# ---------- unlock ----------

@dataclass
class UnlockResult:
    checkpoint: dict
    current_index: int
    total_checkpoints: int
    distance_m: float | None = None
    already_completed: bool = False
    completed: list[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.current_index >= self.total_checkpoints


async def advance_pointer(session: AsyncSession, team_id: UUID, expected_index: int, completed: list[str]) -> bool:
    """
    Compare-and-swap on current_checkpoint_index: only the writer that still sees
    expected_index moves the pointer. Returns False when another request won.
    """
    res = await session.execute(
        update(Team)
        .where(Team.id == team_id, Team.current_checkpoint_index == expected_index)
        .values(current_checkpoint_index=expected_index + 1, completed_checkpoints=completed)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def attempt_unlock(
    session: AsyncSession,
    team_id: UUID,
    checkpoint_id: UUID,
    channel: RealtimeChannel,
    *,
    position: Position | None = None,
) -> UnlockResult:
    if position is not None:
        await report_position(session, team_id, position, channel)

    team = await load_team(session, team_id)
    gs = await require_active_session(session, team.session_id, lock="share")
    checkpoints = await tour_checkpoints(session, gs.tour_id)
    cp = next((c for c in checkpoints if c.id == checkpoint_id), None)
    if cp is None:
        raise LookupError(f"checkpoint {checkpoint_id} not on this tour")

    n = len(checkpoints)
    cp_key = str(cp.id)
    view = checkpoint_view(cp)
    completed = list(team.completed_checkpoints or [])
    expected = int(team.current_checkpoint_index)
    session_id, team_name = gs.id, team.name

    dist = None
    if team.last_latitude is not None and team.last_longitude is not None:
        dist = distance_m(team.last_latitude, team.last_longitude, cp.latitude, cp.longitude)

    if cp_key in completed:
        return UnlockResult(view, expected, n, dist, already_completed=True, completed=completed)

    if expected >= n or cp.order_index != expected:
        log.info("unlock_rejected", reason="out_of_order", team_id=str(team_id), checkpoint_index=cp.order_index,
                 current_index=expected)
        raise OutOfOrder(expected)

    if not gs.is_test_mode:
        if team.last_latitude is None or team.last_longitude is None:
            raise TooFar(None, cp.unlock_radius_m)
        rc = check_range(
            Position(team.last_latitude, team.last_longitude, team.last_accuracy_m),
            cp.latitude, cp.longitude, cp.unlock_radius_m,
        )
        if not rc.within:
            log.info("unlock_rejected", reason="too_far", team_id=str(team_id), distance_m=round(rc.distance_m, 1),
                     radius_m=cp.unlock_radius_m, accuracy_ok=rc.accuracy_ok)
            raise TooFar(rc.distance_m, cp.unlock_radius_m, None if rc.accuracy_ok else team.last_accuracy_m)

    new_completed = [*completed, cp_key]
    if not await advance_pointer(session, team_id, expected, new_completed):
        await session.rollback()
        fresh = await load_team(session, team_id)
        fresh_completed = list(fresh.completed_checkpoints or [])
        if cp_key in fresh_completed:
            return UnlockResult(view, int(fresh.current_checkpoint_index), n, dist,
                                already_completed=True, completed=fresh_completed)
        raise OutOfOrder(int(fresh.current_checkpoint_index))
    await session.commit()

    log.info("checkpoint_unlocked", session_id=str(session_id), team_id=str(team_id),
             checkpoint_index=view["order_index"], finished=expected + 1 >= n)
    await broadcast_checkpoint_unlocked(channel, session_id, team_name, view["order_index"], view["name"])
    return UnlockResult(view, expected + 1, n, dist, completed=new_completed)
