from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from uuid import UUID
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.models.game_session import GameSession
from geoquest.services.errors import NotActive, InvalidTransition
from geoquest.services.realtime import RealtimeChannel, broadcast_session_status

log = structlog.get_logger()

STATUSES = ("draft", "lobby", "active", "paused", "completed", "cancelled")
TERMINAL = frozenset({"completed", "cancelled"})

# Operator-driven only; cancelled is reachable from every non-terminal state.
TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"lobby", "cancelled"}),
    "lobby": frozenset({"active", "cancelled"}),
    "active": frozenset({"paused", "completed", "cancelled"}),
    "paused": frozenset({"active", "completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def require_active(gs: GameSession) -> None:
    if gs.status != "active":
        raise NotActive(gs.status)


async def load_session(session: AsyncSession, session_id: UUID, *, lock: str | None = None) -> GameSession | None:
    """
    Fresh read of the session row, never served from the identity map.
    lock="share" is taken by gameplay writes, lock="update" by status transitions,
    so a transition waits for in-flight writes and later writes see the new status.
    """
    q = select(GameSession).where(GameSession.id == session_id).execution_options(populate_existing=True)
    if lock == "share":
        q = q.with_for_update(read=True)
    elif lock == "update":
        q = q.with_for_update()
    return await session.scalar(q)


async def require_active_session(session: AsyncSession, session_id: UUID, *, lock: str | None = None) -> GameSession:
    gs = await load_session(session, session_id, lock=lock)
    if gs is None:
        raise LookupError(f"session {session_id} not found")
    require_active(gs)
    return gs


async def transition_status(
    session: AsyncSession,
    session_id: UUID,
    target: str,
    channel: RealtimeChannel,
) -> GameSession:
    """Apply an operator transition, commit it, then broadcast the new status."""
    gs = await load_session(session, session_id, lock="update")
    if gs is None:
        raise LookupError(f"session {session_id} not found")

    current = gs.status
    if target == current and current not in TERMINAL:
        # repeated operator click; nothing to record
        return gs
    if not can_transition(current, target):
        raise InvalidTransition(current, target)

    now = datetime.now(dt_tz.utc)
    gs.status = target
    if target == "active" and gs.started_at is None:
        gs.started_at = now
    if target == "completed":
        gs.completed_at = now
    await session.commit()

    log.info("session_status_changed", session_id=str(gs.id), from_status=current, to_status=target)
    await broadcast_session_status(channel, gs.id, target)
    return gs
