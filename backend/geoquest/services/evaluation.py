from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_tz
from typing import Mapping
from uuid import UUID
import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from geoquest.config import settings
from geoquest.models.submission import Submission
from geoquest.models.tour import DIMENSIONS
from geoquest.services.errors import AlreadyScored, EvaluationUnavailable, InvalidInput, NotActive, OutOfOrder
from geoquest.services.lifecycle import require_active_session
from geoquest.services.oracle import OracleRequest, OracleVerdict, ScoringOracle
from geoquest.services.progression import load_team, tour_checkpoints
from geoquest.services.realtime import RealtimeChannel, broadcast_score_update
from geoquest.services.scoring import apply_accepted

log = structlog.get_logger()


def clamp_dimensions(raw: Mapping[str, float], caps: Mapping[str, int]) -> dict[str, int]:
    """Oracle numbers are advisory; the checkpoint's authored caps are the ceiling."""
    out: dict[str, int] = {}
    for d in DIMENSIONS:
        cap = max(0, int(caps.get(d, 0)))
        out[d] = max(0, min(int(round(float(raw[d]))), cap))
    return out


def is_kids_variant(variant: str) -> bool:
    return variant in settings.kids_variants


@dataclass(frozen=True)
class EvaluationResult:
    submission_id: UUID
    checkpoint_id: UUID
    oracle_score: int
    feedback: str
    dimensions: dict[str, int]
    gms_earned: int
    bonus_earned: int
    total_score: int


async def _existing_submission_id(session: AsyncSession, team_id: UUID, checkpoint_id: UUID) -> UUID | None:
    return await session.scalar(
        select(Submission.id).where(Submission.team_id == team_id, Submission.checkpoint_id == checkpoint_id)
    )


async def _ask_oracle(oracle: ScoringOracle, req: OracleRequest, timeout_s: float) -> OracleVerdict:
    try:
        return await asyncio.wait_for(oracle.evaluate(req), timeout=timeout_s)
    except (asyncio.TimeoutError, TimeoutError):
        log.warning("oracle_unavailable", reason="timeout", timeout_s=timeout_s)
        raise EvaluationUnavailable("timeout")
    except ValidationError as exc:
        log.warning("oracle_unavailable", reason="malformed", errors=exc.error_count())
        raise EvaluationUnavailable("malformed_response")
    except Exception as exc:
        log.warning("oracle_unavailable", reason="error", error=repr(exc))
        raise EvaluationUnavailable("oracle_error") from exc


async def evaluate_submission(
    session: AsyncSession,
    team_id: UUID,
    checkpoint_id: UUID,
    oracle: ScoringOracle,
    channel: RealtimeChannel,
    *,
    answer: str | None = None,
    photo_ref: str | None = None,
    timeout_s: float | None = None,
) -> EvaluationResult:
    """
    Score one answer/photo for an unlocked checkpoint.

    The oracle call runs outside any transaction. The final insert + aggregate
    step is the commit point: the session status is re-checked under a share
    lock there, so nothing is recorded once a pause or end has been committed.
    """
    answer = (answer or "").strip() or None
    photo_ref = (photo_ref or "").strip() or None
    if not answer and not photo_ref:
        raise InvalidInput("Provide an answer or a photo")

    # 1) validate against current state
    team = await load_team(session, team_id)
    gs = await require_active_session(session, team.session_id)
    cp = next((c for c in await tour_checkpoints(session, gs.tour_id) if c.id == checkpoint_id), None)
    if cp is None:
        raise LookupError(f"checkpoint {checkpoint_id} not on this tour")
    if str(cp.id) not in (team.completed_checkpoints or []):
        raise OutOfOrder(int(team.current_checkpoint_index), "Checkpoint not unlocked yet")
    existing = await _existing_submission_id(session, team.id, cp.id)
    if existing is not None:
        raise AlreadyScored(str(existing))

    session_id, team_name = gs.id, team.name
    caps = cp.caps()
    cp_name, cp_order, cp_bonus = cp.name, cp.order_index, int(cp.bonus_photo_points or 0)
    kids = is_kids_variant(gs.variant)
    req = OracleRequest(
        mission_title=cp.mission_title,
        mission_description=cp.mission_description,
        mission_type=cp.mission_type,
        answer=answer,
        photo_ref=photo_ref,
        weights=caps,
        lenient=kids,
        variant=gs.variant,
    )
    # release the read transaction before the slow call
    await session.commit()

    # 2) external evaluation, no locks held
    verdict = await _ask_oracle(oracle, req, settings.oracle_timeout_s if timeout_s is None else timeout_s)

    # 3) commit point
    dims = clamp_dimensions(verdict.dimensions.model_dump(), caps)
    gms = sum(dims.values())
    bonus = cp_bonus if photo_ref and cp_bonus > 0 else 0
    now = datetime.now(dt_tz.utc)

    try:
        await require_active_session(session, session_id, lock="share")
    except NotActive:
        log.info("submission_discarded", reason="session_not_active", team_id=str(team_id))
        raise
    sub = Submission(
        session_id=session_id,
        team_id=team_id,
        checkpoint_id=checkpoint_id,
        answer=answer,
        photo_ref=photo_ref,
        status="approved",
        oracle_score=int(round(verdict.score)),
        feedback=verdict.feedback,
        evaluation_json={
            "applied": dims,
            "raw": verdict.dimensions.model_dump(),
            "raw_score": verdict.score,
            "reasoning": verdict.reasoning,
            "lenient": kids,
        },
        gms_earned=gms,
        bonus_earned=bonus,
        submitted_at=now,
        scheduled_delete_at=now + timedelta(days=settings.media_retention_days) if (kids and photo_ref) else None,
    )
    session.add(sub)
    try:
        await session.flush()
    except IntegrityError:
        # a concurrent request for the same checkpoint committed first
        await session.rollback()
        raise AlreadyScored(str(await _existing_submission_id(session, team_id, checkpoint_id)))

    await apply_accepted(session, sub, checkpoint_name=cp_name, order_index=cp_order, dimensions=dims)
    fresh = await load_team(session, team_id)
    total = int(fresh.total_score)
    sub_id = sub.id
    await session.commit()

    log.info("submission_scored", session_id=str(session_id), team_id=str(team_id), checkpoint_index=cp_order,
             gms_earned=gms, bonus=bonus, oracle_score=verdict.score)
    await broadcast_score_update(channel, session_id, team_name, total)
    return EvaluationResult(
        submission_id=sub_id,
        checkpoint_id=checkpoint_id,
        oracle_score=int(round(verdict.score)),
        feedback=verdict.feedback,
        dimensions=dims,
        gms_earned=gms,
        bonus_earned=bonus,
        total_score=total,
    )
