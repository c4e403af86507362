from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Sequence
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from geoquest.models.game_session import Team
from geoquest.models.score import SessionScore, ScoreEntry
from geoquest.models.submission import Submission
from geoquest.models.tour import Checkpoint, DIMENSIONS

log = structlog.get_logger()

# ---------- apply ----------

async def ensure_score_row(session: AsyncSession, session_id: UUID, team_id: UUID) -> SessionScore:
    row = await session.scalar(
        select(SessionScore).where(SessionScore.session_id == session_id, SessionScore.team_id == team_id)
        .execution_options(populate_existing=True)
    )
    if row is None:
        row = SessionScore(
            session_id=session_id, team_id=team_id,
            connection=0, meaning=0, joy=0, growth=0, bonus=0, total=0,
            checkpoints_count=0, checkpoint_scores=[],
        )
        session.add(row)
        await session.flush()
    return row


async def apply_accepted(
    session: AsyncSession,
    sub: Submission,
    *,
    checkpoint_name: str,
    order_index: int,
    dimensions: dict[str, int],
) -> SessionScore:
    """
    Add one approved submission to the team's running totals.
    Idempotent per submission id: a ScoreEntry row is the application record.
    Caller owns the transaction; nothing is committed here.
    """
    applied = await session.scalar(select(ScoreEntry).where(ScoreEntry.submission_id == sub.id))
    row = await session.scalar(
        select(SessionScore)
        .where(SessionScore.session_id == sub.session_id, SessionScore.team_id == sub.team_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if applied is not None and row is not None:
        log.info("score_already_applied", submission_id=str(sub.id))
        return row
    if row is None:
        row = await ensure_score_row(session, sub.session_id, sub.team_id)

    gms = sum(dimensions[d] for d in DIMENSIONS)
    bonus = int(sub.bonus_earned or 0)
    session.add(ScoreEntry(
        session_id=sub.session_id, team_id=sub.team_id, submission_id=sub.id, gms_earned=gms, bonus=bonus,
    ))

    row.connection += dimensions["connection"]
    row.meaning += dimensions["meaning"]
    row.joy += dimensions["joy"]
    row.growth += dimensions["growth"]
    row.bonus += bonus
    row.total += gms + bonus
    row.checkpoints_count += 1
    # new list so the JSON column is flagged dirty
    row.checkpoint_scores = [
        *(row.checkpoint_scores or []),
        {"checkpointName": checkpoint_name, "gmsEarned": gms, "orderIndex": order_index},
    ]

    await session.execute(
        update(Team)
        .where(Team.id == sub.team_id)
        .values(total_score=Team.total_score + gms + bonus, bonus_points=Team.bonus_points + bonus)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return row

# ---------- leaderboard ----------

def leaderboard_key(team: Team) -> tuple:
    """Total descending, then name ascending; id as a last resort for identical names."""
    return (-int(team.total_score or 0), team.name, str(team.id))


def rank_teams(teams: Iterable[Team]) -> list[Team]:
    return sorted(teams, key=leaderboard_key)


async def rank(session: AsyncSession, session_id: UUID) -> list[Team]:
    teams = (await session.execute(
        select(Team).where(Team.session_id == session_id).execution_options(populate_existing=True)
    )).scalars().all()
    return rank_teams(teams)

# ---------- reconciliation ----------

@dataclass
class Recomputed:
    connection: int = 0
    meaning: int = 0
    joy: int = 0
    growth: int = 0
    bonus: int = 0
    checkpoints_count: int = 0
    checkpoint_scores: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.connection + self.meaning + self.joy + self.growth + self.bonus


def recompute(submissions: Sequence[Submission], checkpoints_by_id: dict) -> Recomputed:
    """Rebuild a team's projection from its approved submissions."""
    out = Recomputed()
    for s in submissions:
        if s.status != "approved":
            continue
        ev = s.evaluation_json or {}
        applied = ev.get("applied") or {}
        out.connection += int(applied.get("connection", 0))
        out.meaning += int(applied.get("meaning", 0))
        out.joy += int(applied.get("joy", 0))
        out.growth += int(applied.get("growth", 0))
        out.bonus += int(s.bonus_earned or 0)
        out.checkpoints_count += 1
        cp = checkpoints_by_id.get(s.checkpoint_id)
        out.checkpoint_scores.append({
            "checkpointName": cp.name if cp else "Checkpoint",
            "gmsEarned": int(s.gms_earned),
            "orderIndex": cp.order_index if cp else 0,
        })
    out.checkpoint_scores.sort(key=lambda e: e["orderIndex"])
    return out


async def verify_session_scores(session: AsyncSession, session_id: UUID, tour_id: UUID, *, repair: bool = False) -> list[dict]:
    """
    Compare every team's SessionScore row and team total with a resum of its submissions.
    Read-only by default. With repair=True drifted rows are rewritten from source,
    creating the SessionScore row when it is missing.
    """
    cps = (await session.execute(select(Checkpoint).where(Checkpoint.tour_id == tour_id))).scalars().all()
    by_id = {c.id: c for c in cps}
    teams = (await session.execute(
        select(Team).where(Team.session_id == session_id).execution_options(populate_existing=True)
    )).scalars().all()

    reports: list[dict] = []
    for t in sorted(teams, key=lambda x: x.name):
        subs = (await session.execute(
            select(Submission).where(Submission.team_id == t.id).order_by(Submission.submitted_at.asc())
        )).scalars().all()
        expected = recompute(subs, by_id)
        row = await session.scalar(
            select(SessionScore).where(SessionScore.session_id == session_id, SessionScore.team_id == t.id)
            .execution_options(populate_existing=True)
        )
        # a missing row reads as all zeros; only a repair creates it
        stored = row if row is not None else Recomputed()

        drift: dict[str, dict[str, int]] = {}
        for name in (*DIMENSIONS, "bonus", "total", "checkpoints_count"):
            have, want = int(getattr(stored, name)), int(getattr(expected, name))
            if have != want:
                drift[name] = {"stored": have, "expected": want}
        if int(t.total_score) != expected.total:
            drift["team_total_score"] = {"stored": int(t.total_score), "expected": expected.total}

        if drift and repair:
            if row is None:
                row = await ensure_score_row(session, session_id, t.id)
            for name in (*DIMENSIONS, "bonus", "checkpoints_count"):
                setattr(row, name, int(getattr(expected, name)))
            row.total = expected.total
            row.checkpoint_scores = list(expected.checkpoint_scores)
            t.total_score = expected.total
            t.bonus_points = expected.bonus
            log.warning("session_score_repaired", session_id=str(session_id), team_id=str(t.id), drift=drift)

        reports.append({"team_id": t.id, "team_name": t.name, "consistent": not drift, "drift": drift,
                        "repaired": bool(drift and repair)})
    if repair:
        await session.flush()
    return reports

# ---------- report ----------

def _pct(value: int, maximum: int) -> int:
    return round(value / maximum * 100) if maximum > 0 else 0


async def team_report(session: AsyncSession, session_id: UUID, tour_id: UUID, team: Team) -> dict:
    cps = (await session.execute(
        select(Checkpoint).where(Checkpoint.tour_id == tour_id).order_by(Checkpoint.order_index)
    )).scalars().all()
    maxes = {d: sum(int(c.caps()[d]) for c in cps) for d in DIMENSIONS}

    row = await session.scalar(
        select(SessionScore).where(SessionScore.session_id == session_id, SessionScore.team_id == team.id)
    )
    if row is not None:
        dims = {d: int(getattr(row, d)) for d in DIMENSIONS}
        history = sorted(row.checkpoint_scores or [], key=lambda e: e["orderIndex"])
    else:
        # rows missing for teams that predate the projection: aggregate live
        subs = (await session.execute(select(Submission).where(Submission.team_id == team.id))).scalars().all()
        rc = recompute(subs, {c.id: c for c in cps})
        dims = {d: int(getattr(rc, d)) for d in DIMENSIONS}
        history = rc.checkpoint_scores

    ranked = await rank(session, session_id)
    position = next((i + 1 for i, t in enumerate(ranked) if t.id == team.id), None)

    return {
        "team_name": team.name,
        "rank": position,
        "teams": len(ranked),
        "total_score": int(team.total_score),
        "bonus_points": int(team.bonus_points),
        "gms_max": sum(maxes.values()),
        "dimensions": dims,
        "dimension_maxes": maxes,
        "dimension_percentages": {d: _pct(dims[d], maxes[d]) for d in DIMENSIONS},
        "checkpoint_scores": history,
        "checkpoints_completed": len(history),
        "total_checkpoints": len(cps),
    }
