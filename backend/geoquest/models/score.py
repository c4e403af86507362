from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from geoquest.db import Base, JSONType

class SessionScore(Base):
    """
    Denormalized per-team score projection for one session.

    Derived from approved submissions (see ScoreEntry); only the score
    aggregator writes it. History entries: {checkpointName, gmsEarned, orderIndex}.
    """
    __tablename__ = "session_scores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), index=True, nullable=False
    )

    connection: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    meaning: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    growth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checkpoints_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checkpoint_scores: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("session_id", "team_id", name="uq_session_score_team"),
    )

class ScoreEntry(Base):
    """One row per applied submission; makes score application idempotent."""
    __tablename__ = "score_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), index=True, nullable=False
    )
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    gms_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("submission_id", name="uq_score_entry_submission"),
    )
