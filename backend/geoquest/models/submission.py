from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from geoquest.db import Base, JSONType


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), index=True, nullable=False
    )
    checkpoint_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("checkpoints.id"), nullable=False)

    answer: Mapped[str | None] = mapped_column(Text(), nullable=True)
    photo_ref: Mapped[str | None] = mapped_column(Text(), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # 'pending'|'approved'|'rejected'
    oracle_score: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100
    feedback: Mapped[str | None] = mapped_column(Text(), nullable=True)
    # applied dimension values plus the raw oracle numbers and reasoning
    evaluation_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    gms_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    scheduled_delete_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("team_id", "checkpoint_id", name="uq_submission_one_per_checkpoint"),
    )
