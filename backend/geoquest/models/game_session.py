from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Float, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from geoquest.db import Base, JSONType

class GameSession(Base):
    __tablename__ = "game_sessions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tour_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tours.id"), index=True, nullable=False)
    operator_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")  # draft|lobby|active|paused|completed|cancelled
    join_code: Mapped[str] = mapped_column(String(12), unique=True, index=True, nullable=False)
    variant: Mapped[str] = mapped_column(String(32), nullable=False, default="wijktocht")
    is_test_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    geofence_polygon: Mapped[list | None] = mapped_column(JSONType, nullable=True)  # [{lat, lng}, ...]
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

class Team(Base):
    __tablename__ = "teams"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    # opaque auth token; no personal data is stored for a team
    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    last_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_accuracy_m: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_position_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    current_checkpoint_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_checkpoints: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)  # checkpoint ids (str)

    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # dimension points + bonus
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_outside_geofence: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "name", name="uq_team_session_name"),
    )
