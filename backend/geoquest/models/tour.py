from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, Text, UniqueConstraint, Uuid, func
from geoquest.config import settings
from geoquest.db import Base

DIMENSIONS = ("connection", "meaning", "joy", "growth")

class Tour(Base):
    __tablename__ = "tours"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    operator_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    variant: Mapped[str] = mapped_column(String(32), nullable=False, default="wijktocht")
    max_teams: Mapped[int] = mapped_column(Integer, nullable=False, default=lambda: settings.default_max_teams)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    checkpoints: Mapped[list["Checkpoint"]] = relationship(
        back_populates="tour", order_by="Checkpoint.order_index", cascade="all, delete-orphan", lazy="selectin"
    )

class Checkpoint(Base):
    """One stop on a tour. Frozen once a session on its tour is live."""
    __tablename__ = "checkpoints"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tour_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tours.id", ondelete="CASCADE"), index=True, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    unlock_radius_m: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    mission_title: Mapped[str] = mapped_column(String(200), nullable=False)
    mission_description: Mapped[str] = mapped_column(Text(), nullable=False)
    mission_type: Mapped[str] = mapped_column(String(16), nullable=False, default="opdracht")  # opdracht|foto|quiz|video

    # per-dimension point caps
    gms_connection: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gms_meaning: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gms_joy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gms_growth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    hint1: Mapped[str | None] = mapped_column(Text(), nullable=True)
    hint2: Mapped[str | None] = mapped_column(Text(), nullable=True)
    hint3: Mapped[str | None] = mapped_column(Text(), nullable=True)
    time_limit_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bonus_photo_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tour: Mapped[Tour] = relationship(back_populates="checkpoints")

    __table_args__ = (
        UniqueConstraint("tour_id", "order_index", name="uq_checkpoint_tour_order"),
    )

    def caps(self) -> dict[str, int]:
        return {
            "connection": self.gms_connection,
            "meaning": self.gms_meaning,
            "joy": self.gms_joy,
            "growth": self.gms_growth,
        }
