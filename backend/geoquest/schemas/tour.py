from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, List
from uuid import UUID
from datetime import datetime
from geoquest.config import settings

MissionType = Literal["opdracht", "foto", "quiz", "video"]

class CheckpointCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    unlock_radius_m: int = Field(default=50, ge=1, le=5000)
    mission_title: str = Field(min_length=1, max_length=200)
    mission_description: str = Field(min_length=1)
    mission_type: MissionType = "opdracht"
    gms_connection: int = Field(default=0, ge=0, le=25)
    gms_meaning: int = Field(default=0, ge=0, le=25)
    gms_joy: int = Field(default=0, ge=0, le=25)
    gms_growth: int = Field(default=0, ge=0, le=25)
    hint1: str | None = None
    hint2: str | None = None
    hint3: str | None = None
    time_limit_seconds: int | None = Field(default=None, ge=1)
    bonus_photo_points: int = Field(default=0, ge=0)

class TourCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    variant: str = Field(default="wijktocht", max_length=32)
    max_teams: int = Field(default_factory=lambda: settings.default_max_teams, ge=1, le=500)
    # order in the list is the walking order
    checkpoints: List[CheckpointCreate]

    @field_validator("checkpoints")
    @classmethod
    def non_empty(cls, v: list[CheckpointCreate]):
        if not v:
            raise ValueError("checkpoints must not be empty")
        return v

class CheckpointPublic(CheckpointCreate):
    id: UUID
    order_index: int

class TourPublic(BaseModel):
    id: UUID
    operator_id: UUID
    name: str
    variant: str
    max_teams: int
    created_at: datetime
    checkpoints: List[CheckpointPublic]
