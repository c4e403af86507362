from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, List
from uuid import UUID
from datetime import datetime

SessionStatus = Literal["draft", "lobby", "active", "paused", "completed", "cancelled"]

class GeoPoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

class SessionCreate(BaseModel):
    tour_id: UUID
    variant: str | None = None  # defaults to the tour's variant
    is_test_mode: bool = False
    geofence_polygon: List[GeoPoint] | None = None

    @field_validator("geofence_polygon")
    @classmethod
    def polygon_has_area(cls, v: list[GeoPoint] | None):
        if v is not None and len(v) < 3:
            raise ValueError("geofence polygon needs at least 3 points")
        return v

class GeofenceUpdate(BaseModel):
    geofence_polygon: List[GeoPoint] | None

    @field_validator("geofence_polygon")
    @classmethod
    def polygon_has_area(cls, v: list[GeoPoint] | None):
        if v is not None and len(v) < 3:
            raise ValueError("geofence polygon needs at least 3 points")
        return v

class StatusChange(BaseModel):
    status: SessionStatus

class TeamPublic(BaseModel):
    id: UUID
    name: str
    current_checkpoint_index: int
    completed_checkpoints: List[str]
    total_score: int
    bonus_points: int
    is_active: bool
    is_outside_geofence: bool
    last_latitude: float | None = None
    last_longitude: float | None = None
    last_position_at: datetime | None = None

class SessionPublic(BaseModel):
    id: UUID
    tour_id: UUID
    status: SessionStatus
    join_code: str
    variant: str
    is_test_mode: bool
    geofence_polygon: List[GeoPoint] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    teams: List[TeamPublic] = Field(default_factory=list)

class ScoreDrift(BaseModel):
    team_id: UUID
    team_name: str
    consistent: bool
    drift: dict[str, dict[str, int]]
    repaired: bool
