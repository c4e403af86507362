from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List
from uuid import UUID
from datetime import datetime

class JoinRequest(BaseModel):
    join_code: str = Field(min_length=6, max_length=6)
    team_name: str = Field(min_length=1, max_length=30)

class JoinResponse(BaseModel):
    team_id: UUID
    team_token: str
    session_id: UUID
    variant: str
    status: str

class PositionIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    timestamp: datetime | None = None  # client clock; informational only

class PositionOut(BaseModel):
    is_outside_geofence: bool
    throttled: bool

class UnlockRequest(BaseModel):
    checkpoint_id: UUID
    position: PositionIn | None = None

class CheckpointMission(BaseModel):
    id: UUID
    order_index: int
    name: str
    mission_title: str
    mission_description: str
    mission_type: str
    hint1: str | None = None
    hint2: str | None = None
    hint3: str | None = None
    time_limit_seconds: int | None = None
    bonus_photo_points: int = 0

class UnlockResponse(BaseModel):
    success: bool = True
    already_completed: bool
    checkpoint: CheckpointMission
    current_checkpoint_index: int
    finished: bool
    distance_m: int | None = None

class SubmitRequest(BaseModel):
    checkpoint_id: UUID
    answer: str | None = Field(default=None, max_length=2000)
    photo_ref: str | None = Field(default=None, max_length=500)

class SubmitResponse(BaseModel):
    submission_id: UUID
    checkpoint_id: UUID
    oracle_score: int
    feedback: str
    dimensions: dict[str, int]
    gms_earned: int
    bonus_earned: int
    total_score: int

class PhotoOut(BaseModel):
    photo_ref: str

class LeaderboardRow(BaseModel):
    rank: int
    team_name: str
    total_score: int
    bonus_points: int
    checkpoints_done: int
    current_checkpoint_index: int
    finished: bool
    is_current_team: bool = False

class Leaderboard(BaseModel):
    session_id: UUID
    status: str
    total_checkpoints: int
    rows: List[LeaderboardRow]

class TeamCheckpoint(BaseModel):
    id: UUID
    order_index: int
    name: str
    latitude: float
    longitude: float
    unlock_radius_m: int
    mission_type: str
    gms_connection: int
    gms_meaning: int
    gms_joy: int
    gms_growth: int
    bonus_photo_points: int
    # hidden until the checkpoint is reachable
    mission_title: str | None = None
    mission_description: str | None = None
    hint1: str | None = None
    hint2: str | None = None
    hint3: str | None = None
    is_completed: bool
    is_current: bool

class TeamState(BaseModel):
    id: UUID
    name: str
    current_checkpoint_index: int
    completed_checkpoints: List[str]
    total_score: int
    bonus_points: int
    is_outside_geofence: bool
    finished: bool

class TeamView(BaseModel):
    session_id: UUID
    status: str
    variant: str
    is_test_mode: bool
    checkpoints: List[TeamCheckpoint]
    team: TeamState
    scoreboard: List[LeaderboardRow]

class TeamReport(BaseModel):
    team_name: str
    rank: int | None
    teams: int
    total_score: int
    bonus_points: int
    gms_max: int
    dimensions: dict[str, int]
    dimension_maxes: dict[str, int]
    dimension_percentages: dict[str, int]
    checkpoint_scores: List[dict]
    checkpoints_completed: int
    total_checkpoints: int
