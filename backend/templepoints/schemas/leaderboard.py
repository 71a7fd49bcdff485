from __future__ import annotations
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any

from templepoints.schemas.points import SubmissionPublic


class LeaderboardEntry(BaseModel):
    rank: int
    ward_id: int
    ward_name: str
    points: int             # verified
    pending_points: int
    total_points: int       # verified + pending
    progress: float         # % of the competition goal, 1 decimal
    achievements: list[str] = Field(default_factory=list)  # "icon title"
    streak: int = 0
    last_activity: datetime | None = None


class Stats(BaseModel):
    leading_ward: str = ""
    total_points: int = 0
    days_active: int = 0
    participants: int = 0


class LeaderboardView(BaseModel):
    leaderboard: list[LeaderboardEntry]
    stats: Stats


class WardPublic(BaseModel):
    id: int
    name: str
    points: int
    pending_points: int


class WardLog(BaseModel):
    ward_id: int
    ward_name: str
    total_points: int
    pending_points: int
    submissions: list[SubmissionPublic]


class BroadcastEvent(BaseModel):
    """Envelope of every message pushed over the live channel."""
    type: str
    data: Any = Field(default_factory=dict)
