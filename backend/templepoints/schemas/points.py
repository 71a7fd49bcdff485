from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Literal

SubmissionStatus = Literal["pending", "approved", "rejected"]


class PointsCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    ward_id: int = Field(gt=0)
    submitter_name: str = Field(min_length=1, max_length=120)
    points: int = Field(gt=0)
    note: str = Field(default="", max_length=2000)


class SubmitResult(BaseModel):
    success: bool = True
    id: int
    message: str


class ActionResult(BaseModel):
    success: bool = True
    message: str


class SubmissionPublic(BaseModel):
    id: int
    ward_id: int
    ward_name: str | None = None
    submitter_name: str
    points: int
    note: str
    status: SubmissionStatus
    approved_by: int | None = None
    approved_at: datetime | None = None
    created_at: datetime
