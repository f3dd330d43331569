"""Pydantic request/response models for the drill API."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---- Scheduling state ----

class ItemStateSchema(BaseModel):
    last_interval: float = -1.0
    repetitions: int = 0
    easiness_factor: Optional[float] = None
    failure_count: int = 0
    mean_quality: Optional[float] = None
    total_repeats: int = 0
    scheduled: Optional[date] = None
    last_reviewed: Optional[datetime] = None
    last_quality: Optional[int] = None


# ---- Schedule ----

class ScheduleRequest(BaseModel):
    algorithm: str = "sm5"
    state: Optional[ItemStateSchema] = None
    quality: int
    delta_days: Optional[int] = None
    matrix: Optional[Dict[str, Dict[str, float]]] = None


class ScheduleResponse(BaseModel):
    algorithm: str
    state: ItemStateSchema
    matrix: Optional[Dict[str, Dict[str, float]]] = None


# ---- Classify ----

class ClassifyRequest(BaseModel):
    state: Optional[ItemStateSchema] = None
    today: Optional[date] = None
    cram_mode: bool = False
    now: Optional[datetime] = None


class ClassifyResponse(BaseModel):
    status: str
    bucket: Optional[str] = None
    days_overdue: int
    leech: bool


# ---- Due items ----

class DueItem(BaseModel):
    item_id: str
    prompt: str
    bucket: str
    days_overdue: int
    leech: bool
    tags: List[str]


class DueItemsResponse(BaseModel):
    due_count: int
    items: List[DueItem]


# ---- Review ----

class ReviewRequest(BaseModel):
    item_id: str
    quality: int = Field(..., ge=0, le=5)


class ReviewResponse(BaseModel):
    item_id: str
    quality: int
    failed: bool
    state: ItemStateSchema


# ---- Stats / matrix ----

class StatsResponse(BaseModel):
    total: int
    due: int
    by_bucket: Dict[str, int]
    future: int
    leeches: int
    average_ease: Optional[float] = None
    mean_quality: Optional[float] = None
    retention: Optional[float] = None


class MatrixResponse(BaseModel):
    size: int
    entries: Dict[str, Dict[str, float]]


class SessionHistoryResponse(BaseModel):
    total_sessions: int
    total_reviewed: int
    sessions: List[Dict[str, Any]]
