"""Pydantic request/response models for all API endpoints."""

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from datetime import datetime, date
from typing import List, Optional


def _check_quality(v: Optional[int]) -> Optional[int]:
    if v is not None and not 1 <= v <= 5:
        raise ValueError("quality must be between 1 and 5")
    return v


# Profile models

class ProfileUpdate(BaseModel):
    name: str
    birth_date: date

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class ProfileResponse(BaseModel):
    id: str
    name: str
    birth_date: date
    active_timer_start: Optional[datetime] = None
    wake_window_adjustment_min: int = 0
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdjustmentRequest(BaseModel):
    minutes: int


# Sleep session models

class SessionCreate(BaseModel):
    start: datetime
    end: datetime
    quality: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("quality")
    @classmethod
    def quality_range(cls, v: Optional[int]) -> Optional[int]:
        return _check_quality(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class SessionUpdate(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    quality: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("quality")
    @classmethod
    def quality_range(cls, v: Optional[int]) -> Optional[int]:
        return _check_quality(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.start is not None and self.end is not None and self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class SessionResponse(BaseModel):
    id: str
    start: datetime
    end: datetime
    duration_minutes: int
    quality: Optional[int] = None
    notes: Optional[str] = None
    source: str
    deleted: bool
    updated_at: Optional[datetime] = None


class SessionListResponse(BaseModel):
    baby_id: str
    sessions: List[SessionResponse]


# Model / schedule / coach models

class LearnerResponse(BaseModel):
    version: int
    ewma_nap_length_min: float
    ewma_wake_window_min: float
    last_updated: datetime
    confidence: float

    model_config = ConfigDict(from_attributes=True)


class ScheduleBlockResponse(BaseModel):
    id: str
    kind: str
    start: datetime
    end: datetime
    confidence: float
    rationale: str


class ScheduleResponse(BaseModel):
    baby_id: str
    generated_at: datetime
    blocks: List[ScheduleBlockResponse]


class TipResponse(BaseModel):
    id: str
    type: str
    severity: str
    title: str
    message: str
    rationale: str
    related_session_ids: List[str]
    created_at: Optional[datetime] = None


class TipsResponse(BaseModel):
    baby_id: str
    tips: List[TipResponse]


class NotificationResponse(BaseModel):
    id: str
    scheduled_at: datetime
    trigger_at: datetime
    kind: str
    status: str
    related_block_id: Optional[str] = None
    title: str
    body: str


class NotificationsResponse(BaseModel):
    baby_id: str
    notifications: List[NotificationResponse]


class OverviewResponse(BaseModel):
    profile: ProfileResponse
    learner: LearnerResponse
    schedule: List[ScheduleBlockResponse]
    tips: List[TipResponse]
    computed_at: datetime


class TimerStopResponse(BaseModel):
    session: SessionResponse
    learner: LearnerResponse


# Converters from service objects

def session_response(s) -> SessionResponse:
    return SessionResponse(
        id=s.id,
        start=s.start,
        end=s.end,
        duration_minutes=s.duration_minutes,
        quality=s.quality,
        notes=s.notes,
        source=s.source.value,
        deleted=s.deleted,
        updated_at=s.updated_at,
    )


def block_response(b) -> ScheduleBlockResponse:
    return ScheduleBlockResponse(
        id=b.id,
        kind=b.kind.value,
        start=b.start,
        end=b.end,
        confidence=b.confidence,
        rationale=b.rationale,
    )


def tip_response(t) -> TipResponse:
    return TipResponse(
        id=t.id,
        type=t.type.value,
        severity=t.severity.value,
        title=t.title,
        message=t.message,
        rationale=t.rationale,
        related_session_ids=list(t.related_session_ids),
        created_at=t.created_at,
    )


def notification_response(e) -> NotificationResponse:
    return NotificationResponse(
        id=e.id,
        scheduled_at=e.scheduled_at,
        trigger_at=e.trigger_at,
        kind=e.kind.value,
        status=e.status.value,
        related_block_id=e.related_block_id,
        title=e.title,
        body=e.body,
    )
