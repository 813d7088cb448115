"""Pydantic models mirroring the naprhythm database schema."""

from datetime import datetime, date
from enum import Enum
from typing import Optional

import pytz
from pydantic import BaseModel, ConfigDict, field_validator

from naprhythm.core.constants import LEARNER_SCHEMA_VERSION
from naprhythm.utils.time_utils import minutes_between


class SessionSource(str, Enum):
    MANUAL = "manual"
    TIMER = "timer"


class BlockKind(str, Enum):
    NAP = "nap"
    BEDTIME = "bedtime"
    WIND_DOWN = "windDown"


class NotificationStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELED = "canceled"
    TRIGGERED = "triggered"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are read as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


# Used by: sleep_data.py, sleep_coordinator.py, api/babies.py
class BabyProfile(BaseModel):
    id: str
    name: str
    birth_date: date
    active_timer_start: Optional[datetime] = None
    wake_window_adjustment_min: int = 0
    updated_at: Optional[datetime] = None

    @field_validator("active_timer_start", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True)


# Used by: learner, schedule_generator, coach_analyzer, sleep_data.py
class SleepSession(BaseModel):
    id: str
    start: datetime
    end: datetime
    quality: Optional[int] = None
    notes: Optional[str] = None
    source: SessionSource = SessionSource.MANUAL
    deleted: bool = False
    updated_at: Optional[datetime] = None

    @field_validator("start", "end", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return _as_utc(v)

    @property
    def is_valid(self) -> bool:
        """Counts toward learning only if not tombstoned and start < end."""
        return not self.deleted and self.start < self.end

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start, self.end)

    model_config = ConfigDict(from_attributes=True)


# Used by: learner, schedule_generator, coach_analyzer, sleep_data.py
class LearnerState(BaseModel):
    version: int = LEARNER_SCHEMA_VERSION
    ewma_nap_length_min: float
    ewma_wake_window_min: float
    last_updated: datetime
    confidence: float

    @field_validator("last_updated")
    @classmethod
    def normalize_timestamps(cls, v):
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True)


# Used by: notification_planner.py, sleep_data.py
class NotificationLogEntry(BaseModel):
    id: str
    scheduled_at: datetime
    trigger_at: datetime
    kind: BlockKind
    status: NotificationStatus = NotificationStatus.SCHEDULED
    related_block_id: Optional[str] = None
    title: str = ""
    body: str = ""

    @field_validator("scheduled_at", "trigger_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True)


