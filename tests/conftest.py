"""Shared fixtures: fixed clock, deterministic ids, in-memory store."""

from datetime import datetime
from typing import Dict, List, Optional

import pytest
import pytz

from naprhythm.core.clock import FixedClock
from naprhythm.core.ids import SequentialIds
from naprhythm.db.models import (
    BabyProfile, LearnerState, NotificationLogEntry, SessionSource, SleepSession,
)


def utc(year, month, day, hour=0, minute=0) -> datetime:
    return pytz.utc.localize(datetime(year, month, day, hour, minute))


def make_session(
    session_id: str,
    start: datetime,
    end: datetime,
    deleted: bool = False,
    source: SessionSource = SessionSource.MANUAL,
) -> SleepSession:
    return SleepSession(id=session_id, start=start, end=end, deleted=deleted, source=source)


class InMemorySleepStore:
    """Dict-backed stand-in for SleepDataManager."""

    def __init__(self):
        self.profiles: Dict[str, BabyProfile] = {}
        self.sessions: Dict[str, Dict[str, SleepSession]] = {}
        self.learner_states: Dict[str, LearnerState] = {}
        self.notification_logs: Dict[str, List[NotificationLogEntry]] = {}

    async def get_profile(self, baby_id: str) -> Optional[BabyProfile]:
        return self.profiles.get(baby_id)

    async def upsert_profile(self, profile: BabyProfile) -> BabyProfile:
        self.profiles[profile.id] = profile
        return profile

    async def list_sessions(self, baby_id: str) -> List[SleepSession]:
        return sorted(self.sessions.get(baby_id, {}).values(), key=lambda s: s.start)

    async def get_session(self, baby_id: str, session_id: str) -> Optional[SleepSession]:
        return self.sessions.get(baby_id, {}).get(session_id)

    async def upsert_session(self, baby_id: str, session: SleepSession) -> SleepSession:
        self.sessions.setdefault(baby_id, {})[session.id] = session
        return session

    async def soft_delete_all_sessions(self, baby_id: str, deleted_at: datetime) -> int:
        count = 0
        for session_id, s in list(self.sessions.get(baby_id, {}).items()):
            if not s.deleted:
                self.sessions[baby_id][session_id] = s.model_copy(
                    update={"deleted": True, "updated_at": deleted_at}
                )
                count += 1
        return count

    async def get_learner_state(self, baby_id: str) -> Optional[LearnerState]:
        return self.learner_states.get(baby_id)

    async def save_learner_state(self, baby_id: str, state: LearnerState) -> None:
        self.learner_states[baby_id] = state

    async def clear_learner_state(self, baby_id: str) -> None:
        self.learner_states.pop(baby_id, None)

    async def list_notification_log(self, baby_id: str) -> List[NotificationLogEntry]:
        return sorted(self.notification_logs.get(baby_id, []), key=lambda e: e.trigger_at)

    async def save_notification_log(self, baby_id: str, entries: List[NotificationLogEntry]) -> None:
        by_id = {e.id: e for e in self.notification_logs.get(baby_id, [])}
        for entry in entries:
            by_id[entry.id] = entry
        self.notification_logs[baby_id] = list(by_id.values())

    async def clear_notification_log(self, baby_id: str) -> None:
        self.notification_logs.pop(baby_id, None)


@pytest.fixture
def clock():
    """Noon UTC on 2024-07-01."""
    return FixedClock(utc(2024, 7, 1, 12, 0))


@pytest.fixture
def ids():
    return SequentialIds("id")


@pytest.fixture
def store():
    return InMemorySleepStore()
