"""Detects unusual sleep patterns and turns them into advisory coach tips."""

import logging
from dataclasses import dataclass, asdict, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pytz.tzinfo import BaseTzInfo

from ..core.clock import Clock, get_clock
from ..core.constants import (
    COACH_RECENT_DAYS, NIGHT_SLEEP_MIN_MINUTES, NIGHT_END_HOUR, NIGHT_START_HOUR,
    SHORT_NAP_THRESHOLD_MINUTES, SHORT_NAP_STREAK_MIN_COUNT, SHORT_NAP_MAX_RELATED,
    LONG_WAKE_WINDOW_FACTOR, MAX_WAKE_WINDOW_SAMPLE_MINUTES,
    BEDTIME_SHIFT_WINDOW, BEDTIME_SHIFT_MIN_NIGHTS, BEDTIME_SHIFT_THRESHOLD_MINUTES,
    SPLIT_NIGHT_MIN_HOURS, SPLIT_NIGHT_EDGE_HOURS, SPLIT_NIGHT_THRESHOLD_HOURS,
)
from ..core.ids import IdFactory, uuid4_id
from ..db.models import LearnerState, SleepSession
from ..utils.time_utils import local_hour, minutes_between, minutes_since_midnight
from .learner import is_night_sleep, valid_sessions_sorted

logger = logging.getLogger(__name__)


class TipType(str, Enum):
    SHORT_NAP_STREAK = "shortNapStreak"
    LONG_WAKE_WINDOW = "longWakeWindow"
    BEDTIME_SHIFT = "bedtimeShift"
    SPLIT_NIGHT = "splitNight"


class TipSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"


@dataclass
class CoachTip:
    id: str
    type: TipType
    severity: TipSeverity
    title: str
    message: str
    rationale: str
    related_session_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        if data["created_at"]:
            data["created_at"] = data["created_at"].isoformat()
        return data


@dataclass
class ShortNapFinding:
    count: int
    session_ids: List[str]


@dataclass
class WakeWindowFinding:
    minutes: int
    session_ids: List[str]


@dataclass
class BedtimeShiftFinding:
    direction: str  # "earlier", "later"
    minutes: float
    session_ids: List[str]


@dataclass
class SplitNightFinding:
    wake_gap_hours: float
    session_ids: List[str]


# Used by: detect_short_nap_streak (daytime-start rule, stricter than the learner's)
def is_daytime_nap(session: SleepSession, tz: BaseTzInfo) -> bool:
    start_hour = local_hour(session.start, tz)
    return (
        session.duration_minutes < NIGHT_SLEEP_MIN_MINUTES
        and NIGHT_END_HOUR <= start_hour < NIGHT_START_HOUR
    )


def detect_short_nap_streak(
    recent: Sequence[SleepSession],
    tz: BaseTzInfo,
) -> Optional[ShortNapFinding]:
    short_naps = [
        s for s in recent
        if is_daytime_nap(s, tz) and s.duration_minutes < SHORT_NAP_THRESHOLD_MINUTES
    ]

    if len(short_naps) >= SHORT_NAP_STREAK_MIN_COUNT:
        return ShortNapFinding(
            count=len(short_naps),
            session_ids=[s.id for s in short_naps[-SHORT_NAP_MAX_RELATED:]],
        )
    return None


def detect_long_wake_window(
    recent: Sequence[SleepSession],
    learner: LearnerState,
) -> Optional[WakeWindowFinding]:
    """First gap between consecutive sessions that overshoots the learned window by 20%."""
    if len(recent) < 2:
        return None

    threshold = learner.ewma_wake_window_min * LONG_WAKE_WINDOW_FACTOR

    for prev, curr in zip(recent, recent[1:]):
        gap = minutes_between(prev.end, curr.start)
        if threshold < gap < MAX_WAKE_WINDOW_SAMPLE_MINUTES:
            return WakeWindowFinding(minutes=gap, session_ids=[prev.id, curr.id])
    return None


def detect_bedtime_shift(
    sessions: Sequence[SleepSession],
    tz: BaseTzInfo,
) -> Optional[BedtimeShiftFinding]:
    """Average bedtime of the last 5 nights vs the 5 before; runs over the full history."""
    nights = [s for s in sessions if is_night_sleep(s, tz)]
    if len(nights) < BEDTIME_SHIFT_MIN_NIGHTS:
        return None

    recent_nights = nights[-BEDTIME_SHIFT_WINDOW:]
    older_nights = nights[-2 * BEDTIME_SHIFT_WINDOW:-BEDTIME_SHIFT_WINDOW]

    recent_avg = sum(minutes_since_midnight(s.start, tz) for s in recent_nights) / len(recent_nights)
    older_avg = sum(minutes_since_midnight(s.start, tz) for s in older_nights) / len(older_nights)
    shift = recent_avg - older_avg

    if abs(shift) > BEDTIME_SHIFT_THRESHOLD_MINUTES:
        return BedtimeShiftFinding(
            direction="earlier" if shift < 0 else "later",
            minutes=abs(shift),
            session_ids=[s.id for s in recent_nights],
        )
    return None


def detect_split_night(
    recent: Sequence[SleepSession],
    tz: BaseTzInfo,
) -> Optional[SplitNightFinding]:
    """A >12h night that other sessions overlap at its midpoint suggests a broken-up night."""
    for session in recent:
        if not is_night_sleep(session, tz):
            continue

        duration_hours = session.duration_minutes / 60
        if duration_hours <= SPLIT_NIGHT_MIN_HOURS:
            continue

        midpoint = session.start + (session.end - session.start) / 2
        overlapping = [
            s for s in recent
            if s.id != session.id and not s.deleted and s.start < midpoint < s.end
        ]
        if not overlapping:
            continue

        gap_start = session.start + timedelta(hours=SPLIT_NIGHT_EDGE_HOURS)
        gap_end = session.end - timedelta(hours=SPLIT_NIGHT_EDGE_HOURS)
        wake_gap_hours = minutes_between(gap_start, gap_end) / 60

        if wake_gap_hours > SPLIT_NIGHT_THRESHOLD_HOURS:
            return SplitNightFinding(
                wake_gap_hours=wake_gap_hours,
                session_ids=[session.id] + [s.id for s in overlapping],
            )
    return None


# Used by: sleep_coordinator.recompute, api/insights.py
def analyze_and_generate_tips(
    sessions: Sequence[SleepSession],
    learner: LearnerState,
    birth_date: Union[date, datetime],
    clock: Optional[Clock] = None,
    new_id: Optional[IdFactory] = None,
) -> List[CoachTip]:
    """Runs each detector once, in a fixed order; at most one tip per detector."""
    clock = clock or get_clock()
    new_id = new_id or uuid4_id
    tz = clock.tz

    tips: List[CoachTip] = []
    valid = valid_sessions_sorted(sessions)
    if not valid:
        return tips

    now = clock.now()
    cutoff = now - timedelta(days=COACH_RECENT_DAYS)
    recent = [s for s in valid if s.start > cutoff]

    short_naps = detect_short_nap_streak(recent, tz)
    if short_naps:
        tips.append(CoachTip(
            id=new_id(),
            type=TipType.SHORT_NAP_STREAK,
            severity=TipSeverity.WARNING,
            title="Short Nap Pattern",
            message=(
                f"Multiple short naps detected ({short_naps.count} naps under "
                f"{SHORT_NAP_THRESHOLD_MINUTES} minutes)."
            ),
            rationale="Recent naps are shorter than typical. Consider adjusting wake windows or environment.",
            related_session_ids=short_naps.session_ids,
            created_at=now,
        ))

    long_wake = detect_long_wake_window(recent, learner)
    if long_wake:
        tips.append(CoachTip(
            id=new_id(),
            type=TipType.LONG_WAKE_WINDOW,
            severity=TipSeverity.WARNING,
            title="Extended Wake Window",
            message=(
                f"Wake window of {long_wake.minutes} minutes detected "
                f"(target: {learner.ewma_wake_window_min:.0f} minutes)."
            ),
            rationale="Extended wake windows can lead to overtiredness. Consider earlier wind-down.",
            related_session_ids=long_wake.session_ids,
            created_at=now,
        ))

    bedtime_shift = detect_bedtime_shift(valid, tz)
    if bedtime_shift:
        tips.append(CoachTip(
            id=new_id(),
            type=TipType.BEDTIME_SHIFT,
            severity=TipSeverity.INFO,
            title="Bedtime Shift Detected",
            message=f"Bedtime has shifted {bedtime_shift.direction} by {bedtime_shift.minutes:.0f} minutes.",
            rationale="Bedtime patterns are shifting. Monitor for consistency.",
            related_session_ids=bedtime_shift.session_ids,
            created_at=now,
        ))

    split_night = detect_split_night(recent, tz)
    if split_night:
        tips.append(CoachTip(
            id=new_id(),
            type=TipType.SPLIT_NIGHT,
            severity=TipSeverity.WARNING,
            title="Split Night Detected",
            message="Extended wake period detected during night sleep.",
            rationale="Long wake periods during the night may indicate schedule adjustments needed.",
            related_session_ids=split_night.session_ids,
            created_at=now,
        ))

    if tips:
        logger.info(f"Coach produced {len(tips)} tips: {[t.type.value for t in tips]}")
    return tips
