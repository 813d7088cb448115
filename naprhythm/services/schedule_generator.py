"""Builds a forward schedule of wind-down, nap and bedtime blocks from the learner model."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence, Union

from pytz.tzinfo import BaseTzInfo

from ..core.clock import Clock, get_clock
from ..core.constants import (
    WIND_DOWN_BUFFER_MINUTES, MAX_NAPS_PER_DAY, BEDTIME_TARGET_HOUR,
    BEDTIME_BLOCK_MINUTES, DEFAULT_DAYS_AHEAD, MIN_ADJUSTED_WAKE_WINDOW_MINUTES,
)
from ..core.ids import IdFactory, uuid4_id
from ..db.models import BlockKind, LearnerState, SleepSession
from ..utils.time_utils import (
    add_minutes, local_date, local_datetime, start_of_day, end_of_day, format_time,
    parse_timestamp,
)
from .age_baseline import AgeBaseline, baseline_for_birth_date

logger = logging.getLogger(__name__)


@dataclass
class ScheduleBlock:
    id: str
    kind: BlockKind
    start: datetime
    end: datetime
    confidence: float
    rationale: str


# Used by: generate_schedule (anchors each day to the child's last real wake-up)
def _last_session_end_before(sessions: Sequence[SleepSession], before: datetime) -> Optional[datetime]:
    ends = [s.end for s in sessions if s.is_valid and s.end < before]
    return max(ends) if ends else None


def _nap_block(
    start: datetime,
    learner: LearnerState,
    baseline: AgeBaseline,
    new_id: IdFactory,
) -> ScheduleBlock:
    nap_length = learner.ewma_nap_length_min
    return ScheduleBlock(
        id=new_id(),
        kind=BlockKind.NAP,
        start=start,
        end=add_minutes(start, nap_length),
        confidence=learner.confidence,
        rationale=f"Nap: EWMA {nap_length:.0f}m (baseline {baseline.typical_nap_length_min}m)",
    )


def _wind_down_block(
    start: datetime,
    target: datetime,
    learner: LearnerState,
    tz: BaseTzInfo,
    new_id: IdFactory,
) -> ScheduleBlock:
    return ScheduleBlock(
        id=new_id(),
        kind=BlockKind.WIND_DOWN,
        start=start,
        end=target,
        confidence=learner.confidence,
        rationale=f"Wind down period before {format_time(target, tz)}",
    )


def _bedtime_block(
    start: datetime,
    learner: LearnerState,
    tz: BaseTzInfo,
    new_id: IdFactory,
) -> ScheduleBlock:
    return ScheduleBlock(
        id=new_id(),
        kind=BlockKind.BEDTIME,
        start=start,
        end=add_minutes(start, BEDTIME_BLOCK_MINUTES),
        confidence=learner.confidence,
        rationale=f"Bedtime at {format_time(start, tz)}",
    )


# Used by: sleep_coordinator.recompute, api/insights.py, generate_schedule_with_adjustment
def generate_schedule(
    sessions: Sequence[SleepSession],
    learner: LearnerState,
    birth_date: Union[date, datetime],
    start_time: Optional[datetime] = None,
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    clock: Optional[Clock] = None,
    new_id: Optional[IdFactory] = None,
) -> List[ScheduleBlock]:
    """
    Greedy placement per local calendar day: wake window, then nap, repeated
    until the next nap would run into the 19:00 bedtime (max 4 naps), then
    wind-down + bedtime. Only blocks starting strictly after start_time are kept.
    """
    clock = clock or get_clock()
    new_id = new_id or uuid4_id
    tz = clock.tz
    start_time = parse_timestamp(start_time) or clock.now()

    baseline = baseline_for_birth_date(birth_date, local_date(start_time, tz))
    wake_window = learner.ewma_wake_window_min
    nap_length = learner.ewma_nap_length_min

    blocks: List[ScheduleBlock] = []
    first_day = local_date(start_time, tz)
    cursor = start_time

    for day_offset in range(days_ahead):
        day = first_day + timedelta(days=day_offset)
        day_start = start_of_day(day, tz)
        day_end = end_of_day(day, tz)

        # Carried over from the previous day's bedtime block, never earlier than midnight
        if day_offset == 0:
            cursor = max(day_start, start_time)
        else:
            cursor = max(cursor, day_start)

        last_end = _last_session_end_before(sessions, day_start)
        if last_end is not None and last_end > cursor:
            cursor = last_end

        target_bedtime = local_datetime(day, time(BEDTIME_TARGET_HOUR, 0), tz)

        nap_count = 0
        while cursor < day_end and nap_count < MAX_NAPS_PER_DAY:
            nap_start = add_minutes(cursor, wake_window)
            if add_minutes(cursor, wake_window + nap_length) >= target_bedtime:
                break
            if nap_start >= target_bedtime:
                break

            wind_down_start = add_minutes(nap_start, -WIND_DOWN_BUFFER_MINUTES)
            if wind_down_start > cursor:
                blocks.append(_wind_down_block(wind_down_start, nap_start, learner, tz, new_id))

            nap = _nap_block(nap_start, learner, baseline, new_id)
            blocks.append(nap)
            cursor = nap.end
            nap_count += 1

        if cursor < target_bedtime:
            wind_down_start = add_minutes(target_bedtime, -WIND_DOWN_BUFFER_MINUTES)
            if wind_down_start > cursor:
                blocks.append(_wind_down_block(wind_down_start, target_bedtime, learner, tz, new_id))
            bedtime = _bedtime_block(target_bedtime, learner, tz, new_id)
            blocks.append(bedtime)
            cursor = bedtime.end

        logger.debug(f"Day {day} scheduled: {nap_count} naps, cursor now {cursor.isoformat()}")

    upcoming = [block for block in blocks if block.start > start_time]
    logger.info(
        f"Generated {len(upcoming)} schedule blocks over {days_ahead} days "
        f"(wake window {wake_window:.0f}m, nap {nap_length:.0f}m)"
    )
    return upcoming


# Used by: generate_schedule_with_adjustment, SleepCoordinator.preview_schedule
def adjusted_learner(learner: LearnerState, delta_minutes: float) -> LearnerState:
    """Copy with the wake window shifted, never below the 30 minute floor."""
    return learner.model_copy(
        update={
            "ewma_wake_window_min": max(
                MIN_ADJUSTED_WAKE_WINDOW_MINUTES, learner.ewma_wake_window_min + delta_minutes
            )
        }
    )


# Used by: sleep_coordinator.recompute (what-if slider)
def generate_schedule_with_adjustment(
    sessions: Sequence[SleepSession],
    learner: LearnerState,
    birth_date: Union[date, datetime],
    delta_minutes: float,
    start_time: Optional[datetime] = None,
    clock: Optional[Clock] = None,
    new_id: Optional[IdFactory] = None,
) -> List[ScheduleBlock]:
    """Same schedule with the wake window shifted by delta_minutes; learner is not mutated."""
    return generate_schedule(
        sessions,
        adjusted_learner(learner, delta_minutes),
        birth_date,
        start_time=start_time,
        days_ahead=DEFAULT_DAYS_AHEAD,
        clock=clock,
        new_id=new_id,
    )
