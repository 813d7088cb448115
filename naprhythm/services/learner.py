"""EWMA learner for nap length and wake windows, with a confidence score."""

import logging
import math
from datetime import date, datetime
from typing import List, Optional, Sequence, Union

from pytz.tzinfo import BaseTzInfo

from ..core.clock import Clock, get_clock
from ..core.constants import (
    LEARNER_SCHEMA_VERSION, EWMA_ALPHA, COLD_START_CONFIDENCE,
    MIN_SESSIONS_FOR_CONFIDENCE, CONFIDENCE_DECAY_DAYS,
    VARIANCE_PENALTY_SCALE, VARIANCE_PENALTY_FLOOR,
    MIN_NAP_SAMPLE_MINUTES, MAX_WAKE_WINDOW_SAMPLE_MINUTES,
    NAP_CLAMP_LOW_FACTOR, NAP_CLAMP_HIGH_FACTOR,
    NIGHT_SLEEP_MIN_MINUTES, NIGHT_START_HOUR, NIGHT_END_HOUR,
)
from ..db.models import LearnerState, SleepSession
from ..utils.time_utils import minutes_between, local_hour, local_date
from .age_baseline import baseline_for_birth_date

logger = logging.getLogger(__name__)


def _is_night_hour(hour: int) -> bool:
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


# Used by: update_learner, schedule_generator, coach_analyzer (bedtime shift)
def is_night_sleep(session: SleepSession, tz: BaseTzInfo) -> bool:
    """Long sessions, or ones that start or end in the 18:00-06:00 band, are night sleep."""
    return (
        session.duration_minutes > NIGHT_SLEEP_MIN_MINUTES
        or _is_night_hour(local_hour(session.start, tz))
        or _is_night_hour(local_hour(session.end, tz))
    )


def valid_sessions_sorted(sessions: Sequence[SleepSession]) -> List[SleepSession]:
    return sorted((s for s in sessions if s.is_valid), key=lambda s: s.start)


def calculate_ewma(current: float, sample: float, alpha: float = EWMA_ALPHA) -> float:
    return alpha * sample + (1 - alpha) * current


def _population_variance(samples: List[float], center: float) -> float:
    if len(samples) < 2:
        return 0.0
    return sum((x - center) ** 2 for x in samples) / len(samples)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# Used by: update_learner
def calculate_confidence(
    session_count: int,
    variance: float,
    last_updated: datetime,
    now: datetime,
) -> float:
    base = min(1.0, session_count / (MIN_SESSIONS_FOR_CONFIDENCE * 2))
    days_since_update = minutes_between(last_updated, now) / (24 * 60)
    recency = max(0.0, 1 - days_since_update / CONFIDENCE_DECAY_DAYS)
    variance_penalty = max(VARIANCE_PENALTY_FLOOR, 1 - min(1.0, variance / VARIANCE_PENALTY_SCALE))
    return min(1.0, base * recency * variance_penalty)


def cold_start_state(birth_date: Union[date, datetime], clock: Optional[Clock] = None) -> LearnerState:
    clock = clock or get_clock()
    now = clock.now()
    baseline = baseline_for_birth_date(birth_date, local_date(now, clock.tz))
    return LearnerState(
        version=LEARNER_SCHEMA_VERSION,
        ewma_nap_length_min=baseline.typical_nap_length_min,
        ewma_wake_window_min=baseline.typical_wake_window_min,
        last_updated=now,
        confidence=COLD_START_CONFIDENCE,
    )


# Used by: sleep_coordinator.recompute
def update_learner(
    sessions: Sequence[SleepSession],
    birth_date: Union[date, datetime],
    prior_state: Optional[LearnerState],
    clock: Optional[Clock] = None,
) -> LearnerState:
    """Rebuild the model from the full history, seeded with prior_state as EWMA memory."""
    clock = clock or get_clock()
    now = clock.now()
    tz = clock.tz

    sorted_sessions = valid_sessions_sorted(sessions)
    if not sorted_sessions:
        logger.info("No valid sessions, returning cold-start learner state")
        return cold_start_state(birth_date, clock)

    baseline = baseline_for_birth_date(birth_date, local_date(now, tz))

    nap_lengths: List[float] = []
    wake_windows: List[float] = []

    for i, session in enumerate(sorted_sessions):
        duration = session.duration_minutes
        if not is_night_sleep(session, tz) and duration >= MIN_NAP_SAMPLE_MINUTES:
            nap_lengths.append(duration)

        if i > 0:
            gap = minutes_between(sorted_sessions[i - 1].end, session.start)
            if 0 < gap < MAX_WAKE_WINDOW_SAMPLE_MINUTES:
                wake_windows.append(gap)

    if prior_state is not None:
        ewma_nap = prior_state.ewma_nap_length_min
        ewma_wake = prior_state.ewma_wake_window_min
    else:
        ewma_nap = baseline.typical_nap_length_min
        ewma_wake = baseline.typical_wake_window_min

    if nap_lengths:
        ewma_nap = calculate_ewma(ewma_nap, sum(nap_lengths) / len(nap_lengths))
    if wake_windows:
        ewma_wake = calculate_ewma(ewma_wake, sum(wake_windows) / len(wake_windows))

    # A carried-forward prior may come from a younger age band
    ewma_nap = _clamp(
        ewma_nap,
        baseline.min_wake_window_min * NAP_CLAMP_LOW_FACTOR,
        baseline.max_wake_window_min * NAP_CLAMP_HIGH_FACTOR,
    )
    ewma_wake = _clamp(ewma_wake, baseline.min_wake_window_min, baseline.max_wake_window_min)

    avg_variance = (
        _population_variance(nap_lengths, ewma_nap)
        + _population_variance(wake_windows, ewma_wake)
    ) / 2

    last_updated = prior_state.last_updated if prior_state is not None else now
    confidence = calculate_confidence(len(sorted_sessions), avg_variance, last_updated, now)
    confidence = max(COLD_START_CONFIDENCE, _round_half_up(confidence, 2))

    state = LearnerState(
        version=LEARNER_SCHEMA_VERSION,
        ewma_nap_length_min=_round_half_up(ewma_nap),
        ewma_wake_window_min=_round_half_up(ewma_wake),
        last_updated=now,
        confidence=confidence,
    )

    logger.info(
        f"Learner updated from {len(sorted_sessions)} sessions "
        f"({len(nap_lengths)} nap samples, {len(wake_windows)} wake samples): "
        f"nap={state.ewma_nap_length_min}m wake={state.ewma_wake_window_min}m "
        f"confidence={state.confidence}"
    )
    return state
