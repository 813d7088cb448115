"""Age-banded wake-window and nap-length baselines."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Union

from ..core.constants import AGE_BASELINES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgeBaseline:
    min_months: int
    max_months: int
    min_wake_window_min: int
    max_wake_window_min: int
    typical_wake_window_min: int
    typical_nap_length_min: int


BASELINES: List[AgeBaseline] = [
    AgeBaseline(
        min_months=min_months,
        max_months=max_months,
        min_wake_window_min=min_ww,
        max_wake_window_min=max_ww,
        typical_wake_window_min=typical_ww,
        typical_nap_length_min=typical_nap,
    )
    for (min_months, max_months), (min_ww, max_ww, typical_ww, typical_nap) in AGE_BASELINES.items()
]


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# Used by: baseline_for_birth_date
def age_in_months(birth_date: Union[date, datetime], reference_date: Union[date, datetime]) -> int:
    """Whole calendar months; a month only counts once its day-of-month has passed."""
    birth = _as_date(birth_date)
    ref = _as_date(reference_date)

    total_months = (ref.year - birth.year) * 12 + (ref.month - birth.month)
    if ref.day < birth.day:
        total_months -= 1

    return max(0, total_months)


def get_baseline(age_months: int) -> AgeBaseline:
    for baseline in BASELINES:
        if baseline.min_months <= age_months <= baseline.max_months:
            return baseline
    return BASELINES[-1]


# Used by: learner, schedule_generator, coach_analyzer
def baseline_for_birth_date(
    birth_date: Union[date, datetime],
    reference_date: Union[date, datetime],
) -> AgeBaseline:
    age_months = age_in_months(birth_date, reference_date)
    baseline = get_baseline(age_months)
    logger.debug(
        f"Age {age_months} months -> baseline band "
        f"{baseline.min_months}-{baseline.max_months}"
    )
    return baseline
