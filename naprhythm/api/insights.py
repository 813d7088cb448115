"""
Insights API: learned model, forward schedule, coach tips and the notification log.

Routes (/babies):
  GET    /{baby_id}/overview        - Profile + learner + schedule + tips in one call
  GET    /{baby_id}/learner         - Current learner state
  GET    /{baby_id}/schedule        - Forward schedule (optional what-if adjustment)
  GET    /{baby_id}/tips            - Coach tips
  GET    /{baby_id}/notifications   - Planned notification log
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query

from .deps import get_coordinator, http_errors
from .models import (
    LearnerResponse, NotificationsResponse, OverviewResponse, ProfileResponse,
    ScheduleResponse, TipsResponse, block_response, notification_response, tip_response,
)
from ..core.constants import DEFAULT_DAYS_AHEAD
from ..services.sleep_coordinator import SleepCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/babies", tags=["insights"])


# Used by: Home screen
@router.get("/{baby_id}/overview", response_model=OverviewResponse)
async def get_overview(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        result = await coordinator.refresh(baby_id)
        profile = await coordinator.get_profile(baby_id)
    return OverviewResponse(
        profile=ProfileResponse.model_validate(profile),
        learner=LearnerResponse.model_validate(result.learner_state),
        schedule=[block_response(b) for b in result.schedule],
        tips=[tip_response(t) for t in result.tips],
        computed_at=result.computed_at,
    )


@router.get("/{baby_id}/learner", response_model=LearnerResponse)
async def get_learner(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        result = await coordinator.refresh(baby_id)
    return LearnerResponse.model_validate(result.learner_state)


# Used by: Schedule screen (adjust_minutes drives the what-if preview)
@router.get("/{baby_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    baby_id: str,
    adjust_minutes: Optional[int] = Query(None, description="Wake window delta; defaults to the saved adjustment"),
    days_ahead: int = Query(DEFAULT_DAYS_AHEAD, ge=1, le=7),
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        blocks = await coordinator.preview_schedule(
            baby_id, delta_minutes=adjust_minutes, days_ahead=days_ahead
        )
    return ScheduleResponse(
        baby_id=baby_id,
        generated_at=coordinator.clock.now(),
        blocks=[block_response(b) for b in blocks],
    )


@router.get("/{baby_id}/tips", response_model=TipsResponse)
async def get_tips(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        result = await coordinator.refresh(baby_id)
    return TipsResponse(baby_id=baby_id, tips=[tip_response(t) for t in result.tips])


@router.get("/{baby_id}/notifications", response_model=NotificationsResponse)
async def get_notifications(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        entries = await coordinator.list_notifications(baby_id)
    return NotificationsResponse(
        baby_id=baby_id,
        notifications=[notification_response(e) for e in entries],
    )
