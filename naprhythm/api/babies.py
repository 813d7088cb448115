"""
Baby API: profile, sleep timer, wake-window adjustment and reset.

Routes (/babies):
  GET    /{baby_id}/profile       - Get the baby profile
  PUT    /{baby_id}/profile       - Create or update the profile (name, birth date)
  POST   /{baby_id}/timer/start   - Start the sleep timer
  POST   /{baby_id}/timer/stop    - Stop the timer and record the session
  DELETE /{baby_id}/timer         - Discard the running timer
  PUT    /{baby_id}/adjustment    - Set the what-if wake window adjustment (minutes)
  POST   /{baby_id}/reset         - Tombstone all sessions and forget the learned model
"""

import logging
from fastapi import APIRouter, Depends

from .deps import get_coordinator, http_errors
from .models import (
    AdjustmentRequest, LearnerResponse, OverviewResponse, ProfileResponse, ProfileUpdate,
    TimerStopResponse, block_response, session_response, tip_response,
)
from ..services.sleep_coordinator import SleepCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/babies", tags=["babies"])


# Used by: Profile page, app bootstrap
@router.get("/{baby_id}/profile", response_model=ProfileResponse)
async def get_profile(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        profile = await coordinator.get_profile(baby_id)
    return ProfileResponse.model_validate(profile)


# Used by: Onboarding, Profile page
@router.put("/{baby_id}/profile", response_model=ProfileResponse)
async def put_profile(
    baby_id: str,
    request: ProfileUpdate,
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        profile, _ = await coordinator.set_profile(baby_id, request.name, request.birth_date)
    return ProfileResponse.model_validate(profile)


# Used by: Home screen timer button
@router.post("/{baby_id}/timer/start", response_model=ProfileResponse)
async def start_timer(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        profile = await coordinator.start_timer(baby_id)
    return ProfileResponse.model_validate(profile)


@router.post("/{baby_id}/timer/stop", response_model=TimerStopResponse)
async def stop_timer(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        sleep_session, result = await coordinator.stop_timer(baby_id)
    return TimerStopResponse(
        session=session_response(sleep_session),
        learner=LearnerResponse.model_validate(result.learner_state),
    )


@router.delete("/{baby_id}/timer", response_model=ProfileResponse)
async def cancel_timer(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        profile = await coordinator.cancel_timer(baby_id)
    return ProfileResponse.model_validate(profile)


# Used by: Schedule screen what-if slider
@router.put("/{baby_id}/adjustment", response_model=OverviewResponse)
async def set_adjustment(
    baby_id: str,
    request: AdjustmentRequest,
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        result = await coordinator.set_wake_window_adjustment(baby_id, request.minutes)
        profile = await coordinator.get_profile(baby_id)
    return OverviewResponse(
        profile=ProfileResponse.model_validate(profile),
        learner=LearnerResponse.model_validate(result.learner_state),
        schedule=[block_response(b) for b in result.schedule],
        tips=[tip_response(t) for t in result.tips],
        computed_at=result.computed_at,
    )


# Used by: Settings page "start over"
@router.post("/{baby_id}/reset", response_model=OverviewResponse)
async def reset(baby_id: str, coordinator: SleepCoordinator = Depends(get_coordinator)):
    with http_errors():
        result = await coordinator.reset(baby_id)
        profile = await coordinator.get_profile(baby_id)
    logger.info(f"Baby {baby_id} reset via API")
    return OverviewResponse(
        profile=ProfileResponse.model_validate(profile),
        learner=LearnerResponse.model_validate(result.learner_state),
        schedule=[block_response(b) for b in result.schedule],
        tips=[tip_response(t) for t in result.tips],
        computed_at=result.computed_at,
    )
