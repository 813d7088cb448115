"""Shared router dependencies: the coordinator singleton and domain-error -> HTTP mapping."""

import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import HTTPException, status

from naprhythm.core.errors import (
    NapRhythmError, ProfileNotFoundError, RecomputeError, SessionNotFoundError,
    StorageError, TimerError,
)
from naprhythm.services.sleep_coordinator import SleepCoordinator
from naprhythm.services.sleep_data import SleepDataManager

logger = logging.getLogger(__name__)

_coordinator: Optional[SleepCoordinator] = None


# Used by: every router via Depends; tests swap it through app.dependency_overrides
def get_coordinator() -> SleepCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = SleepCoordinator(SleepDataManager())
    return _coordinator


def to_http_error(e: NapRhythmError) -> HTTPException:
    if isinstance(e, (ProfileNotFoundError, SessionNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, TimerError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, (RecomputeError, StorageError)):
        logger.error(f"Service unavailable: {e}")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sleep data is temporarily unavailable",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@contextmanager
def http_errors():
    """Use as: with http_errors(): await coordinator.something(...)"""
    try:
        yield
    except NapRhythmError as e:
        raise to_http_error(e) from e
