"""
Sleep sessions API: manual logging, edits and soft deletes.

Routes (/babies):
  GET    /{baby_id}/sessions                - List sessions (tombstones on request)
  POST   /{baby_id}/sessions                - Log a finished session
  PUT    /{baby_id}/sessions/{session_id}   - Edit a session
  DELETE /{baby_id}/sessions/{session_id}   - Soft-delete a session
"""

import logging
from fastapi import APIRouter, Depends, Query, status

from .deps import get_coordinator, http_errors
from .models import (
    SessionCreate, SessionListResponse, SessionResponse, SessionUpdate, session_response,
)
from ..services.sleep_coordinator import SleepCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/babies", tags=["sessions"])


# Used by: History page
@router.get("/{baby_id}/sessions", response_model=SessionListResponse)
async def list_sessions(
    baby_id: str,
    include_deleted: bool = Query(False, description="Include soft-deleted sessions"),
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        sessions = await coordinator.list_sessions(baby_id, include_deleted=include_deleted)
    return SessionListResponse(
        baby_id=baby_id,
        sessions=[session_response(s) for s in sessions],
    )


# Used by: "Log sleep" form
@router.post("/{baby_id}/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    baby_id: str,
    request: SessionCreate,
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        sleep_session, _ = await coordinator.add_session(
            baby_id,
            start=request.start,
            end=request.end,
            quality=request.quality,
            notes=request.notes,
        )
    return session_response(sleep_session)


@router.put("/{baby_id}/sessions/{session_id}", response_model=SessionResponse)
async def update_session(
    baby_id: str,
    session_id: str,
    request: SessionUpdate,
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        sleep_session, _ = await coordinator.update_session(
            baby_id, session_id, request.model_dump(exclude_unset=True)
        )
    return session_response(sleep_session)


@router.delete("/{baby_id}/sessions/{session_id}", response_model=SessionResponse)
async def delete_session(
    baby_id: str,
    session_id: str,
    coordinator: SleepCoordinator = Depends(get_coordinator),
):
    with http_errors():
        tombstone, _ = await coordinator.delete_session(baby_id, session_id)
    return session_response(tombstone)
