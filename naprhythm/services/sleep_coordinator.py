"""Session lifecycle and the learner -> schedule/tips -> notifications recompute."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.clock import Clock, frozen, get_clock
from ..core.errors import (
    ProfileNotFoundError, RecomputeError, SessionNotFoundError, StorageError, TimerError,
)
from ..core.ids import IdFactory, uuid4_id
from ..core.constants import DEFAULT_DAYS_AHEAD
from ..core.settings import settings
from ..db.models import BabyProfile, LearnerState, SessionSource, SleepSession
from .coach_analyzer import CoachTip, analyze_and_generate_tips
from .learner import update_learner
from .notification_planner import NotificationPlan, NotificationState, plan_block_notifications
from .schedule_generator import (
    ScheduleBlock, adjusted_learner, generate_schedule, generate_schedule_with_adjustment,
)
from .sleep_data import SleepStore

logger = logging.getLogger(__name__)


@dataclass
class RecomputeSnapshot:
    profile: BabyProfile
    sessions: List[SleepSession]
    learner_state: Optional[LearnerState] = None
    notifications: NotificationState = field(default_factory=NotificationState)


@dataclass
class RecomputeResult:
    learner_state: LearnerState
    schedule: List[ScheduleBlock]
    tips: List[CoachTip]
    notifications: NotificationPlan
    computed_at: datetime


# Used by: SleepCoordinator mutations (learn=True) and SleepCoordinator.refresh (learn=False)
def recompute(
    snapshot: RecomputeSnapshot,
    clock: Optional[Clock] = None,
    new_id: Optional[IdFactory] = None,
    max_notification_blocks: int = settings.NOTIFICATION_MAX_BLOCKS,
    notification_horizon_days: int = settings.NOTIFICATION_HORIZON_DAYS,
    learn: bool = True,
) -> RecomputeResult:
    """Pure: the same snapshot and the same "now" always give the same result (ids aside).

    With learn=False a stored learner state is used as-is, so reads never retrain the model.
    """
    clock = frozen(clock or get_clock())
    new_id = new_id or uuid4_id
    now = clock.now()
    profile = snapshot.profile

    if learn or snapshot.learner_state is None:
        learner_state = update_learner(snapshot.sessions, profile.birth_date, snapshot.learner_state, clock=clock)
    else:
        learner_state = snapshot.learner_state

    if profile.wake_window_adjustment_min:
        schedule = generate_schedule_with_adjustment(
            snapshot.sessions,
            learner_state,
            profile.birth_date,
            profile.wake_window_adjustment_min,
            start_time=now,
            clock=clock,
            new_id=new_id,
        )
    else:
        schedule = generate_schedule(
            snapshot.sessions, learner_state, profile.birth_date,
            start_time=now, clock=clock, new_id=new_id,
        )

    tips = analyze_and_generate_tips(
        snapshot.sessions, learner_state, profile.birth_date, clock=clock, new_id=new_id,
    )

    plan = plan_block_notifications(
        schedule,
        snapshot.notifications,
        now,
        clock.tz,
        new_id=new_id,
        max_blocks=max_notification_blocks,
        horizon_days=notification_horizon_days,
    )

    return RecomputeResult(
        learner_state=learner_state,
        schedule=schedule,
        tips=tips,
        notifications=plan,
        computed_at=now,
    )


# Used by: api routers (via api/deps.py)
class SleepCoordinator:
    """Owns single-writer discipline per baby: every mutation and recompute holds the baby's lock."""

    def __init__(
        self,
        store: SleepStore,
        clock: Optional[Clock] = None,
        new_id: Optional[IdFactory] = None,
    ):
        self.store = store
        self.clock = clock or get_clock()
        self.new_id = new_id or uuid4_id
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, baby_id: str) -> asyncio.Lock:
        if baby_id not in self._locks:
            self._locks[baby_id] = asyncio.Lock()
        return self._locks[baby_id]

    async def _require_profile(self, baby_id: str) -> BabyProfile:
        profile = await self.store.get_profile(baby_id)
        if profile is None:
            raise ProfileNotFoundError(baby_id)
        return profile

    async def _require_session(self, baby_id: str, session_id: str) -> SleepSession:
        sleep_session = await self.store.get_session(baby_id, session_id)
        if sleep_session is None:
            raise SessionNotFoundError(session_id)
        return sleep_session

    async def _load_snapshot(self, baby_id: str, profile: BabyProfile) -> RecomputeSnapshot:
        return RecomputeSnapshot(
            profile=profile,
            sessions=await self.store.list_sessions(baby_id),
            learner_state=await self.store.get_learner_state(baby_id),
            notifications=NotificationState(
                entries=await self.store.list_notification_log(baby_id)
            ),
        )

    async def _recompute_locked(self, baby_id: str) -> RecomputeResult:
        profile = await self._require_profile(baby_id)

        try:
            snapshot = await self._load_snapshot(baby_id, profile)
            result = recompute(snapshot, clock=self.clock, new_id=self.new_id)

            # Learner state goes last: a failed step leaves the stored model untouched
            await self.store.save_notification_log(baby_id, result.notifications.state.entries)
            await self.store.save_learner_state(baby_id, result.learner_state)
        except StorageError as e:
            logger.error(f"Recompute failed for baby {baby_id}: {e}")
            raise RecomputeError(f"Recompute failed for baby {baby_id}") from e
        except Exception as e:
            logger.error(f"Unexpected error recomputing baby {baby_id}: {e}", exc_info=True)
            raise RecomputeError(f"Recompute failed for baby {baby_id}") from e

        logger.info(
            f"Recomputed baby {baby_id}: {len(snapshot.sessions)} sessions, "
            f"{len(result.schedule)} blocks, {len(result.tips)} tips, "
            f"confidence {result.learner_state.confidence}"
        )
        return result

    async def _read_snapshot(self, baby_id: str) -> RecomputeSnapshot:
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            try:
                return await self._load_snapshot(baby_id, profile)
            except StorageError as e:
                logger.error(f"Loading snapshot failed for baby {baby_id}: {e}")
                raise RecomputeError(f"Recompute failed for baby {baby_id}") from e

    # Used by: api/insights.py (overview, tips, learner)
    async def refresh(self, baby_id: str) -> RecomputeResult:
        """Schedule and tips off the stored model; nothing is learned or written.

        Only mutations retrain the learner, so reading never moves the EWMA.
        """
        snapshot = await self._read_snapshot(baby_id)
        return recompute(snapshot, clock=self.clock, new_id=self.new_id, learn=False)

    async def get_profile(self, baby_id: str) -> BabyProfile:
        return await self._require_profile(baby_id)

    async def list_sessions(self, baby_id: str, include_deleted: bool = False) -> List[SleepSession]:
        await self._require_profile(baby_id)
        sessions = await self.store.list_sessions(baby_id)
        if include_deleted:
            return sessions
        return [s for s in sessions if not s.deleted]

    async def list_notifications(self, baby_id: str) -> List:
        await self._require_profile(baby_id)
        return await self.store.list_notification_log(baby_id)

    # Used by: api/babies.py (PUT profile)
    async def set_profile(
        self,
        baby_id: str,
        name: str,
        birth_date: date,
    ) -> Tuple[BabyProfile, RecomputeResult]:
        async with self._lock(baby_id):
            existing = await self.store.get_profile(baby_id)
            if existing is not None:
                profile = existing.model_copy(update={
                    "name": name,
                    "birth_date": birth_date,
                    "updated_at": self.clock.now(),
                })
            else:
                profile = BabyProfile(
                    id=baby_id,
                    name=name,
                    birth_date=birth_date,
                    updated_at=self.clock.now(),
                )
            await self.store.upsert_profile(profile)
            logger.info(f"Profile {'updated' if existing else 'created'} for baby {baby_id}")
            return profile, await self._recompute_locked(baby_id)

    # Used by: api/sessions.py (POST), stop_timer
    async def add_session(
        self,
        baby_id: str,
        start: datetime,
        end: datetime,
        source: SessionSource = SessionSource.MANUAL,
        quality: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Tuple[SleepSession, RecomputeResult]:
        async with self._lock(baby_id):
            return await self._add_session_locked(baby_id, start, end, source, quality, notes)

    async def _add_session_locked(
        self,
        baby_id: str,
        start: datetime,
        end: datetime,
        source: SessionSource,
        quality: Optional[int],
        notes: Optional[str],
    ) -> Tuple[SleepSession, RecomputeResult]:
        await self._require_profile(baby_id)
        sleep_session = SleepSession(
            id=self.new_id(),
            start=start,
            end=end,
            quality=quality,
            notes=notes,
            source=source,
            updated_at=self.clock.now(),
        )
        await self.store.upsert_session(baby_id, sleep_session)
        logger.info(f"Added {source.value} session {sleep_session.id} for baby {baby_id}")
        return sleep_session, await self._recompute_locked(baby_id)

    # Used by: api/sessions.py (PUT)
    async def update_session(
        self,
        baby_id: str,
        session_id: str,
        changes: Dict[str, Any],
    ) -> Tuple[SleepSession, RecomputeResult]:
        """Edit in place; updated_at always refreshes."""
        async with self._lock(baby_id):
            await self._require_profile(baby_id)
            current = await self._require_session(baby_id, session_id)
            allowed = {k: v for k, v in changes.items() if k in ("quality", "notes")}
            allowed.update({k: changes[k] for k in ("start", "end") if changes.get(k) is not None})
            updated = SleepSession(**{
                **current.model_dump(),
                **allowed,
                "updated_at": self.clock.now(),
            })
            await self.store.upsert_session(baby_id, updated)
            logger.info(f"Updated session {session_id} for baby {baby_id}: {sorted(allowed)}")
            return updated, await self._recompute_locked(baby_id)

    # Used by: api/sessions.py (DELETE)
    async def delete_session(self, baby_id: str, session_id: str) -> Tuple[SleepSession, RecomputeResult]:
        """Soft delete: the tombstone is kept."""
        async with self._lock(baby_id):
            await self._require_profile(baby_id)
            current = await self._require_session(baby_id, session_id)
            tombstone = current.model_copy(update={"deleted": True, "updated_at": self.clock.now()})
            await self.store.upsert_session(baby_id, tombstone)
            logger.info(f"Soft-deleted session {session_id} for baby {baby_id}")
            return tombstone, await self._recompute_locked(baby_id)

    # Used by: api/babies.py (timer routes)
    async def start_timer(self, baby_id: str) -> BabyProfile:
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            if profile.active_timer_start is not None:
                raise TimerError(f"Timer already running since {profile.active_timer_start.isoformat()}")
            profile = profile.model_copy(update={"active_timer_start": self.clock.now()})
            await self.store.upsert_profile(profile)
            logger.info(f"Timer started for baby {baby_id}")
            return profile

    async def stop_timer(self, baby_id: str) -> Tuple[SleepSession, RecomputeResult]:
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            if profile.active_timer_start is None:
                raise TimerError("No timer is running")
            started = profile.active_timer_start
            await self.store.upsert_profile(profile.model_copy(update={"active_timer_start": None}))
            return await self._add_session_locked(
                baby_id, started, self.clock.now(), SessionSource.TIMER, None, None,
            )

    async def cancel_timer(self, baby_id: str) -> BabyProfile:
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            profile = profile.model_copy(update={"active_timer_start": None})
            await self.store.upsert_profile(profile)
            logger.info(f"Timer canceled for baby {baby_id}")
            return profile

    # Used by: api/babies.py (what-if slider)
    async def set_wake_window_adjustment(self, baby_id: str, minutes: int) -> RecomputeResult:
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            await self.store.upsert_profile(
                profile.model_copy(update={"wake_window_adjustment_min": minutes})
            )
            logger.info(f"Wake window adjustment for baby {baby_id} set to {minutes:+d}m")
            return await self._recompute_locked(baby_id)

    # Used by: api/babies.py (POST reset)
    async def reset(self, baby_id: str) -> RecomputeResult:
        """Tombstone every session and forget the model; the profile itself stays."""
        async with self._lock(baby_id):
            profile = await self._require_profile(baby_id)
            now = self.clock.now()
            deleted = await self.store.soft_delete_all_sessions(baby_id, now)
            await self.store.clear_learner_state(baby_id)
            await self.store.clear_notification_log(baby_id)
            await self.store.upsert_profile(profile.model_copy(update={
                "active_timer_start": None,
                "wake_window_adjustment_min": 0,
                "updated_at": now,
            }))
            logger.info(f"Reset baby {baby_id}: {deleted} sessions tombstoned")
            return await self._recompute_locked(baby_id)

    # Used by: api/insights.py (GET schedule with adjust_minutes / days_ahead)
    async def preview_schedule(
        self,
        baby_id: str,
        delta_minutes: Optional[int] = None,
        days_ahead: int = DEFAULT_DAYS_AHEAD,
    ) -> List[ScheduleBlock]:
        """What-if schedule off the stored model; nothing is stored."""
        snapshot = await self._read_snapshot(baby_id)
        profile = snapshot.profile
        clock = frozen(self.clock)

        learner_state = snapshot.learner_state
        if learner_state is None:
            learner_state = update_learner(snapshot.sessions, profile.birth_date, None, clock=clock)
        if delta_minutes is None:
            delta_minutes = profile.wake_window_adjustment_min
        if delta_minutes:
            learner_state = adjusted_learner(learner_state, delta_minutes)

        return generate_schedule(
            snapshot.sessions, learner_state, profile.birth_date,
            start_time=clock.now(), days_ahead=days_ahead, clock=clock, new_id=self.new_id,
        )
