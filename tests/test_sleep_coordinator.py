"""Tests for the session lifecycle and recompute orchestration."""

import asyncio
from datetime import date

import pytest

from conftest import InMemorySleepStore, make_session, utc
from naprhythm.core.errors import (
    ProfileNotFoundError, RecomputeError, SessionNotFoundError, StorageError, TimerError,
)
from naprhythm.core.ids import SequentialIds
from naprhythm.db.models import BabyProfile, BlockKind, NotificationStatus, SessionSource
from naprhythm.services.learner import cold_start_state
from naprhythm.services.sleep_coordinator import RecomputeSnapshot, SleepCoordinator, recompute

BABY = "baby-1"
BIRTH_DATE = date(2024, 1, 1)


class FlakyLogStore(InMemorySleepStore):
    """Fails every notification log write."""

    async def save_notification_log(self, baby_id, entries):
        raise StorageError("notification_log unavailable")


@pytest.fixture
def coordinator(store, clock, ids):
    return SleepCoordinator(store, clock=clock, new_id=ids)


async def _with_profile(coordinator):
    await coordinator.set_profile(BABY, "Ada", BIRTH_DATE)
    return coordinator


class TestProfile:
    @pytest.mark.asyncio
    async def test_unknown_baby(self, coordinator):
        with pytest.raises(ProfileNotFoundError):
            await coordinator.refresh("nobody")

    @pytest.mark.asyncio
    async def test_set_profile_runs_cold_start_recompute(self, coordinator, store, clock):
        profile, result = await coordinator.set_profile(BABY, "Ada", BIRTH_DATE)

        assert profile.name == "Ada"
        assert profile.updated_at == clock.now()
        assert result.learner_state == cold_start_state(BIRTH_DATE, clock)
        assert store.learner_states[BABY] == result.learner_state
        assert result.schedule
        assert len(store.notification_logs[BABY]) == len(result.notifications.scheduled)

    @pytest.mark.asyncio
    async def test_update_profile_keeps_timer(self, coordinator):
        await _with_profile(coordinator)
        await coordinator.start_timer(BABY)
        profile, _ = await coordinator.set_profile(BABY, "Ada Mae", BIRTH_DATE)

        assert profile.name == "Ada Mae"
        assert profile.active_timer_start is not None


class TestSessions:
    @pytest.mark.asyncio
    async def test_add_session_updates_learner(self, coordinator, store):
        await _with_profile(coordinator)
        session, result = await coordinator.add_session(
            BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 30), quality=4,
        )

        assert session.source == SessionSource.MANUAL
        assert store.sessions[BABY][session.id].quality == 4
        # one 90-minute nap: EWMA stays at the baseline's 90
        assert result.learner_state.ewma_nap_length_min == 90
        assert store.learner_states[BABY] == result.learner_state

    @pytest.mark.asyncio
    async def test_update_session_refreshes_timestamp(self, coordinator, clock):
        await _with_profile(coordinator)
        session, _ = await coordinator.add_session(BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 0))
        clock.advance(minutes=5)

        updated, _ = await coordinator.update_session(BABY, session.id, {"end": utc(2024, 7, 1, 10, 30), "notes": "fussy"})

        assert updated.id == session.id
        assert updated.end == utc(2024, 7, 1, 10, 30)
        assert updated.notes == "fussy"
        assert updated.updated_at == clock.now()

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(self, coordinator):
        await _with_profile(coordinator)
        session, _ = await coordinator.add_session(BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 0))
        updated, _ = await coordinator.update_session(BABY, session.id, {"deleted": True, "id": "other"})

        assert updated.id == session.id
        assert not updated.deleted

    @pytest.mark.asyncio
    async def test_update_with_null_bounds_keeps_them(self, coordinator):
        await _with_profile(coordinator)
        session, _ = await coordinator.add_session(BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 0))
        updated, _ = await coordinator.update_session(BABY, session.id, {"start": None, "end": None, "quality": 3})

        assert updated.start == session.start
        assert updated.end == session.end
        assert updated.quality == 3

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, coordinator):
        await _with_profile(coordinator)
        with pytest.raises(SessionNotFoundError):
            await coordinator.update_session(BABY, "missing", {"notes": "x"})

    @pytest.mark.asyncio
    async def test_delete_is_soft_and_restores_cold_start(self, coordinator, store, clock):
        await _with_profile(coordinator)
        session, _ = await coordinator.add_session(BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 0))

        tombstone, result = await coordinator.delete_session(BABY, session.id)

        assert tombstone.deleted
        assert store.sessions[BABY][session.id].deleted
        assert await coordinator.list_sessions(BABY) == []
        assert len(await coordinator.list_sessions(BABY, include_deleted=True)) == 1
        assert result.learner_state.ewma_wake_window_min == cold_start_state(BIRTH_DATE, clock).ewma_wake_window_min

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_serialized(self, coordinator, store):
        await _with_profile(coordinator)
        await asyncio.gather(
            coordinator.add_session(BABY, utc(2024, 7, 1, 8, 0), utc(2024, 7, 1, 9, 0)),
            coordinator.add_session(BABY, utc(2024, 7, 1, 10, 0), utc(2024, 7, 1, 11, 0)),
        )
        assert len(store.sessions[BABY]) == 2


class TestTimer:
    @pytest.mark.asyncio
    async def test_start_and_stop_records_timer_session(self, coordinator, store, clock):
        await _with_profile(coordinator)
        started = await coordinator.start_timer(BABY)
        assert started.active_timer_start == clock.now()

        clock.advance(minutes=45)
        session, _ = await coordinator.stop_timer(BABY)

        assert session.source == SessionSource.TIMER
        assert session.start == utc(2024, 7, 1, 12, 0)
        assert session.end == utc(2024, 7, 1, 12, 45)
        assert store.profiles[BABY].active_timer_start is None

    @pytest.mark.asyncio
    async def test_double_start_rejected(self, coordinator):
        await _with_profile(coordinator)
        await coordinator.start_timer(BABY)
        with pytest.raises(TimerError):
            await coordinator.start_timer(BABY)

    @pytest.mark.asyncio
    async def test_stop_without_timer_rejected(self, coordinator):
        await _with_profile(coordinator)
        with pytest.raises(TimerError):
            await coordinator.stop_timer(BABY)

    @pytest.mark.asyncio
    async def test_cancel_discards_timer(self, coordinator, store):
        await _with_profile(coordinator)
        await coordinator.start_timer(BABY)
        profile = await coordinator.cancel_timer(BABY)

        assert profile.active_timer_start is None
        assert BABY not in store.sessions


class TestAdjustmentAndReset:
    @pytest.mark.asyncio
    async def test_adjustment_shifts_schedule(self, coordinator):
        await _with_profile(coordinator)
        baseline = await coordinator.refresh(BABY)
        adjusted = await coordinator.set_wake_window_adjustment(BABY, 30)

        first_nap = next(b for b in baseline.schedule if b.kind == BlockKind.NAP)
        first_adjusted = next(b for b in adjusted.schedule if b.kind == BlockKind.NAP)
        assert (first_adjusted.start - first_nap.start).total_seconds() == 30 * 60
        # the stored model is not touched by the what-if
        assert adjusted.learner_state.ewma_wake_window_min == baseline.learner_state.ewma_wake_window_min

    @pytest.mark.asyncio
    async def test_preview_schedule_defaults_to_saved_adjustment(self, coordinator):
        await _with_profile(coordinator)
        result = await coordinator.set_wake_window_adjustment(BABY, 30)
        preview = await coordinator.preview_schedule(BABY)

        assert [(b.kind, b.start) for b in preview] == [(b.kind, b.start) for b in result.schedule]

    @pytest.mark.asyncio
    async def test_reset(self, coordinator, store, clock):
        await _with_profile(coordinator)
        await coordinator.add_session(BABY, utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 0))
        await coordinator.set_wake_window_adjustment(BABY, 15)

        result = await coordinator.reset(BABY)

        assert all(s.deleted for s in store.sessions[BABY].values())
        assert store.profiles[BABY].wake_window_adjustment_min == 0
        assert result.learner_state == cold_start_state(BIRTH_DATE, clock)
        assert all(e.status == NotificationStatus.SCHEDULED for e in store.notification_logs[BABY])


class TestRecompute:
    @pytest.mark.asyncio
    async def test_failed_log_write_keeps_previous_model(self, clock):
        store = FlakyLogStore()
        coordinator = SleepCoordinator(store, clock=clock, new_id=SequentialIds("id"))

        with pytest.raises(RecomputeError):
            await coordinator.set_profile(BABY, "Ada", BIRTH_DATE)
        assert BABY not in store.learner_states
        assert BABY in store.profiles

    @pytest.mark.asyncio
    async def test_repeated_refresh_keeps_notification_log_stable(self, coordinator, store):
        await _with_profile(coordinator)
        await coordinator.add_session(BABY, utc(2024, 7, 1, 8, 0), utc(2024, 7, 1, 8, 30))
        await coordinator.add_session(BABY, utc(2024, 7, 1, 11, 0), utc(2024, 7, 1, 11, 30))
        first = list(store.notification_logs[BABY])

        await coordinator.refresh(BABY)
        await coordinator.refresh(BABY)

        assert store.notification_logs[BABY] == first

    @pytest.mark.asyncio
    async def test_reads_do_not_retrain_the_model(self, coordinator, store, clock):
        await _with_profile(coordinator)
        await coordinator.add_session(BABY, utc(2024, 7, 1, 8, 0), utc(2024, 7, 1, 8, 30))
        _, added = await coordinator.add_session(BABY, utc(2024, 7, 1, 11, 0), utc(2024, 7, 1, 11, 30))
        stored = store.learner_states[BABY]
        clock.advance(minutes=10)

        for _ in range(5):
            result = await coordinator.refresh(BABY)
            assert result.learner_state == stored
        await coordinator.preview_schedule(BABY)

        assert store.learner_states[BABY] == stored
        assert store.learner_states[BABY].last_updated == added.computed_at

    def test_recompute_is_deterministic(self, clock):
        snapshot = RecomputeSnapshot(
            profile=BabyProfile(id=BABY, name="Ada", birth_date=BIRTH_DATE),
            sessions=[
                make_session("s1", utc(2024, 7, 1, 9, 0), utc(2024, 7, 1, 10, 30)),
                make_session("s2", utc(2024, 7, 1, 13, 0), utc(2024, 7, 1, 14, 0)),
            ],
        )
        first = recompute(snapshot, clock=clock, new_id=SequentialIds("x"))
        second = recompute(snapshot, clock=clock, new_id=SequentialIds("x"))

        assert first.learner_state == second.learner_state
        assert first.schedule == second.schedule
        assert first.tips == second.tips
        assert first.computed_at == clock.now()
