"""Sleep-related database operations: profiles, sessions, learner state, notification log."""

import logging
from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy import text

from naprhythm.core.constants import LEARNER_SCHEMA_VERSION
from naprhythm.core.database import get_database
from naprhythm.core.errors import StorageError
from naprhythm.db.models import BabyProfile, LearnerState, NotificationLogEntry, SleepSession

logger = logging.getLogger(__name__)


# Used by: sleep_coordinator.py (type hint), tests (in-memory implementation)
class SleepStore(Protocol):
    async def get_profile(self, baby_id: str) -> Optional[BabyProfile]: ...

    async def upsert_profile(self, profile: BabyProfile) -> BabyProfile: ...

    async def list_sessions(self, baby_id: str) -> List[SleepSession]: ...

    async def get_session(self, baby_id: str, session_id: str) -> Optional[SleepSession]: ...

    async def upsert_session(self, baby_id: str, session: SleepSession) -> SleepSession: ...

    async def soft_delete_all_sessions(self, baby_id: str, deleted_at: datetime) -> int: ...

    async def get_learner_state(self, baby_id: str) -> Optional[LearnerState]: ...

    async def save_learner_state(self, baby_id: str, state: LearnerState) -> None: ...

    async def clear_learner_state(self, baby_id: str) -> None: ...

    async def list_notification_log(self, baby_id: str) -> List[NotificationLogEntry]: ...

    async def save_notification_log(self, baby_id: str, entries: List[NotificationLogEntry]) -> None: ...

    async def clear_notification_log(self, baby_id: str) -> None: ...


def _session_from_row(row) -> SleepSession:
    return SleepSession(
        id=row["id"],
        start=row["start_at"],
        end=row["end_at"],
        quality=row["quality"],
        notes=row["notes"],
        source=row["source"],
        deleted=row["deleted"],
        updated_at=row["updated_at"],
    )


# Used by: api/deps.py (default store for SleepCoordinator)
class SleepDataManager:
    def __init__(self):
        self.database = get_database()

    # Used by: SleepCoordinator.refresh, set_profile, timer operations
    async def get_profile(self, baby_id: str) -> Optional[BabyProfile]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('SELECT * FROM baby_profiles WHERE id = :baby_id'),
                    {"baby_id": baby_id}
                )
                row = result.mappings().first()
                return BabyProfile(**row) if row else None
        except Exception as e:
            logger.error(f"Failed to get profile for baby {baby_id}: {e}")
            raise StorageError(f"Failed to load profile {baby_id}") from e

    async def upsert_profile(self, profile: BabyProfile) -> BabyProfile:
        try:
            async with self.database.session() as session:
                await session.execute(
                    text('''
                        INSERT INTO baby_profiles
                        (id, name, birth_date, active_timer_start, wake_window_adjustment_min, updated_at)
                        VALUES (:id, :name, :birth_date, :active_timer_start, :wake_window_adjustment_min, :updated_at)
                        ON CONFLICT (id) DO UPDATE SET
                            name = EXCLUDED.name,
                            birth_date = EXCLUDED.birth_date,
                            active_timer_start = EXCLUDED.active_timer_start,
                            wake_window_adjustment_min = EXCLUDED.wake_window_adjustment_min,
                            updated_at = EXCLUDED.updated_at
                    '''),
                    profile.model_dump()
                )
                await session.commit()
                logger.info(f"Saved profile for baby {profile.id}")
                return profile
        except Exception as e:
            logger.error(f"Failed to save profile for baby {profile.id}: {e}")
            raise StorageError(f"Failed to save profile {profile.id}") from e

    # Used by: SleepCoordinator.refresh (full history, tombstones included)
    async def list_sessions(self, baby_id: str) -> List[SleepSession]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('''
                        SELECT * FROM sleep_sessions
                        WHERE baby_id = :baby_id
                        ORDER BY start_at ASC
                    '''),
                    {"baby_id": baby_id}
                )
                return [_session_from_row(row) for row in result.mappings().all()]
        except Exception as e:
            logger.error(f"Failed to list sleep sessions for baby {baby_id}: {e}")
            raise StorageError(f"Failed to load sessions for {baby_id}") from e

    async def get_session(self, baby_id: str, session_id: str) -> Optional[SleepSession]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('SELECT * FROM sleep_sessions WHERE baby_id = :baby_id AND id = :id'),
                    {"baby_id": baby_id, "id": session_id}
                )
                row = result.mappings().first()
                return _session_from_row(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get sleep session {session_id} for baby {baby_id}: {e}")
            raise StorageError(f"Failed to load session {session_id}") from e

    # Used by: add/update/delete session (soft delete is an upsert with deleted=TRUE)
    async def upsert_session(self, baby_id: str, sleep_session: SleepSession) -> SleepSession:
        try:
            async with self.database.session() as session:
                await session.execute(
                    text('''
                        INSERT INTO sleep_sessions
                        (id, baby_id, start_at, end_at, quality, notes, source, deleted, updated_at)
                        VALUES (:id, :baby_id, :start_at, :end_at, :quality, :notes, :source, :deleted, :updated_at)
                        ON CONFLICT (id) DO UPDATE SET
                            start_at = EXCLUDED.start_at,
                            end_at = EXCLUDED.end_at,
                            quality = EXCLUDED.quality,
                            notes = EXCLUDED.notes,
                            source = EXCLUDED.source,
                            deleted = EXCLUDED.deleted,
                            updated_at = EXCLUDED.updated_at
                    '''),
                    {
                        "id": sleep_session.id,
                        "baby_id": baby_id,
                        "start_at": sleep_session.start,
                        "end_at": sleep_session.end,
                        "quality": sleep_session.quality,
                        "notes": sleep_session.notes,
                        "source": sleep_session.source.value,
                        "deleted": sleep_session.deleted,
                        "updated_at": sleep_session.updated_at,
                    }
                )
                await session.commit()
                return sleep_session
        except Exception as e:
            logger.error(f"Failed to save sleep session {sleep_session.id} for baby {baby_id}: {e}")
            raise StorageError(f"Failed to save session {sleep_session.id}") from e

    # Used by: SleepCoordinator.reset
    async def soft_delete_all_sessions(self, baby_id: str, deleted_at: datetime) -> int:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('''
                        UPDATE sleep_sessions
                        SET deleted = TRUE, updated_at = :deleted_at
                        WHERE baby_id = :baby_id AND deleted = FALSE
                    '''),
                    {"baby_id": baby_id, "deleted_at": deleted_at}
                )
                await session.commit()
                return result.rowcount or 0
        except Exception as e:
            logger.error(f"Failed to soft-delete sessions for baby {baby_id}: {e}")
            raise StorageError(f"Failed to reset sessions for {baby_id}") from e

    async def get_learner_state(self, baby_id: str) -> Optional[LearnerState]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('SELECT * FROM learner_states WHERE baby_id = :baby_id'),
                    {"baby_id": baby_id}
                )
                row = result.mappings().first()
        except Exception as e:
            logger.error(f"Failed to get learner state for baby {baby_id}: {e}")
            raise StorageError(f"Failed to load learner state for {baby_id}") from e

        if not row:
            return None
        if row["version"] != LEARNER_SCHEMA_VERSION:
            logger.warning(
                f"Ignoring learner state v{row['version']} for baby {baby_id} "
                f"(current schema v{LEARNER_SCHEMA_VERSION})"
            )
            return None
        return LearnerState(
            version=row["version"],
            ewma_nap_length_min=row["ewma_nap_length_min"],
            ewma_wake_window_min=row["ewma_wake_window_min"],
            last_updated=row["last_updated"],
            confidence=row["confidence"],
        )

    async def save_learner_state(self, baby_id: str, state: LearnerState) -> None:
        try:
            async with self.database.session() as session:
                await session.execute(
                    text('''
                        INSERT INTO learner_states
                        (baby_id, version, ewma_nap_length_min, ewma_wake_window_min, last_updated, confidence)
                        VALUES (:baby_id, :version, :ewma_nap_length_min, :ewma_wake_window_min,
                                :last_updated, :confidence)
                        ON CONFLICT (baby_id) DO UPDATE SET
                            version = EXCLUDED.version,
                            ewma_nap_length_min = EXCLUDED.ewma_nap_length_min,
                            ewma_wake_window_min = EXCLUDED.ewma_wake_window_min,
                            last_updated = EXCLUDED.last_updated,
                            confidence = EXCLUDED.confidence
                    '''),
                    {"baby_id": baby_id, **state.model_dump()}
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to save learner state for baby {baby_id}: {e}")
            raise StorageError(f"Failed to save learner state for {baby_id}") from e

    async def clear_learner_state(self, baby_id: str) -> None:
        try:
            async with self.database.session() as session:
                await session.execute(
                    text('DELETE FROM learner_states WHERE baby_id = :baby_id'),
                    {"baby_id": baby_id}
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to clear learner state for baby {baby_id}: {e}")
            raise StorageError(f"Failed to clear learner state for {baby_id}") from e

    async def list_notification_log(self, baby_id: str) -> List[NotificationLogEntry]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    text('''
                        SELECT id, scheduled_at, trigger_at, kind, status, related_block_id, title, body
                        FROM notification_log
                        WHERE baby_id = :baby_id
                        ORDER BY trigger_at ASC
                    '''),
                    {"baby_id": baby_id}
                )
                return [NotificationLogEntry(**row) for row in result.mappings().all()]
        except Exception as e:
            logger.error(f"Failed to list notification log for baby {baby_id}: {e}")
            raise StorageError(f"Failed to load notification log for {baby_id}") from e

    # Used by: SleepCoordinator.refresh (writes the whole planned log in one transaction)
    async def save_notification_log(self, baby_id: str, entries: List[NotificationLogEntry]) -> None:
        if not entries:
            return
        try:
            async with self.database.transaction() as session:
                for entry in entries:
                    await session.execute(
                        text('''
                            INSERT INTO notification_log
                            (id, baby_id, scheduled_at, trigger_at, kind, status, related_block_id, title, body)
                            VALUES (:id, :baby_id, :scheduled_at, :trigger_at, :kind, :status,
                                    :related_block_id, :title, :body)
                            ON CONFLICT (id) DO UPDATE SET
                                status = EXCLUDED.status,
                                related_block_id = EXCLUDED.related_block_id,
                                body = EXCLUDED.body
                        '''),
                        {
                            "baby_id": baby_id,
                            **entry.model_dump(),
                            "kind": entry.kind.value,
                            "status": entry.status.value,
                        }
                    )
        except Exception as e:
            logger.error(f"Failed to save notification log for baby {baby_id}: {e}")
            raise StorageError(f"Failed to save notification log for {baby_id}") from e

    async def clear_notification_log(self, baby_id: str) -> None:
        try:
            async with self.database.session() as session:
                await session.execute(
                    text('DELETE FROM notification_log WHERE baby_id = :baby_id'),
                    {"baby_id": baby_id}
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to clear notification log for baby {baby_id}: {e}")
            raise StorageError(f"Failed to clear notification log for {baby_id}") from e
