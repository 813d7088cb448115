"""DDL for the naprhythm tables. Idempotent; safe to run on every startup."""

SCHEMA_STATEMENTS = [
    '''
    CREATE TABLE IF NOT EXISTS baby_profiles (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        birth_date DATE NOT NULL,
        active_timer_start TIMESTAMPTZ NULL,
        wake_window_adjustment_min INTEGER NOT NULL DEFAULT 0,
        updated_at TIMESTAMPTZ NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS sleep_sessions (
        id TEXT PRIMARY KEY,
        baby_id TEXT NOT NULL REFERENCES baby_profiles(id),
        start_at TIMESTAMPTZ NOT NULL,
        end_at TIMESTAMPTZ NOT NULL,
        quality SMALLINT NULL,
        notes TEXT NULL,
        source TEXT NOT NULL,
        deleted BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at TIMESTAMPTZ NOT NULL
    )
    ''',
    '''
    CREATE INDEX IF NOT EXISTS ix_sleep_sessions_baby_start
        ON sleep_sessions (baby_id, start_at)
    ''',
    '''
    CREATE TABLE IF NOT EXISTS learner_states (
        baby_id TEXT PRIMARY KEY REFERENCES baby_profiles(id),
        version INTEGER NOT NULL,
        ewma_nap_length_min DOUBLE PRECISION NOT NULL,
        ewma_wake_window_min DOUBLE PRECISION NOT NULL,
        last_updated TIMESTAMPTZ NOT NULL,
        confidence DOUBLE PRECISION NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS notification_log (
        id TEXT PRIMARY KEY,
        baby_id TEXT NOT NULL REFERENCES baby_profiles(id),
        scheduled_at TIMESTAMPTZ NOT NULL,
        trigger_at TIMESTAMPTZ NOT NULL,
        kind TEXT NOT NULL,
        status TEXT NOT NULL,
        related_block_id TEXT NULL,
        title TEXT NOT NULL DEFAULT '',
        body TEXT NOT NULL DEFAULT ''
    )
    ''',
]
