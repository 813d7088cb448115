"""Age baselines, learner tuning, schedule shaping and coach thresholds."""

# ── AGE BASELINES (minutes) ─────────────────────────────────────────────────
# Wake-window bands and typical nap lengths per age group. The bands are
# non-overlapping, and the last one is open-ended: any age past 18 months
# lands in it.
# (min_months, max_months): (min_ww, max_ww, typical_ww, typical_nap)
AGE_BASELINES = {
    (0, 3):    (30, 90, 60, 120),
    (4, 6):    (90, 150, 120, 90),
    (7, 9):    (120, 180, 150, 60),
    (10, 12):  (150, 240, 180, 60),
    (13, 18):  (180, 300, 240, 60),
    (19, 999): (240, 360, 300, 60),
}


# ── LEARNER ─────────────────────────────────────────────────────────────────
LEARNER_SCHEMA_VERSION = 1

EWMA_ALPHA = 0.3
COLD_START_CONFIDENCE = 0.1

# confidence reaches 1.0 at 2x this many sessions
MIN_SESSIONS_FOR_CONFIDENCE = 5
CONFIDENCE_DECAY_DAYS = 7
VARIANCE_PENALTY_SCALE = 100.0
VARIANCE_PENALTY_FLOOR = 0.3

MIN_NAP_SAMPLE_MINUTES = 15
MAX_WAKE_WINDOW_SAMPLE_MINUTES = 600

NAP_CLAMP_LOW_FACTOR = 0.5
NAP_CLAMP_HIGH_FACTOR = 2.0


# ── NIGHT / NAP CLASSIFICATION (local hours) ───────────────────────────────
NIGHT_SLEEP_MIN_MINUTES = 360
NIGHT_START_HOUR = 18
NIGHT_END_HOUR = 6


# ── SCHEDULE ────────────────────────────────────────────────────────────────
WIND_DOWN_BUFFER_MINUTES = 30
MAX_NAPS_PER_DAY = 4
BEDTIME_TARGET_HOUR = 19
BEDTIME_BLOCK_MINUTES = 12 * 60
DEFAULT_DAYS_AHEAD = 2
MIN_ADJUSTED_WAKE_WINDOW_MINUTES = 30


# ── COACH ───────────────────────────────────────────────────────────────────
COACH_RECENT_DAYS = 7
SHORT_NAP_THRESHOLD_MINUTES = 30
SHORT_NAP_STREAK_MIN_COUNT = 3
SHORT_NAP_MAX_RELATED = 5

LONG_WAKE_WINDOW_FACTOR = 1.2

BEDTIME_SHIFT_WINDOW = 5
BEDTIME_SHIFT_MIN_NIGHTS = 2 * BEDTIME_SHIFT_WINDOW
BEDTIME_SHIFT_THRESHOLD_MINUTES = 30

SPLIT_NIGHT_MIN_HOURS = 12
SPLIT_NIGHT_EDGE_HOURS = 4
SPLIT_NIGHT_THRESHOLD_HOURS = 3


# ── NOTIFICATIONS ───────────────────────────────────────────────────────────
NOTIFICATION_MAX_BLOCKS = 10
NOTIFICATION_HORIZON_DAYS = 7
