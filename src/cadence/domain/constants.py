"""Centralized constants for the Cadence scheduler.

All magic numbers live here so every layer imports from a single source of truth.
"""

# ---------- Memory state bounds ----------
MIN_STABILITY = 0.1
MAX_STABILITY = 365.0
MIN_DIFFICULTY = 0.1
MAX_DIFFICULTY = 10.0

# Fallbacks used when stored or computed values are non-finite / non-positive
FALLBACK_STABILITY = MIN_STABILITY
FALLBACK_DIFFICULTY = 5.0
FALLBACK_RETRIEVABILITY = 0.5
SUCCESS_GROWTH_FALLBACK = 1.1  # forced stability growth when the success multiplier collapses

# ---------- Grades ----------
MIN_GRADE = 0
MAX_GRADE = 5
SUCCESS_GRADE = 3

# Score (0-100) thresholds, highest first
SCORE_GRADE_THRESHOLDS = ((95, 5), (85, 4), (70, 3), (50, 2), (30, 1))

# Latency (ms) thresholds for correct answers
FAST_ANSWER_MS = 5000
MODERATE_ANSWER_MS = 10000

# ---------- Intervals ----------
DEFAULT_TARGET_RETENTION = 0.9
MIN_TARGET_RETENTION = 0.01
MAX_TARGET_RETENTION = 0.99
MIN_INTERVAL_DAYS = 5 / (24 * 60)  # 5 minutes
FALLBACK_INTERVAL_DAYS = 1.0
SECONDS_PER_DAY = 86400.0

# ---------- Optimizer ----------
MIN_RECORDS_TO_FIT = 10
MIN_RECORDS_FOR_USER_FIT = 20
MAX_OPTIMIZE_ITERATIONS = 500  # per request, for callers outside the service
FINITE_DIFFERENCE_STEP = 0.001
STALL_ITERATIONS_BEFORE_DECAY = 5
LEARNING_RATE_DECAY = 0.9

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_LEARNING_RATE = 0.01
DEFAULT_MIN_ERROR = 0.001

USER_FIT_MAX_ITERATIONS = 30
USER_FIT_LEARNING_RATE = 0.01
USER_FIT_MIN_ERROR = 0.01

# ---------- Service ----------
HISTORY_FETCH_LIMIT = 1000
