"""Centralized constants for the srscore scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Ease ----------
MIN_EASE = 1.3
DEFAULT_EASE = 2.5
EASE_PENALTY_AGAIN = 0.8
EASE_PENALTY_HARD = 0.2
EASE_BONUS_EASY = 0.15

# ---------- Review intervals ----------
HARD_FACTOR = 1.2
EASY_BONUS = 1.3
MAX_INTERVAL_DAYS = 365
FUZZ_FACTOR = 0.05  # +/- 5% of the computed interval

# ---------- Learning ladder ----------
LEARNING_STEPS_MINUTES = (1.0, 10.0)
GRADUATING_INTERVAL_DAYS = 4.0
EASY_INTERVAL_DAYS = 5.0
RELEARNING_INTERVAL_DAYS = 1.0
RELEARNING_EASY_INTERVAL_DAYS = 2.0

# ---------- Selection ----------
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_QUEUE_LIMIT = 20

# ---------- Statistics ----------
DEFAULT_HISTORY_DAYS = 100

SECONDS_PER_DAY = 86400
