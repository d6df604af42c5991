"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_TARGET_MODEL = "Member"
SCHEDULE_AWARE_TARGET_MODELS = frozenset({"Employee"})

# Check-in rules
DEFAULT_DUPLICATE_PREVENTION_MINUTES = 5
DEFAULT_MAX_CHECK_INS_PER_MONTH = 1000

# Schedules
DEFAULT_STANDARD_HOURS = 8.0
DEFAULT_WORKING_DAYS = (0, 1, 2, 3, 4)  # Monday..Friday (date.weekday())
DEFAULT_HALF_DAY_CUTOFF_HOUR = 12

# Streaks / milestones
STREAK_RESET_AFTER_DAYS = 2
STREAK_MILESTONES = (7, 14, 30, 60, 90, 180, 365)
VISIT_MILESTONES = (10, 25, 50, 100, 250, 500, 1000)

# Engagement buckets (visits this month), evaluated highest first
HIGHLY_ACTIVE_VISITS = 12
ACTIVE_VISITS = 8
REGULAR_VISITS = 4
OCCASIONAL_VISITS = 1
AT_RISK_AFTER_DAYS = 14
DORMANT_AFTER_DAYS = 30

# Loyalty score weights: (cap, points)
LOYALTY_VISITS = (200, 40)
LOYALTY_STREAK = (90, 30)
LOYALTY_AVERAGE = (15, 30)

# Batch / read side
DEFAULT_CHECKOUT_BATCH_LIMIT = 500
DEFAULT_HISTORY_MONTHS = 12
DEFAULT_TREND_DAYS = 30
DEFAULT_TOP_MEMBERS = 10
