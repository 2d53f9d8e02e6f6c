# backend/coachledger/core/constants.py
"""Ledger and scheduling constants that are part of the business rules, not configuration."""

# A hybrid subscription may hold at most one month of rollover on top of the
# current month's allotment.
ROLLOVER_MULTIPLIER = 2

# Single-credit debit used for every individually created booking.
CREDITS_PER_BOOKING = 1

ONE_OFF_NAME_MAX_LENGTH = 120
ADJUSTMENT_REASON_MAX_LENGTH = 500

# Capacity reported for an extra override window that does not set its own.
EXTRA_WINDOW_DEFAULT_CAPACITY = 2

# Actors that may create bookings; only clients are held to minimum notice.
ACTOR_COACH = "coach"
ACTOR_CLIENT = "client"

# A weekly streak continues when a completed session started within this many days.
STREAK_WINDOW_DAYS = 7

# Favorite start times: recurring at least FAVORITE_MIN_BOOKINGS times among
# completed sessions of the last FAVORITE_WINDOW_DAYS, keeping the top FAVORITE_LIMIT.
FAVORITE_WINDOW_DAYS = 90
FAVORITE_MIN_BOOKINGS = 2
FAVORITE_LIMIT = 5
