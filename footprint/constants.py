"""
constants.py – Shared labels, award policy, and thresholds.
"""

# ── Activity categories ───────────────────────────────────────
CATEGORY_TRANSPORT = "transport"
CATEGORY_FOOD = "food"
CATEGORY_ACCOMMODATION = "accommodation"

ALLOWED_CATEGORIES = [
    CATEGORY_TRANSPORT,
    CATEGORY_FOOD,
    CATEGORY_ACCOMMODATION,
]

# Quantity unit per category (factor is kg CO₂e per unit)
CATEGORY_UNIT = {
    CATEGORY_TRANSPORT: "km",
    CATEGORY_FOOD: "meal",
    CATEGORY_ACCOMMODATION: "night",
}

# ── Rewards ───────────────────────────────────────────────────
REWARD_POINTS_PER_ACTIVITY = 10

# ── Leaderboard ───────────────────────────────────────────────
DEFAULT_LEADERBOARD_LIMIT = 20
MAX_LEADERBOARD_LIMIT = 100

# ── Calendar buckets (kg CO₂e per day) ────────────────────────
FOOTPRINT_LOW_THRESHOLD = 5.0
FOOTPRINT_MEDIUM_THRESHOLD = 15.0

BUCKET_NONE = "none"
BUCKET_LOW = "low"
BUCKET_MEDIUM = "medium"
BUCKET_HIGH = "high"

# Dashboard window when no range is given (today inclusive)
DEFAULT_SUMMARY_DAYS = 7

# ── Persistence ───────────────────────────────────────────────
CARBON_DECIMALS = 6

# ── Background jobs ───────────────────────────────────────────
DEFAULT_RECONCILE_INTERVAL_HOURS = 24
DEFAULT_REDRIVE_INTERVAL_SECONDS = 300
DEFAULT_REDRIVE_BATCH_SIZE = 500
MAX_REDRIVE_BATCH_SIZE = 5000
# Pending activities younger than this are left to the live path
REDRIVE_GRACE_SECONDS = 60
