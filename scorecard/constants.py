"""
Global constants for the vendor scorecard engine.

Centralizes magic numbers and configuration values used throughout
the engine for easier maintenance and tuning.
"""

# Rating scale
RATING_SCALE_MIN = 1  # Lowest valid sub-rating
RATING_SCALE_MAX = 10  # Highest valid sub-rating
LEGACY_UNRATED_PLACEHOLDER = 0  # Legacy CSV importer wrote 0 for "not rated"
SUB_RATING_FIELDS = ("success", "quality", "communication")

# Rounding
OVERALL_DECIMAL_PLACES = 1  # Overall rating: one decimal, round-half-up
AVERAGE_DECIMAL_PLACES = 2  # Vendor averages
RATE_DECIMAL_PLACES = 4  # Vendor rates (fractions 0-1)

# Import provenance
DEFAULT_IMPORT_SENTINEL = "imported@system.com"  # Rater identity used by bulk historical loads
DEFAULT_IMPORT_WINDOW_SECONDS = 300  # Imported ratings this close to the earliest are one batch

# Concurrency
DEFAULT_MAX_WORKERS = 4  # Parallel vendor units per pass

# Performance tiers (fallback when performance_tiers.yaml is missing)
DEFAULT_TIER_THRESHOLDS = (
    ("top", 8.0),
    ("mid", 6.0),
    ("low", 0.0),
)
UNRATED_TIER = "unrated"

# Vendor ranking weights (pre-score out of 100)
RANK_WEIGHT_OVERALL = 40
RANK_WEIGHT_RECOMMENDATION = 40
RANK_WEIGHT_VOLUME = 20

# Partition key for projects with no vendor assigned yet
UNASSIGNED_VENDOR = "__unassigned__"
