"""Constants and enums for the sales blitz engine"""

from enum import Enum


class BlitzCategory(str, Enum):
    """Account trend categories"""
    LARGE_ACTIVE = "large_active"
    SMALL_ACTIVE = "small_active"
    LARGE_LOSS = "large_loss"
    SMALL_LOSS = "small_loss"
    ONE_TIME = "one_time"
    INACTIVE = "inactive"


class QuantityUnit(str, Enum):
    """Known quantity encodings on incoming sales records"""
    CASES = "cases"
    BOTTLES = "bottles"
    BARREL = "barrel"


class PremiseType(str, Enum):
    """Account premise classification from the account registry"""
    ON_PREMISE = "on_premise"
    OFF_PREMISE = "off_premise"
    ONLINE = "online"
    UNCLASSIFIED = "unclassified"


class CacheState(str, Enum):
    """Lifecycle of one account's cached categorization"""
    UNCATEGORIZED = "uncategorized"
    CACHED_VALID = "cached_valid"
    CACHED_STALE = "cached_stale"
    RECATEGORIZING = "recategorizing"


class RunStatus(str, Enum):
    """Categorization run outcome"""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Aliases seen in distributor uploads
UNIT_ALIASES = {
    "case": QuantityUnit.CASES.value,
    "cases": QuantityUnit.CASES.value,
    "cs": QuantityUnit.CASES.value,
    "bottle": QuantityUnit.BOTTLES.value,
    "bottles": QuantityUnit.BOTTLES.value,
    "btl": QuantityUnit.BOTTLES.value,
    "barrel": QuantityUnit.BARREL.value,
    "barrels": QuantityUnit.BARREL.value,
    "bbl": QuantityUnit.BARREL.value,
}

# Default configuration values
DEFAULT_BOTTLES_PER_CASE = 12
DEFAULT_BASELINE_MONTHS = 8
DEFAULT_RECENT_MONTHS = 3
DEFAULT_LARGE_THRESHOLD = 1.0  # cases/month
DEFAULT_LOSS_RATIO = 0.25  # recent <= 25% of baseline, i.e. a 75% decline
DEFAULT_INACTIVE_DAYS = 90
DEFAULT_ONE_TIME_ORDERS = 1
DEFAULT_CACHE_TTL_DAYS = 30
DEFAULT_MAX_WORKERS = 8

# Revenue-at-risk weighting per loss category
SMALL_LOSS_REVENUE_WEIGHT = 0.5
