"""Data models for the sales blitz engine"""

from .transaction import TransactionRecord, CanonicalRecord
from .aggregate import AccountAggregate, MonthlyVolume
from .account import AccountProfile, BlitzAccount, BlitzFilters, BlitzSummary
from .categorization import (
    AccountSummary,
    CategorizationCacheEntry,
    CategorizationResult,
    CategorizationRunResult,
    OracleVerdict,
)
from .blitz_config import BlitzConfig

__all__ = [
    "TransactionRecord",
    "CanonicalRecord",
    "AccountAggregate",
    "MonthlyVolume",
    "AccountProfile",
    "BlitzAccount",
    "BlitzFilters",
    "BlitzSummary",
    "AccountSummary",
    "CategorizationCacheEntry",
    "CategorizationResult",
    "CategorizationRunResult",
    "OracleVerdict",
    "BlitzConfig",
]
