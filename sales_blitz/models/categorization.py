"""Categorization, cache entry and run result data models"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timedelta
from typing import Optional, List
from sales_blitz.constants import BlitzCategory, RunStatus
from sales_blitz.models.account import BlitzAccount


class CategorizationResult(BaseModel):
    """Output of a Classifier for one account"""

    account_id: str = Field(..., description="Account the result belongs to")
    category: BlitzCategory = Field(..., description="Trend category")
    confidence: float = Field(..., ge=0, le=1, description="Classifier confidence")
    reasoning: str = Field("", description="Short explanation")
    rule: Optional[str] = Field(None, description="Decision-list rule that matched")
    is_ai_categorized: bool = Field(False, description="Category came from the AI oracle")


class CategorizationCacheEntry(BaseModel):
    """Cached categorization for (organization_id, account_id)"""

    organization_id: str = Field(..., description="Owning organization")
    account_id: str = Field(..., description="Registry account ID")
    category: BlitzCategory = Field(..., description="Cached category")
    categorized_at: datetime = Field(..., description="When the category was computed")
    is_ai_categorized: bool = Field(False, description="Category came from the AI oracle")
    confidence: Optional[float] = Field(None, ge=0, le=1, description="Classifier confidence")
    reasoning: Optional[str] = Field(None, description="Short explanation")

    class Config:
        json_schema_extra = {
            "example": {
                "organization_id": "org_42",
                "account_id": "acc_981",
                "category": "large_loss",
                "categorized_at": "2025-11-01T09:30:00",
                "is_ai_categorized": True,
                "confidence": 0.86,
                "reasoning": "Baseline of 2.0 cases/month collapsed to 0.03 in the last quarter."
            }
        }

    @field_validator('categorized_at')
    @classmethod
    def to_local_naive(cls, value: datetime) -> datetime:
        # Run clocks are naive local time; entries written elsewhere may carry an offset
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    def is_valid(self, now: datetime, ttl: timedelta) -> bool:
        """Valid while now - categorized_at < ttl"""
        if now.tzinfo is not None:
            now = now.astimezone().replace(tzinfo=None)
        return now - self.categorized_at < ttl

    @classmethod
    def from_result(cls, organization_id: str, result: CategorizationResult,
                    categorized_at: datetime) -> "CategorizationCacheEntry":
        return cls(
            organization_id=organization_id,
            account_id=result.account_id,
            category=result.category,
            categorized_at=categorized_at,
            is_ai_categorized=result.is_ai_categorized,
            confidence=result.confidence,
            reasoning=result.reasoning,
        )


class AccountSummary(BaseModel):
    """What the AI oracle sees about one account"""

    account_name: str
    baseline_average: float
    recent_average: float
    trend_percent: float
    total_orders: int
    days_since_last_activity: int
    unique_months: int
    monthly_pattern: str
    large_threshold: float
    inactive_days: int


class OracleVerdict(BaseModel):
    """AI oracle answer for one account"""

    category: BlitzCategory
    confidence: Optional[float] = Field(None, ge=0, le=1)
    reasoning: Optional[str] = None


class CategorizationRunResult(BaseModel):
    """Summary of one organization categorization run"""

    run_id: str = Field(..., description="Unique run ID (UUID)")
    organization_id: str = Field(..., description="Organization processed")
    status: RunStatus = Field(..., description="Run outcome")
    forced: bool = Field(False, description="Run invalidated the cache first")
    started_at: datetime = Field(..., description="Run start")
    completed_at: Optional[datetime] = Field(None, description="Run end")
    records_loaded: int = Field(0, description="Records read from the source")
    records_deduplicated: int = Field(0, description="Duplicates dropped")
    records_excluded: int = Field(0, description="Malformed records left out")
    cache_hits: int = Field(0, description="Accounts served from a valid cache entry")
    recategorized: int = Field(0, description="Accounts classified and written this run")
    ai_categorized: int = Field(0, description="Accounts whose category came from the oracle")
    ai_fallbacks: int = Field(0, description="Accounts where the oracle failed and rules were used")
    not_persisted: List[str] = Field(default_factory=list, description="Accounts classified but not cached (cancelled or cache failure)")
    accounts: List[BlitzAccount] = Field(default_factory=list, description="Classified accounts, largest baseline first")
