"""Typed view of the blitz configuration file"""

from datetime import timedelta
from typing import Any, Dict

from pydantic import BaseModel, Field

from sales_blitz.constants import (
    DEFAULT_BASELINE_MONTHS,
    DEFAULT_CACHE_TTL_DAYS,
    DEFAULT_INACTIVE_DAYS,
    DEFAULT_LARGE_THRESHOLD,
    DEFAULT_LOSS_RATIO,
    DEFAULT_MAX_WORKERS,
    DEFAULT_ONE_TIME_ORDERS,
    DEFAULT_RECENT_MONTHS,
)


class BlitzConfig(BaseModel):
    """Tunable parameters for one categorization run"""

    baseline_months: int = Field(DEFAULT_BASELINE_MONTHS, ge=1, description="Earliest months used as baseline")
    recent_months: int = Field(DEFAULT_RECENT_MONTHS, ge=1, description="Latest months used as recent window")
    large_threshold: float = Field(DEFAULT_LARGE_THRESHOLD, gt=0, description="Cases/month separating large from small")
    loss_ratio: float = Field(DEFAULT_LOSS_RATIO, ge=0, le=1, description="Recent/baseline ratio at or below which an account is a loss")
    inactive_days: int = Field(DEFAULT_INACTIVE_DAYS, ge=1, description="Days without orders before an account is inactive")
    one_time_orders: int = Field(DEFAULT_ONE_TIME_ORDERS, ge=1, description="Order count that marks a one-time account")
    cache_ttl_days: float = Field(DEFAULT_CACHE_TTL_DAYS, gt=0, description="Days a cached categorization stays valid")
    cache_backend: str = Field("memory", description="memory or redis")
    ai_enabled: bool = Field(False, description="Refine categories with the AI oracle")
    ai_model: str = Field("anthropic/claude-haiku-4.5", description="Model used by the AI oracle")
    max_workers: int = Field(DEFAULT_MAX_WORKERS, ge=1, description="Worker pool size for recategorization")
    data_source_retries: int = Field(3, ge=1, description="Attempts to read the upstream record set")
    data_source_retry_delay: float = Field(2.0, ge=0, description="Base backoff delay in seconds")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "baseline_months": 8,
                "recent_months": 3,
                "large_threshold": 1.0,
                "loss_ratio": 0.25,
                "inactive_days": 90,
                "cache_ttl_days": 30,
                "cache_backend": "memory",
                "ai_enabled": False,
                "max_workers": 8
            }
        }

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(days=self.cache_ttl_days)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "BlitzConfig":
        """Flatten the sectioned YAML layout into a BlitzConfig"""
        windows = config.get('windows', {}) or {}
        classification = config.get('classification', {}) or {}
        cache = config.get('cache', {}) or {}
        ai = config.get('ai', {}) or {}
        data_source = config.get('data_source', {}) or {}

        values = {
            'baseline_months': windows.get('baseline_months'),
            'recent_months': windows.get('recent_months'),
            'large_threshold': classification.get('large_threshold'),
            'loss_ratio': classification.get('loss_ratio'),
            'inactive_days': classification.get('inactive_days'),
            'one_time_orders': classification.get('one_time_orders'),
            'cache_ttl_days': cache.get('ttl_days'),
            'cache_backend': cache.get('backend'),
            'ai_enabled': ai.get('enabled'),
            'ai_model': ai.get('model'),
            'max_workers': ai.get('max_workers'),
            'data_source_retries': data_source.get('max_retries'),
            'data_source_retry_delay': data_source.get('base_delay_seconds'),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})
