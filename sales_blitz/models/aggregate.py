"""Per-account aggregate data model"""

from pydantic import BaseModel, Field
from datetime import date
from typing import List


class MonthlyVolume(BaseModel):
    """One present month of an account's history"""

    month: str = Field(..., description="Year-month (YYYY-MM)")
    cases: float = Field(0.0, description="Case-equivalent volume")
    orders: int = Field(0, description="Deduplicated orders in the month")
    revenue: float = Field(0.0, description="Revenue in USD")


class AccountAggregate(BaseModel):
    """Windowed volume statistics for one account, recomputed every run"""

    account_id: str = Field(..., description="Registry account ID (account name when unregistered)")
    account_name: str = Field(..., description="Account name")
    baseline_monthly_volumes: List[float] = Field(default_factory=list, description="Volumes of baseline window months")
    recent_monthly_volumes: List[float] = Field(default_factory=list, description="Volumes of recent window months")
    baseline_average: float = Field(..., ge=0, description="Baseline volume / configured baseline months")
    recent_average: float = Field(..., ge=0, description="Recent volume / configured recent months")
    trend_percent: float = Field(..., description="Change from baseline to recent average in percent")
    first_activity_date: date = Field(..., description="Earliest resolved order date")
    last_activity_date: date = Field(..., description="Latest resolved order date")
    days_since_last_activity: int = Field(..., description="Days between last activity and the run time")
    total_orders: int = Field(..., ge=0, description="Deduplicated order count")
    lifetime_volume: float = Field(..., ge=0, description="Case-equivalent volume over all months")
    lifetime_revenue: float = Field(0.0, description="Revenue over all months")
    unique_months: int = Field(..., ge=0, description="Months with at least one order")
    monthly_data: List[MonthlyVolume] = Field(default_factory=list, description="Chronological monthly breakdown")

    class Config:
        json_schema_extra = {
            "example": {
                "account_id": "acc_981",
                "account_name": "Acme Bar",
                "baseline_monthly_volumes": [2, 2, 2, 2, 2, 2, 2, 2],
                "recent_monthly_volumes": [0, 0, 0.1],
                "baseline_average": 2.0,
                "recent_average": 0.033,
                "trend_percent": -98.3,
                "first_activity_date": "2025-01-05",
                "last_activity_date": "2025-11-21",
                "days_since_last_activity": 10,
                "total_orders": 40,
                "lifetime_volume": 16.1,
                "unique_months": 11
            }
        }

    @property
    def monthly_pattern(self) -> str:
        """Comma-separated list of months with orders"""
        return ", ".join(m.month for m in self.monthly_data)
