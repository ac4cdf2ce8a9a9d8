"""Account registry and classified account data models"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from sales_blitz.constants import BlitzCategory, PremiseType, SMALL_LOSS_REVENUE_WEIGHT
from sales_blitz.models.aggregate import AccountAggregate


class AccountProfile(BaseModel):
    """Account metadata supplied by the external account registry"""

    account_id: str = Field(..., description="Registry account ID")
    account_name: str = Field(..., description="Account name as it appears on sales records")
    region: Optional[str] = Field(None, description="Sales region")
    premise_type: PremiseType = Field(PremiseType.UNCLASSIFIED, description="On/off premise tag")
    distributor: Optional[str] = Field(None, description="Primary distributor")


class BlitzAccount(AccountAggregate):
    """Classified account handed to the presentation layer"""

    category: BlitzCategory = Field(..., description="Trend category")
    categorized_at: datetime = Field(..., description="When the category was computed")
    is_ai_categorized: bool = Field(False, description="Category came from the AI oracle")
    confidence: Optional[float] = Field(None, ge=0, le=1, description="Classifier confidence")
    reasoning: Optional[str] = Field(None, description="Short explanation of the category")
    region: Optional[str] = Field(None, description="Carried from the registry")
    premise_type: PremiseType = Field(PremiseType.UNCLASSIFIED, description="Carried from the registry")
    distributor: Optional[str] = Field(None, description="Carried from the registry or records")

    @property
    def revenue_at_risk(self) -> float:
        if self.category == BlitzCategory.LARGE_LOSS:
            return self.lifetime_revenue
        if self.category == BlitzCategory.SMALL_LOSS:
            return self.lifetime_revenue * SMALL_LOSS_REVENUE_WEIGHT
        return 0.0


class BlitzFilters(BaseModel):
    """Filter/sort request from the presentation layer"""

    search: Optional[str] = None
    region: Optional[str] = None
    premise_type: Optional[PremiseType] = None
    categories: List[BlitzCategory] = Field(default_factory=list)
    sort_by: Optional[str] = Field(None, description="trend, baseline, recent or name")
    sort_direction: str = Field("asc", description="asc or desc")


class BlitzSummary(BaseModel):
    """Category counts and revenue exposure across a run"""

    large_active: int = 0
    small_active: int = 0
    large_loss: int = 0
    small_loss: int = 0
    one_time: int = 0
    inactive: int = 0
    total_revenue: float = 0.0
    revenue_at_risk: float = 0.0
