"""Transaction record data models"""

from pydantic import BaseModel, Field, field_validator
from datetime import date
from typing import Optional
from sales_blitz.constants import UNIT_ALIASES


class TransactionRecord(BaseModel):
    """Raw sales record as ingested from a distributor upload"""

    organization_id: str = Field(..., description="Owning organization")
    account_name: str = Field(..., description="Customer account name (raw)")
    product_name: str = Field(..., description="Product name (raw)")
    order_id: Optional[str] = Field(None, description="Upstream order identifier, if the upload had one")
    order_date: Optional[date] = Field(None, description="Exact order date")
    default_period: Optional[str] = Field(None, description="Year-month (YYYY-MM) used when the order date is unknown")
    quantity: float = Field(..., description="Quantity in quantity_unit")
    quantity_unit: Optional[str] = Field(None, description="cases, bottles, barrel or unset")
    case_size: Optional[float] = Field(None, description="Bottles per case")
    bottles_per_unit: Optional[float] = Field(None, description="Bottles per package unit")
    quantity_in_bottles: Optional[float] = Field(None, description="Precomputed bottle count")
    revenue: Optional[float] = Field(None, description="Revenue in USD, absent when the upload lacked pricing")
    distributor: Optional[str] = Field(None, description="Distributor that reported the sale")
    region: Optional[str] = Field(None, description="Sales region on the record")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "organization_id": "org_42",
                "account_name": "Acme Bar",
                "product_name": "Hazy IPA 12oz",
                "order_id": "SO-10023",
                "order_date": "2025-03-14",
                "quantity": 24,
                "quantity_unit": "bottles",
                "case_size": 24,
                "revenue": 86.40,
                "distributor": "Blue Ridge Beverage",
                "region": "Southeast"
            }
        }

    @field_validator('quantity_unit', mode='before')
    @classmethod
    def normalize_unit(cls, value):
        if value is None:
            return None
        text = str(value).strip().lower()
        if not text:
            return None
        return UNIT_ALIASES.get(text, text)

    @field_validator('order_id', 'default_period', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class CanonicalRecord(BaseModel):
    """Deduplicated, unit-normalized record with a resolved month"""

    record: TransactionRecord = Field(..., description="Source record")
    case_equivalent_volume: float = Field(..., description="Volume in cases")
    resolved_date: date = Field(..., description="Order date, or first day of the default period")
    resolved_year: int = Field(..., description="Resolved year")
    resolved_month: int = Field(..., ge=1, le=12, description="Resolved month")

    class Config:
        frozen = True

    @property
    def account_name(self) -> str:
        return self.record.account_name

    @property
    def month_key(self) -> str:
        return f"{self.resolved_year:04d}-{self.resolved_month:02d}"

    @property
    def revenue(self) -> float:
        return self.record.revenue or 0.0
