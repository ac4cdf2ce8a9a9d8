"""Temporal aggregation of canonical records into baseline/recent windows"""

from datetime import date, datetime
from typing import Dict, List, Sequence, Tuple, Union
from sales_blitz.constants import DEFAULT_BASELINE_MONTHS, DEFAULT_RECENT_MONTHS
from sales_blitz.models.account import AccountProfile
from sales_blitz.models.aggregate import AccountAggregate, MonthlyVolume
from sales_blitz.models.transaction import CanonicalRecord
from sales_blitz.utils.errors import AggregationError

MonthKey = Tuple[int, int]


def bucket_by_month(records: Sequence[CanonicalRecord]) -> Dict[MonthKey, MonthlyVolume]:
    """Sum volume, orders and revenue per resolved (year, month)"""
    buckets: Dict[MonthKey, MonthlyVolume] = {}
    for record in records:
        key = (record.resolved_year, record.resolved_month)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = MonthlyVolume(month=record.month_key)
            buckets[key] = bucket
        bucket.cases += record.case_equivalent_volume
        bucket.orders += 1
        bucket.revenue += record.revenue
    return buckets


def split_windows(months: List[MonthKey], baseline_months: int,
                  recent_months: int) -> Tuple[List[MonthKey], List[MonthKey]]:
    """
    Split chronologically sorted present months into (baseline, recent).

    The latest recent_months months form the recent window; the earliest
    baseline_months of whatever is left form the baseline, so the two never
    overlap. Months absent from the data are not padded in.
    """
    recent = months[-recent_months:] if months else []
    remaining = months[:len(months) - len(recent)]
    baseline = remaining[:baseline_months]
    return baseline, recent


def trend_percent(baseline_average: float, recent_average: float) -> float:
    """Relative change from baseline to recent, 0 when there is no baseline"""
    if baseline_average == 0:
        return 0.0
    return (recent_average - baseline_average) / baseline_average * 100


def aggregate(
    records: Sequence[CanonicalRecord],
    account: AccountProfile,
    baseline_months: int = DEFAULT_BASELINE_MONTHS,
    recent_months: int = DEFAULT_RECENT_MONTHS,
    now: Union[datetime, date, None] = None
) -> AccountAggregate:
    """
    Compute windowed statistics for one account.

    Averages divide by the configured window sizes, not by the number of
    months actually present.

    Args:
        records: Deduplicated, normalized records of this account
        account: Registry profile of the account
        baseline_months: Baseline window size in months
        recent_months: Recent window size in months
        now: Reference time for recency (defaults to now)

    Returns:
        AccountAggregate

    Raises:
        AggregationError: If records is empty or window sizes are not positive
    """
    if not records:
        raise AggregationError(f"No records to aggregate for account {account.account_name}")
    if baseline_months < 1 or recent_months < 1:
        raise AggregationError("Window sizes must be positive")

    now = now or datetime.now()
    today = now.date() if isinstance(now, datetime) else now

    buckets = bucket_by_month(records)
    months = sorted(buckets)
    baseline_keys, recent_keys = split_windows(months, baseline_months, recent_months)

    baseline_volumes = [buckets[m].cases for m in baseline_keys]
    recent_volumes = [buckets[m].cases for m in recent_keys]

    baseline_average = sum(baseline_volumes) / baseline_months
    recent_average = sum(recent_volumes) / recent_months

    dates = [r.resolved_date for r in records]
    last_activity = max(dates)

    return AccountAggregate(
        account_id=account.account_id,
        account_name=account.account_name,
        baseline_monthly_volumes=baseline_volumes,
        recent_monthly_volumes=recent_volumes,
        baseline_average=baseline_average,
        recent_average=recent_average,
        trend_percent=trend_percent(baseline_average, recent_average),
        first_activity_date=min(dates),
        last_activity_date=last_activity,
        # Future-dated orders count as activity today
        days_since_last_activity=max((today - last_activity).days, 0),
        total_orders=len(records),
        lifetime_volume=sum(r.case_equivalent_volume for r in records),
        lifetime_revenue=sum(r.revenue for r in records),
        unique_months=len(months),
        monthly_data=[buckets[m] for m in months],
    )
