"""Filtering, sorting and summary helpers over classified accounts"""

from typing import Callable, Dict, Iterable, List
from sales_blitz.constants import BlitzCategory
from sales_blitz.models.account import BlitzAccount, BlitzFilters, BlitzSummary

SORT_KEYS: Dict[str, Callable[[BlitzAccount], object]] = {
    "trend": lambda a: a.trend_percent,
    "baseline": lambda a: a.baseline_average,
    "recent": lambda a: a.recent_average,
    "name": lambda a: a.account_name.lower(),
}


def filter_blitz_accounts(accounts: Iterable[BlitzAccount], filters: BlitzFilters) -> List[BlitzAccount]:
    """
    Apply presentation-layer filters and optional sort.

    Args:
        accounts: Classified accounts
        filters: Search text, region, premise type, categories and sort order

    Returns:
        Matching accounts; input order is kept when no sort is requested

    Raises:
        ValueError: If sort_by is not a known sort key
    """
    result = list(accounts)

    if filters.search:
        needle = filters.search.lower()
        result = [a for a in result if needle in a.account_name.lower()]

    if filters.region:
        result = [a for a in result if a.region == filters.region]

    if filters.premise_type:
        result = [a for a in result if a.premise_type == filters.premise_type]

    if filters.categories:
        wanted = set(filters.categories)
        result = [a for a in result if a.category in wanted]

    if filters.sort_by:
        key = SORT_KEYS.get(filters.sort_by)
        if key is None:
            raise ValueError(f"Unknown sort key '{filters.sort_by}', expected one of {sorted(SORT_KEYS)}")
        result.sort(key=key, reverse=filters.sort_direction == "desc")

    return result


def calculate_blitz_summary(accounts: Iterable[BlitzAccount]) -> BlitzSummary:
    """Count accounts per category and total lifetime revenue and revenue at risk"""
    counts = {category: 0 for category in BlitzCategory}
    total_revenue = 0.0
    revenue_at_risk = 0.0

    for account in accounts:
        counts[account.category] += 1
        total_revenue += account.lifetime_revenue
        revenue_at_risk += account.revenue_at_risk

    return BlitzSummary(
        **{category.value: count for category, count in counts.items()},
        total_revenue=total_revenue,
        revenue_at_risk=revenue_at_risk,
    )


def list_regions(accounts: Iterable[BlitzAccount]) -> List[str]:
    return sorted({a.region for a in accounts if a.region})


def list_distributors(accounts: Iterable[BlitzAccount]) -> List[str]:
    return sorted({a.distributor for a in accounts if a.distributor})
