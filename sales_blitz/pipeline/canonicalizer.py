"""Turn raw records into canonical records: dedup, resolve month, normalize, filter"""

import math
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
from pydantic import BaseModel, Field
from sales_blitz.models.transaction import TransactionRecord, CanonicalRecord
from sales_blitz.pipeline.deduplicator import deduplicate
from sales_blitz.pipeline.unit_normalizer import normalize
from sales_blitz.utils.logging import get_logger
from sales_blitz.utils.metrics import records_excluded, records_deduplicated

logger = get_logger(__name__)

EXCLUDED_UNSCHEDULABLE = "unschedulable"
EXCLUDED_INVALID_QUANTITY = "invalid_quantity"


class CanonicalizationReport(BaseModel):
    """Canonical records plus what was dropped on the way"""

    records: List[CanonicalRecord] = Field(default_factory=list)
    input_count: int = 0
    duplicates_dropped: int = 0
    excluded: Dict[str, int] = Field(default_factory=dict)

    @property
    def excluded_count(self) -> int:
        return sum(self.excluded.values())


def parse_period(period: Optional[str]) -> Optional[date]:
    """
    Parse a default period (YYYY-MM, or a full ISO date) to the first day of its month.

    Returns:
        date, or None if the value cannot be parsed
    """
    if not period:
        return None

    text = period.strip()
    for fmt, width in (("%Y-%m-%d", 10), ("%Y-%m", 7)):
        try:
            parsed = datetime.strptime(text[:width], fmt)
            return date(parsed.year, parsed.month, 1)
        except ValueError:
            continue
    return None


def resolve_date(record: TransactionRecord) -> Optional[date]:
    """Order date when known, else the first day of the default period"""
    if record.order_date is not None:
        return record.order_date
    return parse_period(record.default_period)


def quantity_is_valid(record: TransactionRecord) -> bool:
    """Quantities must be finite and non-negative, bottle counts and the case volume too"""
    values = [record.quantity]
    if record.quantity_in_bottles is not None:
        values.append(record.quantity_in_bottles)
    if not all(math.isfinite(v) and v >= 0 for v in values):
        return False
    volume = normalize(record)
    return math.isfinite(volume) and volume >= 0


def canonicalize(records: Iterable[TransactionRecord]) -> CanonicalizationReport:
    """
    Deduplicate, then normalize and date-resolve every remaining record.

    Deduplication runs first so that dropped duplicates never shift the
    month windows. Records with no resolvable date or an invalid quantity are
    excluded and counted, never raised.

    Args:
        records: Raw records in ingestion order

    Returns:
        CanonicalizationReport
    """
    raw = list(records)
    unique = deduplicate(raw)
    duplicates = len(raw) - len(unique)

    canonical = []
    excluded: Dict[str, int] = {}

    for record in unique:
        if not quantity_is_valid(record):
            excluded[EXCLUDED_INVALID_QUANTITY] = excluded.get(EXCLUDED_INVALID_QUANTITY, 0) + 1
            continue

        resolved = resolve_date(record)
        if resolved is None:
            excluded[EXCLUDED_UNSCHEDULABLE] = excluded.get(EXCLUDED_UNSCHEDULABLE, 0) + 1
            continue

        canonical.append(CanonicalRecord(
            record=record,
            case_equivalent_volume=normalize(record),
            resolved_date=resolved,
            resolved_year=resolved.year,
            resolved_month=resolved.month,
        ))

    if duplicates:
        records_deduplicated.inc(duplicates)
    for reason, count in excluded.items():
        records_excluded.labels(reason=reason).inc(count)

    logger.info(
        "Canonicalized records",
        input_count=len(raw),
        canonical_count=len(canonical),
        duplicates_dropped=duplicates,
        excluded=excluded
    )

    return CanonicalizationReport(
        records=canonical,
        input_count=len(raw),
        duplicates_dropped=duplicates,
        excluded=excluded,
    )


def group_by_account(records: Iterable[CanonicalRecord]) -> Dict[str, List[CanonicalRecord]]:
    """Group canonical records by account name, keeping input order within each group"""
    grouped: Dict[str, List[CanonicalRecord]] = {}
    for record in records:
        grouped.setdefault(record.account_name, []).append(record)
    return grouped
