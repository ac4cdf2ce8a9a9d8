"""Record deduplication for repeated uploads of the same orders"""

from typing import Hashable, Iterable, List, Tuple
from sales_blitz.models.transaction import TransactionRecord


def dedup_key(record: TransactionRecord) -> Tuple[Hashable, ...]:
    """
    Identity key for a record.

    Uses (organization_id, order_id) when the upload carried an order id,
    otherwise a composite of the fields that identify a re-imported row.
    Two distinct orders sharing every composite field collide; that is an
    accepted approximation.
    """
    if record.order_id:
        return ("order", record.organization_id, record.order_id)

    if record.order_date is not None:
        date_key = record.order_date.isoformat()
    else:
        date_key = record.default_period or "no_date"

    return (
        "composite",
        record.organization_id,
        date_key,
        record.account_name,
        record.product_name,
        record.quantity,
        record.quantity_in_bottles or 0,
    )


def deduplicate(records: Iterable[TransactionRecord]) -> List[TransactionRecord]:
    """
    Drop later records that share an identity key with an earlier one.

    Order-preserving, first occurrence wins. Duplicates are dropped, not
    merged or summed.

    Args:
        records: Records in ingestion order

    Returns:
        Deduplicated list
    """
    seen = set()
    unique = []

    for record in records:
        key = dedup_key(record)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)

    return unique
