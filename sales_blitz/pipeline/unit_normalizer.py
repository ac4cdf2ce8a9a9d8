"""Unit normalization: any record encoding -> case-equivalent volume"""

import math
from sales_blitz.constants import DEFAULT_BOTTLES_PER_CASE, QuantityUnit
from sales_blitz.models.transaction import TransactionRecord


def _positive(value) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def normalize(record: TransactionRecord) -> float:
    """
    Convert a record's quantity to case-equivalent volume.

    First applicable rule wins:
        1. quantity_in_bottles / bottles_per_unit
        2. quantity_in_bottles / case_size
        3. bottles unit: quantity / (bottles_per_unit or case_size or 12)
        4. cases or unset unit: quantity
        5. anything else (barrel, unknown): quantity, as an approximation

    A divisor counts only when it is a finite positive number.

    Args:
        record: Transaction record

    Returns:
        Volume in cases. Never raises; zero, NaN or missing denominators fall through.
    """
    bottles = record.quantity_in_bottles

    if bottles is not None and _positive(record.bottles_per_unit):
        return bottles / record.bottles_per_unit

    if bottles is not None and _positive(record.case_size):
        return bottles / record.case_size

    if record.quantity_unit == QuantityUnit.BOTTLES.value:
        divisor = next(
            (d for d in (record.bottles_per_unit, record.case_size) if _positive(d)),
            DEFAULT_BOTTLES_PER_CASE
        )
        return record.quantity / divisor

    # Cases, unset and unrecognized units are all taken as case-denominated
    return record.quantity
