"""Pricing pattern aggregation.

A pricing pattern is a running summary (average unit price and quantity,
occurrence count, min/max, revenue) of every historical line item whose
description normalizes to the same key. The reducer here is pure, so folding
a batch with ``functools.reduce`` gives the same pattern as upserting the
items one by one.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from roofcalc.canonical import normalize_key
from roofcalc.models import (
    HistoricalContext,
    PatternSnapshot,
    PricingObservation,
    PricingPattern,
    RecentQuote,
)

# Observation fields that replace the stored value only when present
OVERRIDE_FIELDS = ("item_code", "cost_price", "markup_percentage", "unit", "product_id")


def round2(value: float) -> float:
    """Round half-up to 2 decimal places (money display rounding).

    Example:
        >>> round2(2.675)
        2.68
    """
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round1(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _running_average(old_avg: float, old_count: int, value: float) -> float:
    return (old_avg * old_count + value) / (old_count + 1)


def apply_observation(
    existing: PricingPattern | None,
    observation: PricingObservation,
    org_id: str,
) -> PricingPattern:
    """Fold one observed line item into its pattern.

    Args:
        existing: Current pattern for the observation's key, or None
        observation: Historical line item
        org_id: Owning organization (used when a new pattern is created)

    Returns:
        A new PricingPattern; ``existing`` is never mutated
    """
    price = observation.unit_price
    quantity = observation.quantity
    overrides = {
        name: getattr(observation, name)
        for name in OVERRIDE_FIELDS
        if getattr(observation, name) is not None
    }

    if existing is None:
        return PricingPattern(
            org_id=org_id,
            source=observation.source,
            normalized_key=normalize_key(observation.description),
            item_description=observation.description,
            avg_unit_price=price,
            min_unit_price=price,
            max_unit_price=price,
            avg_quantity=quantity,
            occurrence_count=1,
            total_revenue=observation.effective_amount,
            **overrides,
        )

    count = existing.occurrence_count
    min_price = price if existing.min_unit_price is None else min(existing.min_unit_price, price)
    max_price = price if existing.max_unit_price is None else max(existing.max_unit_price, price)

    return existing.model_copy(
        update={
            "avg_unit_price": _running_average(existing.avg_unit_price, count, price),
            "avg_quantity": _running_average(existing.avg_quantity or 0.0, count, quantity),
            "min_unit_price": min_price,
            "max_unit_price": max_price,
            "occurrence_count": count + 1,
            "total_revenue": (existing.total_revenue or 0.0) + observation.effective_amount,
            **overrides,
        }
    )


def _merge_snapshot(
    current: PatternSnapshot | None, avg_price: float, avg_qty: float, count: int
) -> PatternSnapshot:
    if current is None or current.count == 0:
        return PatternSnapshot(avg_price=avg_price, avg_qty=avg_qty, count=count)

    total = current.count + count
    if total == 0:
        return current
    return PatternSnapshot(
        avg_price=(current.avg_price * current.count + avg_price * count) / total,
        avg_qty=(current.avg_qty * current.count + avg_qty * count) / total,
        count=total,
    )


def build_historical_context(
    patterns: Iterable[PricingPattern],
    recent_quotes: Iterable[RecentQuote],
) -> HistoricalContext | None:
    """Consolidate stored patterns and recent accepted quotes for one request.

    Patterns of different sources that share a key are merged by
    occurrence-weighted average. Each recent quote line is then folded in
    with the running-average rule, keyed by its item code (or description).

    Returns:
        HistoricalContext, or None when there is no history at all
    """
    patterns = list(patterns)
    recent_quotes = list(recent_quotes)

    item_patterns: dict[str, PatternSnapshot] = {}
    for pattern in patterns:
        item_patterns[pattern.normalized_key] = _merge_snapshot(
            item_patterns.get(pattern.normalized_key),
            pattern.avg_unit_price,
            pattern.avg_quantity or 0.0,
            pattern.occurrence_count,
        )

    for quote in recent_quotes:
        for item in quote.items:
            key = normalize_key(item.item_code or item.description)
            if not key:
                continue
            snapshot = item_patterns.get(key) or PatternSnapshot(avg_price=0.0, avg_qty=0.0, count=0)
            item_patterns[key] = PatternSnapshot(
                avg_price=_running_average(snapshot.avg_price, snapshot.count, item.unit_cost),
                avg_qty=_running_average(snapshot.avg_qty, snapshot.count, item.qty),
                count=snapshot.count + 1,
            )

    if not item_patterns and not recent_quotes:
        return None

    quote_count = len(recent_quotes)
    return HistoricalContext(
        quotes_analyzed=quote_count,
        imported_patterns=len(patterns),
        avg_quote_total=sum(q.total for q in recent_quotes) / quote_count if quote_count else 0.0,
        avg_item_count=sum(len(q.items) for q in recent_quotes) / quote_count if quote_count else 0.0,
        item_patterns=item_patterns,
    )
