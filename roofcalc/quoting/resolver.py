"""Measurement-to-mapping resolution.

Turns one template mapping plus a measurement value into a billable quantity,
a unit price and a labor cost. Everything here is defensive: bad numbers in a
mapping degrade to safe defaults and never raise.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping
from uuid import UUID

from roofcalc.canonical import normalize_key
from roofcalc.config import PricingConfig
from roofcalc.errors import EvaluationError
from roofcalc.formula import compile_formula
from roofcalc.models import (
    CalculationType,
    CatalogItem,
    HistoricalContext,
    PatternSnapshot,
    TemplateMapping,
)
from roofcalc.pricing.patterns import round2

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Line item"


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _ceil(value: float) -> float:
    # Drop float noise first: 10 * 1.1 == 11.000000000000002
    return float(math.ceil(round(value, 9)))


def formula_quantity(formula: str | None, measurement: float) -> float:
    """Evaluate a mapping formula, falling back to the raw measurement.

    The fallback covers an empty formula, a parse or evaluation error, and a
    non-finite or negative result.
    """
    if not formula or not formula.strip():
        return measurement

    try:
        result = compile_formula(formula.strip()).evaluate(measurement)
    except EvaluationError as e:
        logger.warning(f"Formula {formula!r} failed ({e.message}), using measurement {measurement}")
        return measurement

    if not math.isfinite(result) or result < 0:
        logger.warning(f"Formula {formula!r} gave {result}, using measurement {measurement}")
        return measurement
    return result


def base_quantity(mapping: TemplateMapping, measurement: float) -> float:
    """Quantity before waste for the mapping's calculation type."""
    calculation = mapping.calculation_type

    if calculation == CalculationType.PER_COVERAGE:
        coverage = mapping.coverage_per_unit if _usable(mapping.coverage_per_unit) else 1.0
        return _ceil(measurement / coverage)
    if calculation == CalculationType.FIXED:
        return 1.0
    if calculation == CalculationType.FORMULA:
        return formula_quantity(mapping.custom_formula, measurement)
    return measurement


def apply_waste(quantity: float, waste_percent: float) -> float:
    """Round up after adding the waste allowance (never under-order materials)."""
    return _ceil(quantity * (1 + waste_percent / 100))


def resolve_quantity(mapping: TemplateMapping, measurement: float, waste_percent: float) -> float:
    quantity = base_quantity(mapping, measurement)
    if mapping.apply_waste:
        quantity = apply_waste(quantity, waste_percent)
    return quantity


@dataclass(frozen=True)
class ResolvedPrice:
    """Unit price and catalog details for one generated line."""

    unit_cost: float
    description: str
    item_code: str | None = None
    cost_price: float | None = None
    product_id: UUID | None = None
    unit: str | None = None
    historical_pricing: PatternSnapshot | None = None
    adjusted: bool = False  # blended with, or taken from, history


def blend_price(catalog_price: float, historical_price: float, pricing: PricingConfig) -> float:
    """Weighted catalog/history price, rounded to cents.

    Example:
        >>> blend_price(100, 50, PricingConfig())
        92.5
    """
    return round2(
        catalog_price * pricing.catalog_weight + historical_price * pricing.historical_weight
    )


def resolve_price(
    mapping: TemplateMapping,
    catalog: Mapping[UUID, CatalogItem],
    context: HistoricalContext | None,
    pricing: PricingConfig,
) -> ResolvedPrice:
    """Pick the unit price for a mapping.

    Priority:
        1. Linked active catalog product (sell price), blended 85/15 with history
           when its item code has at least ``blend_min_occurrences`` observations
        2. No linked product: positive historical average for the mapping description
        3. The mapping's static unit price
    A linked product missing from the catalog falls back to the static price.
    """
    description = mapping.product_description or DEFAULT_DESCRIPTION
    static_price = mapping.unit_price or 0.0

    if mapping.product_id is not None:
        product = catalog.get(mapping.product_id)
        if product is None or not product.is_active:
            return ResolvedPrice(unit_cost=static_price, description=description)

        unit_cost = product.sell_price or 0.0
        snapshot = context.lookup(normalize_key(product.item_code)) if context else None
        adjusted = False
        if (
            snapshot is not None
            and unit_cost > 0
            and snapshot.count >= pricing.blend_min_occurrences
        ):
            unit_cost = blend_price(unit_cost, snapshot.avg_price, pricing)
            adjusted = True

        return ResolvedPrice(
            unit_cost=unit_cost,
            description=product.description,
            item_code=product.item_code,
            cost_price=product.cost_price,
            product_id=product.id,
            unit=product.unit,
            historical_pricing=snapshot,
            adjusted=adjusted,
        )

    snapshot = context.lookup(normalize_key(description)) if context else None
    if snapshot is not None and snapshot.avg_price > 0:
        return ResolvedPrice(
            unit_cost=round2(snapshot.avg_price),
            description=description,
            historical_pricing=snapshot,
            adjusted=True,
        )

    return ResolvedPrice(unit_cost=static_price, description=description)


def labor_cost(
    mapping: TemplateMapping,
    quantity: float,
    labor_markup_percent: float,
    default_rate: float = 75.0,
) -> float:
    """Labor cost for the line: minutes per unit at an hourly rate, plus markup."""
    minutes = mapping.labor_minutes_per_unit or 0.0
    if minutes <= 0:
        return 0.0

    hours = minutes * quantity / 60
    rate = mapping.labor_rate or default_rate
    return hours * rate * (1 + labor_markup_percent / 100)
