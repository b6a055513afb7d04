"""Tests for measurement-to-mapping resolution (quantity, price, labor)."""

from __future__ import annotations

import math
from uuid import uuid4

import pytest

from roofcalc.config import PricingConfig
from roofcalc.models import CalculationType, HistoricalContext, PatternSnapshot
from roofcalc.quoting.resolver import (
    DEFAULT_DESCRIPTION,
    apply_waste,
    base_quantity,
    blend_price,
    formula_quantity,
    labor_cost,
    resolve_price,
    resolve_quantity,
)


def _context(**snapshots: PatternSnapshot) -> HistoricalContext:
    return HistoricalContext(item_patterns=snapshots)


class TestQuantity:
    def test_per_unit_passthrough(self, make_mapping):
        assert base_quantity(make_mapping(), 42.5) == 42.5

    def test_per_coverage_rounds_up(self, make_mapping):
        mapping = make_mapping(
            calculation_type=CalculationType.PER_COVERAGE, coverage_per_unit=9.29
        )
        assert base_quantity(mapping, 93) == 11

    @pytest.mark.parametrize("coverage", [None, 0.0, -4.0, math.inf, math.nan])
    def test_per_coverage_invalid_coverage_defaults_to_one(self, make_mapping, coverage):
        mapping = make_mapping(
            calculation_type=CalculationType.PER_COVERAGE, coverage_per_unit=coverage
        )
        assert base_quantity(mapping, 12.2) == 13

    def test_fixed_is_one(self, make_mapping):
        mapping = make_mapping(calculation_type=CalculationType.FIXED)
        assert base_quantity(mapping, 250) == 1

    def test_formula(self, make_mapping):
        mapping = make_mapping(
            calculation_type=CalculationType.FORMULA, custom_formula="measurement * 1.1"
        )
        assert base_quantity(mapping, 100) == pytest.approx(110.0)

    @pytest.mark.parametrize(
        "formula",
        [None, "", "measurement * (2", "measurement / 0", "measurement - 1000", "os.system"],
    )
    def test_formula_falls_back_to_measurement(self, formula):
        assert formula_quantity(formula, 25.0) == 25.0

    def test_formula_fallback_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            formula_quantity("measurement * (", 10.0)
        assert "using measurement" in caplog.text

    def test_waste_rounds_up(self):
        assert apply_waste(10, 10) == 11
        assert apply_waste(100, 0) == 100
        assert apply_waste(100, 10) == 110
        assert apply_waste(12.5, 10) == 14

    def test_resolve_quantity_applies_waste_only_when_enabled(self, make_mapping):
        assert resolve_quantity(make_mapping(apply_waste=True), 10, 10) == 11
        assert resolve_quantity(make_mapping(apply_waste=False), 10, 10) == 10


class TestResolvePrice:
    def test_static_price_without_product(self, make_mapping):
        price = resolve_price(make_mapping(unit_price=70.0), {}, None, PricingConfig())

        assert price.unit_cost == 70.0
        assert price.description == "Roof sheeting"
        assert price.product_id is None
        assert not price.adjusted

    def test_missing_static_price_is_zero(self, make_mapping):
        price = resolve_price(
            make_mapping(unit_price=None, product_description=None), {}, None, PricingConfig()
        )
        assert price.unit_cost == 0.0
        assert price.description == DEFAULT_DESCRIPTION

    def test_catalog_product_used(self, make_mapping, ridge_product):
        mapping = make_mapping(product_id=ridge_product.id)
        price = resolve_price(mapping, {ridge_product.id: ridge_product}, None, PricingConfig())

        assert price.unit_cost == 100.0
        assert price.description == "Ridge Capping Colorbond"
        assert price.item_code == "RC-100"
        assert price.cost_price == 60.0
        assert price.unit == "lm"
        assert price.product_id == ridge_product.id

    def test_blend_not_applied_below_threshold(self, make_mapping, ridge_product):
        mapping = make_mapping(product_id=ridge_product.id)
        context = _context(rc100=PatternSnapshot(avg_price=50, avg_qty=1, count=4))

        price = resolve_price(mapping, {ridge_product.id: ridge_product}, context, PricingConfig())

        assert price.unit_cost == 100.0
        assert not price.adjusted
        assert price.historical_pricing.count == 4

    def test_blend_applied_at_threshold(self, make_mapping, ridge_product):
        mapping = make_mapping(product_id=ridge_product.id)
        context = _context(rc100=PatternSnapshot(avg_price=50, avg_qty=1, count=5))

        price = resolve_price(mapping, {ridge_product.id: ridge_product}, context, PricingConfig())

        assert price.unit_cost == 92.5
        assert price.adjusted

    def test_blend_skipped_for_zero_sell_price(self, make_mapping, ridge_product):
        free = ridge_product.model_copy(update={"sell_price": 0.0})
        context = _context(rc100=PatternSnapshot(avg_price=50, avg_qty=1, count=9))

        price = resolve_price(
            make_mapping(product_id=free.id), {free.id: free}, context, PricingConfig()
        )
        assert price.unit_cost == 0.0
        assert not price.adjusted

    def test_blend_weights_are_configurable(self):
        assert blend_price(100, 50, PricingConfig(catalog_weight=0.5)) == 75.0

    def test_dangling_product_falls_back_to_static(self, make_mapping):
        mapping = make_mapping(product_id=uuid4(), unit_price=12.0)
        context = _context(**{"roof sheeting": PatternSnapshot(avg_price=99, avg_qty=1, count=9)})

        price = resolve_price(mapping, {}, context, PricingConfig())

        assert price.unit_cost == 12.0
        assert price.description == "Roof sheeting"
        assert not price.adjusted

    def test_inactive_product_falls_back_to_static(self, make_mapping, ridge_product):
        inactive = ridge_product.model_copy(update={"is_active": False})
        price = resolve_price(
            make_mapping(product_id=inactive.id, unit_price=8.0),
            {inactive.id: inactive},
            None,
            PricingConfig(),
        )
        assert price.unit_cost == 8.0
        assert price.item_code is None

    def test_history_by_description_without_product(self, make_mapping):
        context = _context(
            **{"roof sheeting": PatternSnapshot(avg_price=64.456, avg_qty=80, count=2)}
        )
        price = resolve_price(make_mapping(), {}, context, PricingConfig())

        assert price.unit_cost == 64.46
        assert price.adjusted

    def test_history_with_zero_average_ignored(self, make_mapping):
        context = _context(**{"roof sheeting": PatternSnapshot(avg_price=0, avg_qty=0, count=3)})
        price = resolve_price(make_mapping(), {}, context, PricingConfig())

        assert price.unit_cost == 70.0
        assert not price.adjusted


class TestLaborCost:
    def test_no_minutes_no_labor(self, make_mapping):
        assert labor_cost(make_mapping(labor_minutes_per_unit=0), 10, 0) == 0.0

    def test_default_rate(self, make_mapping):
        mapping = make_mapping(labor_minutes_per_unit=30, labor_rate=None)
        assert labor_cost(mapping, 4, 0) == pytest.approx(150.0)

    def test_rate_and_markup(self, make_mapping):
        mapping = make_mapping(labor_minutes_per_unit=6, labor_rate=60)
        # 6 min * 10 / 60 = 1h at $60 + 20%
        assert labor_cost(mapping, 10, 20) == pytest.approx(72.0)
