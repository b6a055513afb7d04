"""Tests for learning pricing patterns from saved quotes."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.models import RecentQuoteItem
from roofcalc.pricing.history import QUOTE_SOURCE, record_quote_items
from roofcalc.pricing.store import PricingPatternStore


@pytest.mark.asyncio
async def test_record_quote_items(db_session: AsyncSession):
    items = [
        RecentQuoteItem(description="Ridge Capping", item_code="RC-100", qty=10, unit_cost=15.0),
        RecentQuoteItem(description="  ", qty=1, unit_cost=20.0),
        RecentQuoteItem(description="Free inspection", qty=1, unit_cost=0.0),
        RecentQuoteItem(description="!!!", qty=1, unit_cost=5.0),
        RecentQuoteItem(description="ridge capping", qty=0, unit_cost=17.0),
    ]

    recorded = await record_quote_items(db_session, "test-org", items)

    assert recorded == 2
    patterns = await PricingPatternStore(db_session).list_patterns("test-org", QUOTE_SOURCE)
    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.normalized_key == "ridge capping"
    assert pattern.occurrence_count == 2
    assert pattern.avg_unit_price == 16.0
    assert pattern.min_unit_price == 15.0
    assert pattern.max_unit_price == 17.0
    assert pattern.item_code == "RC-100"


@pytest.mark.asyncio
async def test_record_nothing(db_session: AsyncSession):
    assert await record_quote_items(db_session, "test-org", []) == 0
