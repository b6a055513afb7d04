"""Learn pricing patterns from quotes saved in the application.

Quotes are created and accepted by the host application, not by RoofCalc.
Its quote-save path calls ``record_quote_items`` (exported from
``roofcalc.pricing``) with the saved lines, inside its own session.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.errors import RoofCalcError
from roofcalc.models import PricingObservation, RecentQuoteItem
from roofcalc.pricing.store import PricingPatternStore

logger = logging.getLogger(__name__)

QUOTE_SOURCE = "quote"


async def record_quote_items(
    session: AsyncSession, org_id: str, items: Iterable[RecentQuoteItem]
) -> int:
    """Upsert a ``quote`` pattern for each saved line with a description and price.

    Learning is best effort: a failing line is logged and skipped so saving a
    quote never fails because of it.

    Returns:
        Number of lines recorded
    """
    store = PricingPatternStore(session)
    recorded = 0

    for item in items:
        if not item.description or not item.description.strip() or not item.unit_cost:
            continue

        observation = PricingObservation(
            description=item.description.strip(),
            unit_price=item.unit_cost,
            quantity=item.qty or 1.0,
            source=QUOTE_SOURCE,
            item_code=item.item_code or None,
        )
        try:
            # Savepoint so one bad line cannot poison the caller's transaction
            async with session.begin_nested():
                await store.upsert(org_id, observation)
            recorded += 1
        except (RoofCalcError, SQLAlchemyError) as e:
            logger.warning(f"Skipping quote line {item.description!r} for pricing history: {e}")

    logger.debug(f"Recorded {recorded} quote lines into pricing patterns for org={org_id}")
    return recorded
