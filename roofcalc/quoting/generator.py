"""Quote item generation.

``generate_quote_items`` is a pure function over prefetched data;
``QuoteGenerator`` loads that data for one request and calls it.
"""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.config import PricingConfig, get_config
from roofcalc.db.queries import (
    get_catalog_items,
    get_extraction,
    get_recent_accepted_quotes,
    get_template,
    get_template_mappings,
)
from roofcalc.errors import NotFoundError, ValidationError
from roofcalc.models import (
    CatalogItem,
    ExtractionRef,
    GeneratedQuoteItem,
    HistoricalContext,
    HistoricalContextSummary,
    MeasurementExtraction,
    QuoteGenerationResult,
    QuoteSummary,
    QuoteTemplate,
    TemplateMapping,
    TemplateRef,
)
from roofcalc.pricing.patterns import build_historical_context, round1, round2
from roofcalc.pricing.store import PricingPatternStore
from roofcalc.quoting.resolver import labor_cost, resolve_price, resolve_quantity

logger = logging.getLogger(__name__)


def generate_quote_items(
    template: QuoteTemplate,
    mappings: Sequence[TemplateMapping],
    extraction: MeasurementExtraction,
    catalog: Sequence[CatalogItem],
    context: HistoricalContext | None = None,
    pricing: PricingConfig | None = None,
) -> QuoteGenerationResult:
    """Price every active mapping of a template against one extraction.

    Mappings are processed in ascending ``sort_order`` (ties keep their input
    order). A mapping whose measurement is missing or zero yields no item.

    Rounding: quantities stay unrounded inside the total; the item shows
    ``round2(qty)``, ``total = round2(qty * unit_cost + labor)`` and the
    subtotal is ``round2`` of the summed totals.
    """
    pricing = pricing or PricingConfig()
    products = {product.id: product for product in catalog}
    active = sorted((m for m in mappings if m.is_active), key=lambda m: m.sort_order)

    items: list[GeneratedQuoteItem] = []
    adjusted = False

    for mapping in active:
        measurement = extraction.value_for(mapping.measurement_type)
        if not measurement:
            continue

        quantity = resolve_quantity(mapping, measurement, template.waste_percent)
        price = resolve_price(mapping, products, context, pricing)
        labor = labor_cost(
            mapping, quantity, template.labor_markup_percent, pricing.default_labor_rate
        )
        adjusted = adjusted or price.adjusted

        items.append(
            GeneratedQuoteItem(
                description=price.description,
                qty=round2(quantity),
                unit_cost=price.unit_cost,
                total=round2(quantity * price.unit_cost + labor),
                item_code=price.item_code,
                cost_price=price.cost_price,
                product_id=price.product_id,
                unit=price.unit,
                sort_order=mapping.sort_order,
                measurement_type=mapping.measurement_type,
                measurement_value=measurement,
                labor_cost=round2(labor) if labor > 0 else None,
                historical_pricing=price.historical_pricing,
            )
        )

    summary_context = None
    if context is not None:
        summary_context = HistoricalContextSummary(
            quotes_analyzed=context.quotes_analyzed,
            imported_patterns=context.imported_patterns,
            avg_quote_total=round2(context.avg_quote_total),
            avg_item_count=round1(context.avg_item_count),
            pricing_adjusted=adjusted,
        )

    return QuoteGenerationResult(
        items=items,
        template=TemplateRef(id=template.id, name=template.name),
        extraction=ExtractionRef(id=extraction.id, address=extraction.property_address),
        historical_context=summary_context,
        summary=QuoteSummary(
            item_count=len(items),
            subtotal=round2(sum(item.total for item in items)),
            waste_percent=template.waste_percent,
            labor_markup=template.labor_markup_percent,
        ),
    )


class QuoteGenerator:
    """Loads everything one generation request needs and prices it."""

    def __init__(self, session: AsyncSession, pricing: PricingConfig | None = None):
        self.session = session
        self.pricing = pricing or get_config().pricing

    async def load_context(self, org_id: str) -> HistoricalContext | None:
        """Patterns from every source plus the most recent accepted quotes."""
        patterns = await PricingPatternStore(self.session).list_patterns(org_id)
        recent = await get_recent_accepted_quotes(
            self.session, org_id, limit=self.pricing.recent_quotes_limit
        )
        return build_historical_context(patterns, recent)

    async def generate(
        self,
        org_id: str,
        extraction_id: UUID | None,
        template_id: UUID | None,
        use_historical_context: bool = True,
    ) -> QuoteGenerationResult:
        """Generate priced line items for an extraction using a template.

        Raises:
            ValidationError: Extraction or template id missing
            NotFoundError: Extraction, template or template mappings not found
        """
        if not extraction_id or not template_id:
            raise ValidationError("Extraction ID and Template ID are required")

        extraction = await get_extraction(self.session, org_id, extraction_id)
        if extraction is None:
            raise NotFoundError("Extraction not found")

        template = await get_template(self.session, org_id, template_id)
        if template is None:
            raise NotFoundError("Template not found")

        mappings = await get_template_mappings(self.session, template_id)
        if not mappings:
            raise NotFoundError("Template has no mappings")

        catalog = await get_catalog_items(self.session, org_id)
        context = await self.load_context(org_id) if use_historical_context else None

        result = generate_quote_items(
            template, mappings, extraction, catalog, context, self.pricing
        )
        logger.info(
            f"Generated {result.summary.item_count} items (subtotal {result.summary.subtotal}) "
            f"for extraction={extraction_id} template={template_id} org={org_id}"
        )
        return result
