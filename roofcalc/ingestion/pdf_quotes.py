"""Historical PDF quote ingestion.

Pipeline: decode payload -> extract text (pypdf, then pdfplumber) -> AI line
item extraction -> catalog matching -> ``pdf_quote`` pattern upserts.
Unlike the Tradify import, PDF imports accumulate into existing patterns.
"""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.canonical import normalize_item_code, normalize_key
from roofcalc.config import get_config
from roofcalc.db.queries import get_catalog_items
from roofcalc.errors import RoofCalcError, ValidationError
from roofcalc.ingestion.locks import ImportLockRegistry
from roofcalc.ingestion.pdf_text import decode_pdf_payload, extract_pdf_text
from roofcalc.intelligence.quote_extractor import QuoteExtractor, QuoteLineItemExtractor
from roofcalc.models import (
    CatalogItem,
    ExtractedDataSummary,
    ExtractedLineItem,
    PdfImportResult,
    PricingObservation,
)
from roofcalc.pricing.store import ImportSessionRepository, PricingPatternStore

logger = logging.getLogger(__name__)


class CatalogMatcher:
    """Finds the catalog product an extracted line item refers to."""

    def __init__(self, catalog: Sequence[CatalogItem]):
        self._by_description: dict[str, CatalogItem] = {}
        self._by_code: dict[str, CatalogItem] = {}
        for product in catalog:
            key = normalize_key(product.description)
            if key:
                self._by_description.setdefault(key, product)
            code = normalize_item_code(product.item_code)
            if code:
                self._by_code.setdefault(code, product)

    def match(self, item: ExtractedLineItem) -> CatalogItem | None:
        """Match by normalized description first, then by the AI-suggested item code."""
        product = self._by_description.get(normalize_key(item.description))
        if product is None and item.matched_product_code:
            product = self._by_code.get(normalize_item_code(item.matched_product_code))
        return product


def markup_percentage(sell_price: float, cost_price: float | None) -> float | None:
    """Markup of an observed sell price over catalog cost, in percent."""
    if cost_price is None or cost_price <= 0:
        return None
    return (sell_price - cost_price) / cost_price * 100


def is_priced_line(item: ExtractedLineItem) -> bool:
    """Discount lines, $0 "included" lines and zero quantities teach nothing about price.

    A missing quantity counts as 1.
    """
    if item.unit_price is None or item.unit_price <= 0:
        return False
    return item.quantity is None or item.quantity > 0


def observation_for(
    item: ExtractedLineItem, product: CatalogItem | None, source: str
) -> PricingObservation:
    unit_price = item.unit_price or 0.0
    quantity = item.quantity if item.quantity is not None else 1.0
    observation = PricingObservation(
        description=item.description.strip(),
        unit_price=unit_price,
        quantity=quantity,
        amount=item.total if item.total else unit_price * quantity,
        source=source,
        unit=item.unit or None,
    )
    if product is None:
        return observation

    return observation.model_copy(
        update={
            "item_code": product.item_code,
            "cost_price": product.cost_price,
            "unit": product.unit or item.unit or None,
            "markup_percentage": markup_percentage(unit_price, product.cost_price),
        }
    )


async def import_pricing_pdf(
    session: AsyncSession,
    org_id: str,
    pdf_data: str | bytes,
    filename: str,
    extractor: QuoteExtractor | None = None,
    locks: ImportLockRegistry | None = None,
) -> PdfImportResult:
    """Import one historical PDF quote into pricing patterns.

    Args:
        session: Database session
        org_id: Organization the patterns belong to
        pdf_data: Raw PDF bytes or base64 text (a data URL is accepted)
        filename: Original filename, passed to the AI as context
        extractor: Line item extractor (OpenAI-backed by default)
        locks: Per-org import locks shared with concurrent callers (a private
            registry when omitted)

    Raises:
        ValidationError: Missing or invalid PDF data
        ParseError: No parser could extract text
        AIServiceTimeoutError: AI extraction timed out
        ExternalServiceError: AI not configured, unavailable or returned garbage
    """
    if not pdf_data or not filename:
        raise ValidationError("Missing PDF data or filename")

    config = get_config()
    source = config.imports.pdf_source
    sessions = ImportSessionRepository(session)

    async with (locks or ImportLockRegistry()).hold(org_id):
        session_id = await sessions.create(org_id, filename, source)
        try:
            return await _run_import(
                session, org_id, session_id, pdf_data, filename, source, extractor
            )
        except RoofCalcError as e:
            await sessions.fail(session_id, e.message)
            e.details.setdefault("session_id", session_id)
            raise


async def _run_import(
    session: AsyncSession,
    org_id: str,
    session_id: UUID,
    pdf_data: str | bytes,
    filename: str,
    source: str,
    extractor: QuoteExtractor | None,
) -> PdfImportResult:
    imports = get_config().imports

    data = decode_pdf_payload(pdf_data, min_bytes=imports.min_pdf_bytes)
    text = extract_pdf_text(data, min_chars=imports.min_pdf_text_chars)

    catalog = await get_catalog_items(session, org_id)
    extraction = await (extractor or QuoteLineItemExtractor()).extract(text, filename, catalog)

    matcher = CatalogMatcher(catalog)
    store = PricingPatternStore(session)
    pattern_keys: set[str] = set()
    patterns_created = 0
    matched = 0
    skipped = 0

    for item in extraction.line_items:
        key = normalize_key(item.description)
        if not key or not is_priced_line(item):
            skipped += 1
            continue

        product = matcher.match(item)
        if product is not None:
            matched += 1

        await store.upsert(org_id, observation_for(item, product, source))
        pattern_keys.add(key)
        patterns_created += 1

    await ImportSessionRepository(session).complete(
        session_id,
        total_quotes=1,
        accepted_quotes=1,
        total_line_items=patterns_created,
        unique_patterns=len(pattern_keys),
    )
    logger.info(
        f"PDF import {session_id} ({filename}): {patterns_created} patterns from "
        f"{len(extraction.line_items)} extracted lines, {matched} matched to catalog "
        f"({skipped} lines skipped)"
    )

    return PdfImportResult(
        session_id=session_id,
        patterns_created=patterns_created,
        extracted_data=ExtractedDataSummary(
            quote_number=extraction.quote_number,
            customer_name=extraction.customer_name,
            line_item_count=len(extraction.line_items),
        ),
    )
