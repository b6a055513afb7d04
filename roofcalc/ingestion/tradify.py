"""Tradify CSV quote export ingestion.

Builds ``tradify`` pricing patterns from a quote export. Each import fully
replaces the organization's previous Tradify patterns.

Expected columns:
- Quote No (required)
- Line Description (required)
- Status (required)
- Line Quantity (optional, defaults to 1)
- Line Unit Price (optional, derived from Line Amount / quantity when absent)
- Line Amount (optional)
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.canonical import normalize_key
from roofcalc.config import get_config
from roofcalc.errors import RoofCalcError, ValidationError
from roofcalc.ingestion.csv_reader import CsvTable, parse_number
from roofcalc.ingestion.locks import ImportLockRegistry
from roofcalc.models import ImportSession, PricingObservation
from roofcalc.pricing.store import ImportSessionRepository, PricingPatternStore

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Quote No", "Line Description", "Status")
DEFAULT_FILENAME = "tradify_export.csv"
MAX_DESCRIPTION_LENGTH = 255


async def import_pricing_csv(
    session: AsyncSession,
    org_id: str,
    csv_content: str,
    filename: str | None = None,
    locks: ImportLockRegistry | None = None,
) -> ImportSession:
    """Import a Tradify quote export into pricing patterns.

    Args:
        session: Database session
        org_id: Organization the patterns belong to
        csv_content: Raw CSV text
        filename: Original filename for the import session record
        locks: Per-org import locks shared with concurrent callers (a private
            registry when omitted)

    Returns:
        Completed ImportSession with quote, line and pattern counts

    Raises:
        ValidationError: Empty content, no data rows or missing required columns.
            The session is marked failed first and its id is in ``details``.
    """
    if not csv_content or not csv_content.strip():
        raise ValidationError("CSV content is required")

    source = get_config().imports.tradify_source
    sessions = ImportSessionRepository(session)

    async with (locks or ImportLockRegistry()).hold(org_id):
        session_id = await sessions.create(org_id, filename or DEFAULT_FILENAME, source)
        try:
            return await _run_import(session, org_id, session_id, csv_content, source)
        except RoofCalcError as e:
            await sessions.fail(session_id, e.message)
            e.details.setdefault("session_id", session_id)
            raise


async def _run_import(
    session: AsyncSession,
    org_id: str,
    session_id: UUID,
    csv_content: str,
    source: str,
) -> ImportSession:
    table = CsvTable.from_text(csv_content)
    if len(table.rows) < 1:
        raise ValidationError("CSV file is empty or has no data rows")

    missing = table.missing_columns(REQUIRED_COLUMNS)
    if missing:
        raise ValidationError(f"CSV missing required columns: {', '.join(missing)}")

    store = PricingPatternStore(session)
    await store.clear(org_id, source)

    quotes_seen: set[str] = set()
    quotes_with_lines: set[str] = set()
    pattern_keys: set[str] = set()
    line_items = 0
    skipped = 0

    for row in table.rows:
        quote_no = (table.cell(row, "Quote No") or "").strip()
        if quote_no:
            quotes_seen.add(quote_no)

        description = (table.cell(row, "Line Description") or "").strip()[:MAX_DESCRIPTION_LENGTH]
        quantity = _quantity(table, row)
        unit_price = _unit_price(table, row, quantity)
        amount = parse_number(table.cell(row, "Line Amount"))

        key = normalize_key(description)
        if not key or quantity is None or quantity <= 0 or unit_price is None or unit_price <= 0:
            skipped += 1
            continue

        await store.upsert(
            org_id,
            PricingObservation(
                description=description,
                unit_price=unit_price,
                quantity=quantity,
                amount=amount if amount is not None else unit_price * quantity,
                source=source,
            ),
        )
        if quote_no:
            quotes_with_lines.add(quote_no)
        pattern_keys.add(key)
        line_items += 1

    completed = await ImportSessionRepository(session).complete(
        session_id,
        total_quotes=len(quotes_seen),
        accepted_quotes=len(quotes_with_lines),
        total_line_items=line_items,
        unique_patterns=len(pattern_keys),
    )
    logger.info(
        f"Tradify import {session_id}: {line_items} lines, {len(pattern_keys)} patterns, "
        f"{len(quotes_seen)} quotes ({skipped} rows skipped)"
    )
    return completed


def _quantity(table: CsvTable, row: list[str]) -> float | None:
    if not table.has_column("Line Quantity"):
        return 1.0
    return parse_number(table.cell(row, "Line Quantity"))


def _unit_price(table: CsvTable, row: list[str], quantity: float | None) -> float | None:
    if table.has_column("Line Unit Price"):
        return parse_number(table.cell(row, "Line Unit Price"))

    amount = parse_number(table.cell(row, "Line Amount"))
    if amount is None or not quantity:
        return None
    return amount / quantity
