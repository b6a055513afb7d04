"""Tests for Tradify CSV pricing import."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.errors import ValidationError
from roofcalc.ingestion.tradify import import_pricing_csv
from roofcalc.models import ImportStatus, PricingObservation
from roofcalc.pricing.store import ImportSessionRepository, PricingPatternStore

ORG = "test-org"

EXPORT = """Quote No,Status,Line Description,Line Quantity,Line Unit Price,Line Amount
Q-100,Accepted,Ridge Capping,10,$12.00,$120.00
Q-100,Accepted,"Gutter, Quad 115",20,25,500
Q-101,Accepted,ridge capping!!,5,18,90
Q-101,Accepted,Freight,0,50,0
Q-102,Declined,,1,10,10
Q-103,Accepted,Site clean,1,-5,-5
"""


class TestImportPricingCsv:
    @pytest.mark.asyncio
    async def test_import_builds_patterns(self, db_session: AsyncSession):
        result = await import_pricing_csv(db_session, ORG, EXPORT, "quotes.csv")

        assert result.status == ImportStatus.COMPLETED
        assert result.filename == "quotes.csv"
        assert result.total_quotes == 4
        assert result.accepted_quotes == 2
        assert result.total_line_items == 3
        assert result.unique_patterns == 2

        store = PricingPatternStore(db_session)
        ridge = await store.lookup(ORG, "ridge capping", source="tradify")
        assert ridge.occurrence_count == 2
        assert ridge.avg_unit_price == pytest.approx(15.0)
        assert ridge.avg_quantity == pytest.approx(7.5)
        assert ridge.total_revenue == pytest.approx(210.0)

        gutter = await store.lookup(ORG, "gutter quad 115")
        assert gutter.item_description == "Gutter, Quad 115"

    @pytest.mark.asyncio
    async def test_declined_quotes_are_learned(self, db_session: AsyncSession):
        content = (
            "Quote No,Status,Line Description,Line Quantity,Line Unit Price\n"
            "Q-1,Accepted,Whirlybird,1,90\n"
            "Q-2,Declined,Whirlybird,1,110\n"
        )

        result = await import_pricing_csv(db_session, ORG, content)

        assert result.accepted_quotes == 2
        pattern = await PricingPatternStore(db_session).lookup(ORG, "whirlybird")
        assert pattern.occurrence_count == 2
        assert pattern.avg_unit_price == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_blank_quote_numbers_not_counted(self, db_session: AsyncSession):
        content = (
            "Quote No,Status,Line Description,Line Quantity,Line Unit Price\n"
            "Q-1,Accepted,Ridge capping,10,15\n"
            ",Accepted,Valley iron,4,30\n"
            " ,Accepted,Flashing,2,20\n"
        )

        result = await import_pricing_csv(db_session, ORG, content)

        assert result.total_quotes == 1
        assert result.accepted_quotes == 1
        assert result.total_line_items == 3
        assert result.unique_patterns == 3

    @pytest.mark.asyncio
    async def test_reimport_replaces_tradify_patterns(self, db_session: AsyncSession):
        store = PricingPatternStore(db_session)
        await store.upsert(
            ORG, PricingObservation(description="Scaffold", unit_price=900, source="pdf_quote")
        )

        await import_pricing_csv(db_session, ORG, EXPORT)
        await import_pricing_csv(db_session, ORG, EXPORT)

        ridge = await store.lookup(ORG, "ridge capping", source="tradify")
        assert ridge.occurrence_count == 2
        assert await store.lookup(ORG, "scaffold", source="pdf_quote") is not None

    @pytest.mark.asyncio
    async def test_default_filename(self, db_session: AsyncSession):
        result = await import_pricing_csv(db_session, ORG, EXPORT)
        assert result.filename == "tradify_export.csv"

    @pytest.mark.asyncio
    async def test_quantity_defaults_to_one_and_price_from_amount(self, db_session: AsyncSession):
        csv = "Quote No,Line Description,Status,Line Amount\nQ-1,Valley iron,Accepted,\"$1,000\"\n"

        result = await import_pricing_csv(db_session, ORG, csv)

        pattern = await PricingPatternStore(db_session).lookup(ORG, "valley iron")
        assert result.total_line_items == 1
        assert pattern.avg_unit_price == 1000.0
        assert pattern.avg_quantity == 1.0

    @pytest.mark.asyncio
    async def test_unit_price_derived_from_amount_and_quantity(self, db_session: AsyncSession):
        csv = "Quote No,Line Description,Status,Line Quantity,Line Amount\nQ-1,Battens,Accepted,4,100\n"

        await import_pricing_csv(db_session, ORG, csv)

        pattern = await PricingPatternStore(db_session).lookup(ORG, "battens")
        assert pattern.avg_unit_price == 25.0

    @pytest.mark.asyncio
    async def test_empty_content_creates_no_session(self, db_session: AsyncSession):
        with pytest.raises(ValidationError, match="CSV content is required"):
            await import_pricing_csv(db_session, ORG, "   ")

        assert await ImportSessionRepository(db_session).list_sessions(ORG) == []

    @pytest.mark.asyncio
    async def test_header_only_fails_session(self, db_session: AsyncSession):
        with pytest.raises(ValidationError, match="empty or has no data rows") as exc_info:
            await import_pricing_csv(db_session, ORG, "Quote No,Line Description,Status\n")

        session = await ImportSessionRepository(db_session).get(exc_info.value.details["session_id"])
        assert session.status == ImportStatus.FAILED
        assert "no data rows" in session.error_message

    @pytest.mark.asyncio
    async def test_missing_status_column_fails_session(self, db_session: AsyncSession):
        csv = "Quote No,Line Description,Line Quantity\nQ-1,Ridge,1\n"

        with pytest.raises(ValidationError) as exc_info:
            await import_pricing_csv(db_session, ORG, csv, "bad.csv")

        error = exc_info.value
        assert error.message == "CSV missing required columns: Status"
        assert error.session_id is not None

        sessions = await ImportSessionRepository(db_session).list_sessions(ORG)
        assert len(sessions) == 1
        assert str(sessions[0].id) == error.session_id
        assert sessions[0].status == ImportStatus.FAILED
        assert sessions[0].error_message == "CSV missing required columns: Status"
        assert await PricingPatternStore(db_session).list_patterns(ORG) == []
