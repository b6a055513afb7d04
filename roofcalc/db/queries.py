"""Read queries feeding quote generation.

Every query is scoped by org_id and returns pydantic domain models, never ORM
rows, so the pricing engine stays independent of the session.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from roofcalc.db.models import (
    CatalogItemModel,
    MeasurementExtractionModel,
    QuoteModel,
    QuoteTemplateModel,
    TemplateMappingModel,
)
from roofcalc.models import (
    CatalogItem,
    MeasurementExtraction,
    QuoteTemplate,
    RecentQuote,
    RecentQuoteItem,
    TemplateMapping,
)

ACCEPTED_STATUS = "accepted"


async def get_extraction(
    session: AsyncSession, org_id: str, extraction_id: UUID
) -> MeasurementExtraction | None:
    """Get a measurement extraction belonging to the organization."""
    stmt = select(MeasurementExtractionModel).where(
        and_(
            MeasurementExtractionModel.id == extraction_id,
            MeasurementExtractionModel.org_id == org_id,
        )
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        return None

    return MeasurementExtraction(
        id=row.id,
        org_id=row.org_id,
        filename=row.filename,
        property_address=row.property_address,
        total_roof_area=row.total_roof_area,
        pitched_roof_area=row.pitched_roof_area,
        flat_roof_area=row.flat_roof_area,
        ridges=row.ridges,
        eaves=row.eaves,
        valleys=row.valleys,
        hips=row.hips,
        rakes=row.rakes,
        wall_flashing=row.wall_flashing,
        step_flashing=row.step_flashing,
        parapet_wall=row.parapet_wall,
        predominant_pitch=row.predominant_pitch,
        raw_extraction=row.raw_extraction or {},
    )


async def get_template(
    session: AsyncSession, org_id: str, template_id: UUID
) -> QuoteTemplate | None:
    stmt = select(QuoteTemplateModel).where(
        and_(QuoteTemplateModel.id == template_id, QuoteTemplateModel.org_id == org_id)
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    return template_from_row(row) if row is not None else None


async def get_template_mappings(
    session: AsyncSession, template_id: UUID, active_only: bool = False
) -> list[TemplateMapping]:
    """Get a template's mappings ordered by sort_order."""
    stmt = select(TemplateMappingModel).where(TemplateMappingModel.template_id == template_id)
    if active_only:
        stmt = stmt.where(TemplateMappingModel.is_active == True)  # noqa: E712
    stmt = stmt.order_by(TemplateMappingModel.sort_order)

    rows = (await session.execute(stmt)).scalars().all()
    return [mapping_from_row(row) for row in rows]


async def get_catalog_items(
    session: AsyncSession, org_id: str, active_only: bool = False, limit: int | None = None
) -> list[CatalogItem]:
    """Get the organization's product catalog (ordered by description)."""
    stmt = select(CatalogItemModel).where(CatalogItemModel.org_id == org_id)
    if active_only:
        stmt = stmt.where(CatalogItemModel.is_active == True)  # noqa: E712
    stmt = stmt.order_by(CatalogItemModel.description)
    if limit is not None:
        stmt = stmt.limit(limit)

    rows = (await session.execute(stmt)).scalars().all()
    return [
        CatalogItem(
            id=row.id,
            org_id=row.org_id,
            item_code=row.item_code,
            description=row.description,
            sell_price=row.sell_price or 0.0,
            cost_price=row.cost_price,
            unit=row.unit,
            category=row.category,
            is_active=row.is_active,
        )
        for row in rows
    ]


async def get_recent_accepted_quotes(
    session: AsyncSession, org_id: str, limit: int = 20
) -> list[RecentQuote]:
    """Get the most recently accepted quotes with their line items."""
    stmt = (
        select(QuoteModel)
        .where(and_(QuoteModel.org_id == org_id, QuoteModel.status == ACCEPTED_STATUS))
        .options(selectinload(QuoteModel.items))
        .order_by(QuoteModel.accepted_at.desc())
        .limit(limit)
    )

    rows = (await session.execute(stmt)).scalars().all()
    return [
        RecentQuote(
            id=row.id,
            total=row.total or 0.0,
            items=[
                RecentQuoteItem(
                    description=item.description,
                    item_code=item.item_code,
                    qty=item.qty or 0.0,
                    unit_cost=item.unit_cost or 0.0,
                )
                for item in sorted(row.items, key=lambda i: i.sort_order)
            ],
        )
        for row in rows
    ]


def template_from_row(row: QuoteTemplateModel) -> QuoteTemplate:
    return QuoteTemplate(
        id=row.id,
        org_id=row.org_id,
        name=row.name,
        description=row.description,
        waste_percent=row.waste_percent,
        labor_markup_percent=row.labor_markup_percent,
        is_default=row.is_default,
        is_active=row.is_active,
    )


def mapping_from_row(row: TemplateMappingModel) -> TemplateMapping:
    return TemplateMapping(
        id=row.id,
        template_id=row.template_id,
        measurement_type=row.measurement_type,
        calculation_type=row.calculation_type,
        coverage_per_unit=row.coverage_per_unit,
        custom_formula=row.custom_formula,
        apply_waste=row.apply_waste,
        product_id=row.product_id,
        product_description=row.product_description,
        unit_price=row.unit_price,
        labor_minutes_per_unit=row.labor_minutes_per_unit,
        labor_rate=row.labor_rate,
        sort_order=row.sort_order,
        is_active=row.is_active,
    )
