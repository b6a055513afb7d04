"""Quote template and mapping management.

Mappings are validated when saved (coverage range, formula syntax) so the
generator can trust them; it still falls back safely if bad data slips in.
"""

from __future__ import annotations

import logging
import math
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.db.models import QuoteTemplateModel, TemplateMappingModel
from roofcalc.db.queries import get_template_mappings, mapping_from_row, template_from_row
from roofcalc.errors import NotFoundError, ValidationError
from roofcalc.formula import validate_formula
from roofcalc.models import CalculationType, QuoteTemplate, TemplateMapping

logger = logging.getLogger(__name__)

MAX_COVERAGE_PER_UNIT = 1000.0

TEMPLATE_FIELDS = frozenset(
    {"name", "description", "waste_percent", "labor_markup_percent", "is_default", "is_active"}
)
MAPPING_FIELDS = frozenset(
    {
        "measurement_type",
        "calculation_type",
        "coverage_per_unit",
        "custom_formula",
        "apply_waste",
        "product_id",
        "product_description",
        "unit_price",
        "labor_minutes_per_unit",
        "labor_rate",
        "sort_order",
        "is_active",
    }
)


def validate_mapping(mapping: TemplateMapping) -> None:
    """Check a mapping before it is saved.

    Raises:
        ValidationError: Coverage outside (0, 1000], bad formula or negative prices
    """
    coverage = mapping.coverage_per_unit
    if coverage is not None and (
        not math.isfinite(coverage) or coverage <= 0 or coverage > MAX_COVERAGE_PER_UNIT
    ):
        raise ValidationError(
            f"coveragePerUnit must be greater than 0 and at most {MAX_COVERAGE_PER_UNIT:g}"
        )

    if mapping.calculation_type == CalculationType.FORMULA:
        validate_formula(mapping.custom_formula)

    if mapping.unit_price is not None and mapping.unit_price < 0:
        raise ValidationError("unitPrice must be >= 0")
    if mapping.labor_minutes_per_unit is not None and mapping.labor_minutes_per_unit < 0:
        raise ValidationError("laborMinutesPerUnit must be >= 0")
    if mapping.labor_rate is not None and mapping.labor_rate < 0:
        raise ValidationError("laborRate must be >= 0")


def _check_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")


def _build(model_cls, **values):
    try:
        return model_cls(**values)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e


class TemplateService:
    """CRUD for quote templates and their mappings, scoped by organization."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Templates

    async def _template_row(self, org_id: str, template_id: UUID) -> QuoteTemplateModel:
        stmt = select(QuoteTemplateModel).where(
            and_(QuoteTemplateModel.id == template_id, QuoteTemplateModel.org_id == org_id)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Template {template_id} not found")
        return row

    async def list_templates(self, org_id: str, active_only: bool = False) -> list[QuoteTemplate]:
        stmt = select(QuoteTemplateModel).where(QuoteTemplateModel.org_id == org_id)
        if active_only:
            stmt = stmt.where(QuoteTemplateModel.is_active == True)  # noqa: E712
        stmt = stmt.order_by(QuoteTemplateModel.is_default.desc(), QuoteTemplateModel.name)
        rows = (await self.session.execute(stmt)).scalars().all()
        return [template_from_row(row) for row in rows]

    async def get_template(self, org_id: str, template_id: UUID) -> QuoteTemplate:
        return template_from_row(await self._template_row(org_id, template_id))

    async def create_template(self, org_id: str, **fields) -> QuoteTemplate:
        """Create a template.

        Raises:
            ValidationError: Missing name, unknown fields or out-of-range percentages
        """
        _check_fields(fields, TEMPLATE_FIELDS)
        if not (fields.get("name") or "").strip():
            raise ValidationError("Template name is required")

        template = _build(QuoteTemplate, org_id=org_id, **fields)
        if template.is_default:
            await self._clear_default(org_id)

        row = QuoteTemplateModel(
            id=template.id,
            org_id=org_id,
            name=template.name.strip(),
            description=template.description,
            waste_percent=template.waste_percent,
            labor_markup_percent=template.labor_markup_percent,
            is_default=template.is_default,
            is_active=template.is_active,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info(f"Created quote template {row.id} '{row.name}' for org={org_id}")
        return template_from_row(row)

    async def update_template(self, org_id: str, template_id: UUID, **fields) -> QuoteTemplate:
        _check_fields(fields, TEMPLATE_FIELDS)
        row = await self._template_row(org_id, template_id)

        merged = _build(QuoteTemplate, **{**template_from_row(row).model_dump(), **fields})
        if merged.is_default and not row.is_default:
            await self._clear_default(org_id)

        for name in fields:
            setattr(row, name, getattr(merged, name))
        await self.session.flush()
        return template_from_row(row)

    async def delete_template(self, org_id: str, template_id: UUID) -> None:
        row = await self._template_row(org_id, template_id)
        await self.session.execute(
            delete(TemplateMappingModel).where(TemplateMappingModel.template_id == row.id)
        )
        await self.session.execute(delete(QuoteTemplateModel).where(QuoteTemplateModel.id == row.id))
        logger.info(f"Deleted quote template {template_id} for org={org_id}")

    async def _clear_default(self, org_id: str) -> None:
        await self.session.execute(
            update(QuoteTemplateModel)
            .where(QuoteTemplateModel.org_id == org_id)
            .values(is_default=False)
        )

    # Mappings

    async def list_mappings(self, org_id: str, template_id: UUID) -> list[TemplateMapping]:
        await self._template_row(org_id, template_id)
        return await get_template_mappings(self.session, template_id)

    async def _mapping_row(self, org_id: str, mapping_id: UUID) -> TemplateMappingModel:
        stmt = (
            select(TemplateMappingModel)
            .join(QuoteTemplateModel, TemplateMappingModel.template_id == QuoteTemplateModel.id)
            .where(
                and_(TemplateMappingModel.id == mapping_id, QuoteTemplateModel.org_id == org_id)
            )
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Template mapping {mapping_id} not found")
        return row

    async def create_mapping(self, org_id: str, template_id: UUID, **fields) -> TemplateMapping:
        """Add a mapping to a template.

        Raises:
            NotFoundError: Template does not belong to the organization
            ValidationError: Invalid mapping fields
        """
        _check_fields(fields, MAPPING_FIELDS)
        await self._template_row(org_id, template_id)

        mapping = _build(TemplateMapping, template_id=template_id, **fields)
        validate_mapping(mapping)

        row = TemplateMappingModel(
            id=mapping.id,
            template_id=template_id,
            **{
                name: getattr(mapping, name).value
                if name in ("measurement_type", "calculation_type")
                else getattr(mapping, name)
                for name in MAPPING_FIELDS
            },
        )
        self.session.add(row)
        await self.session.flush()
        return mapping_from_row(row)

    async def update_mapping(self, org_id: str, mapping_id: UUID, **fields) -> TemplateMapping:
        _check_fields(fields, MAPPING_FIELDS)
        row = await self._mapping_row(org_id, mapping_id)

        merged = _build(TemplateMapping, **{**mapping_from_row(row).model_dump(), **fields})
        validate_mapping(merged)

        for name in fields:
            value = getattr(merged, name)
            if name in ("measurement_type", "calculation_type"):
                value = value.value
            setattr(row, name, value)
        await self.session.flush()
        return mapping_from_row(row)

    async def delete_mapping(self, org_id: str, mapping_id: UUID) -> None:
        row = await self._mapping_row(org_id, mapping_id)
        await self.session.execute(
            delete(TemplateMappingModel).where(TemplateMappingModel.id == row.id)
        )
