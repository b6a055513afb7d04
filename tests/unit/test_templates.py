"""Tests for quote template and mapping management."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.errors import NotFoundError, ValidationError
from roofcalc.models import CalculationType, MeasurementType
from roofcalc.quoting.templates import TemplateService, validate_mapping

ORG = "test-org"


class TestValidateMapping:
    @pytest.mark.parametrize("coverage", [0.0, -1.0, 1000.5, float("inf")])
    def test_coverage_out_of_range(self, make_mapping, coverage):
        with pytest.raises(ValidationError, match="coveragePerUnit"):
            validate_mapping(make_mapping(coverage_per_unit=coverage))

    @pytest.mark.parametrize("coverage", [None, 0.01, 9.29, 1000.0])
    def test_coverage_in_range(self, make_mapping, coverage):
        validate_mapping(make_mapping(coverage_per_unit=coverage))

    def test_formula_checked_for_formula_type(self, make_mapping):
        with pytest.raises(ValidationError, match="Invalid formula"):
            validate_mapping(
                make_mapping(calculation_type=CalculationType.FORMULA, custom_formula="measurement *")
            )

    def test_formula_ignored_for_other_types(self, make_mapping):
        validate_mapping(make_mapping(custom_formula="not a formula"))

    def test_negative_price(self, make_mapping):
        with pytest.raises(ValidationError, match="unitPrice"):
            validate_mapping(make_mapping(unit_price=-1))


class TestTemplateService:
    @pytest.mark.asyncio
    async def test_create_template_defaults(self, db_session: AsyncSession):
        template = await TemplateService(db_session).create_template(ORG, name="  Tile re-roof ")

        assert template.name == "Tile re-roof"
        assert template.waste_percent == 10.0
        assert template.labor_markup_percent == 0.0
        assert template.is_active

    @pytest.mark.asyncio
    async def test_name_required(self, db_session: AsyncSession):
        with pytest.raises(ValidationError, match="Template name is required"):
            await TemplateService(db_session).create_template(ORG, name="  ")

    @pytest.mark.asyncio
    async def test_waste_percent_range(self, db_session: AsyncSession):
        with pytest.raises(ValidationError):
            await TemplateService(db_session).create_template(ORG, name="Bad", waste_percent=150)

    @pytest.mark.asyncio
    async def test_unknown_field(self, db_session: AsyncSession):
        with pytest.raises(ValidationError, match="Unknown fields: colour"):
            await TemplateService(db_session).create_template(ORG, name="T", colour="red")

    @pytest.mark.asyncio
    async def test_single_default_per_org(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        first = await service.create_template(ORG, name="First", is_default=True)
        second = await service.create_template(ORG, name="Second", is_default=True)
        other = await service.create_template("other-org", name="Other", is_default=True)

        assert not (await service.get_template(ORG, first.id)).is_default
        assert (await service.get_template(ORG, second.id)).is_default
        assert (await service.get_template("other-org", other.id)).is_default

        listed = await service.list_templates(ORG)
        assert [t.name for t in listed] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_update_template(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")

        updated = await service.update_template(ORG, template.id, waste_percent=15, is_active=False)

        assert updated.waste_percent == 15
        assert not updated.is_active
        assert await service.list_templates(ORG, active_only=True) == []

    @pytest.mark.asyncio
    async def test_template_scoped_by_org(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")

        with pytest.raises(NotFoundError):
            await service.get_template("other-org", template.id)

    @pytest.mark.asyncio
    async def test_mapping_lifecycle(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")

        mapping = await service.create_mapping(
            ORG,
            template.id,
            measurement_type=MeasurementType.RIDGES,
            calculation_type=CalculationType.PER_COVERAGE,
            coverage_per_unit=2.4,
            product_description="Ridge capping",
            unit_price=14.5,
            sort_order=2,
        )
        await service.create_mapping(
            ORG,
            template.id,
            measurement_type="fixed_job",
            calculation_type="fixed",
            product_description="Scaffold",
            unit_price=850,
            sort_order=1,
        )

        mappings = await service.list_mappings(ORG, template.id)
        assert [m.product_description for m in mappings] == ["Scaffold", "Ridge capping"]
        assert mappings[1].measurement_type == MeasurementType.RIDGES
        assert mappings[1].calculation_type == CalculationType.PER_COVERAGE

        updated = await service.update_mapping(
            ORG,
            mapping.id,
            calculation_type=CalculationType.FORMULA,
            custom_formula="measurement / 2.4 + 1",
        )
        assert updated.calculation_type == CalculationType.FORMULA
        assert updated.coverage_per_unit == 2.4

        await service.delete_mapping(ORG, mapping.id)
        assert len(await service.list_mappings(ORG, template.id)) == 1

    @pytest.mark.asyncio
    async def test_mapping_validation_on_create(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")

        with pytest.raises(ValidationError):
            await service.create_mapping(
                ORG, template.id, measurement_type="roof_area", coverage_per_unit=0
            )
        with pytest.raises(ValidationError, match="must reference 'measurement'"):
            await service.create_mapping(
                ORG,
                template.id,
                measurement_type="roof_area",
                calculation_type="formula",
                custom_formula="42",
            )
        with pytest.raises(ValidationError):
            await service.create_mapping(ORG, template.id, measurement_type="chimneys")

    @pytest.mark.asyncio
    async def test_mapping_validation_on_update(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")
        mapping = await service.create_mapping(ORG, template.id, measurement_type="eaves")

        with pytest.raises(ValidationError):
            await service.update_mapping(ORG, mapping.id, calculation_type="formula")

    @pytest.mark.asyncio
    async def test_mappings_scoped_by_template_org(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")
        mapping = await service.create_mapping(ORG, template.id, measurement_type="eaves")

        with pytest.raises(NotFoundError):
            await service.update_mapping("other-org", mapping.id, unit_price=1)
        with pytest.raises(NotFoundError):
            await service.delete_mapping("other-org", mapping.id)
        with pytest.raises(NotFoundError):
            await service.create_mapping("other-org", template.id, measurement_type="eaves")
        with pytest.raises(NotFoundError):
            await service.list_mappings(ORG, uuid4())

    @pytest.mark.asyncio
    async def test_delete_template_removes_mappings(self, db_session: AsyncSession):
        service = TemplateService(db_session)
        template = await service.create_template(ORG, name="Metal")
        mapping = await service.create_mapping(ORG, template.id, measurement_type="eaves")

        await service.delete_template(ORG, template.id)

        assert await service.list_templates(ORG) == []
        with pytest.raises(NotFoundError):
            await service.update_mapping(ORG, mapping.id, unit_price=1)
