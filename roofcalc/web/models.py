"""Request bodies for the RoofCalc HTTP API (camelCase on the wire)."""

from __future__ import annotations

from uuid import UUID

from pydantic import Field

from roofcalc.models import CalculationType, CamelModel, MeasurementType


class GenerateQuoteItemsRequest(CamelModel):
    extraction_id: UUID | None = None
    template_id: UUID | None = None
    use_historical_context: bool = True


class ImportCsvRequest(CamelModel):
    csv_content: str | None = None
    filename: str | None = None


class ImportPdfRequest(CamelModel):
    pdf_base64: str | None = None
    filename: str | None = None


class PatternOverrideRequest(CamelModel):
    """Manual edits to a pricing pattern; omitted fields are left unchanged."""

    item_code: str | None = None
    cost_price: float | None = None
    markup_percentage: float | None = None
    unit: str | None = None
    avg_unit_price: float | None = Field(default=None, ge=0)
    product_id: UUID | None = None


class GenerateTemplateRequest(CamelModel):
    template_name: str | None = None


class TemplateRequest(CamelModel):
    name: str | None = None
    description: str | None = None
    waste_percent: float | None = None
    labor_markup_percent: float | None = None
    is_default: bool | None = None
    is_active: bool | None = None


class MappingRequest(CamelModel):
    measurement_type: MeasurementType | None = None
    calculation_type: CalculationType | None = None
    coverage_per_unit: float | None = None
    custom_formula: str | None = None
    apply_waste: bool | None = None
    product_id: UUID | None = None
    product_description: str | None = None
    unit_price: float | None = None
    labor_minutes_per_unit: float | None = None
    labor_rate: float | None = None
    sort_order: float | None = None
    is_active: bool | None = None
