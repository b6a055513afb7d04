"""RoofCalc Pydantic models for type-safe data validation.

Python attributes are snake_case; every model serializes with camelCase
aliases (``model_dump(by_alias=True)``) so API payloads keep the field names
the quoting front end already consumes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases; accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MeasurementType(str, Enum):
    """Roof measurement a mapping is driven by."""

    ROOF_AREA = "roof_area"
    PITCHED_AREA = "pitched_area"
    FLAT_AREA = "flat_area"
    RIDGES = "ridges"
    EAVES = "eaves"
    VALLEYS = "valleys"
    HIPS = "hips"
    RAKES = "rakes"
    WALL_FLASHING = "wall_flashing"
    STEP_FLASHING = "step_flashing"
    PARAPET_WALL = "parapet_wall"
    FIXED_JOB = "fixed_job"


class CalculationType(str, Enum):
    """How a measurement value becomes a billable quantity."""

    PER_UNIT = "per_unit"
    PER_COVERAGE = "per_coverage"
    FIXED = "fixed"
    FORMULA = "formula"


class ImportStatus(str, Enum):
    """Status of a historical pricing import session."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# MeasurementType -> MeasurementExtraction attribute. FIXED_JOB has no field.
MEASUREMENT_FIELDS: dict[MeasurementType, str] = {
    MeasurementType.ROOF_AREA: "total_roof_area",
    MeasurementType.PITCHED_AREA: "pitched_roof_area",
    MeasurementType.FLAT_AREA: "flat_roof_area",
    MeasurementType.RIDGES: "ridges",
    MeasurementType.EAVES: "eaves",
    MeasurementType.VALLEYS: "valleys",
    MeasurementType.HIPS: "hips",
    MeasurementType.RAKES: "rakes",
    MeasurementType.WALL_FLASHING: "wall_flashing",
    MeasurementType.STEP_FLASHING: "step_flashing",
    MeasurementType.PARAPET_WALL: "parapet_wall",
}


class MeasurementExtraction(CamelModel):
    """Roof measurements extracted from an uploaded measurement report.

    Areas are m², linear measurements are m.
    """

    id: UUID = Field(default_factory=uuid4)
    org_id: str
    filename: str | None = None
    property_address: str | None = None

    total_roof_area: float | None = Field(default=None, ge=0)
    pitched_roof_area: float | None = Field(default=None, ge=0)
    flat_roof_area: float | None = Field(default=None, ge=0)
    ridges: float | None = Field(default=None, ge=0)
    eaves: float | None = Field(default=None, ge=0)
    valleys: float | None = Field(default=None, ge=0)
    hips: float | None = Field(default=None, ge=0)
    rakes: float | None = Field(default=None, ge=0)
    wall_flashing: float | None = Field(default=None, ge=0)
    step_flashing: float | None = Field(default=None, ge=0)
    parapet_wall: float | None = Field(default=None, ge=0)
    predominant_pitch: float | None = None

    raw_extraction: dict[str, Any] = Field(default_factory=dict)

    def value_for(self, measurement_type: MeasurementType) -> float | None:
        """Measurement value driving a mapping; fixed per-job costs always apply."""
        if measurement_type == MeasurementType.FIXED_JOB:
            return 1.0
        field_name = MEASUREMENT_FIELDS.get(measurement_type)
        return getattr(self, field_name) if field_name else None


class QuoteTemplate(CamelModel):
    """Named pricing configuration owned by an organization."""

    id: UUID = Field(default_factory=uuid4)
    org_id: str
    name: str
    description: str | None = None
    waste_percent: float = Field(default=10.0, ge=0, le=100)
    labor_markup_percent: float = Field(default=0.0, ge=0)
    is_default: bool = False
    is_active: bool = True


class TemplateMapping(CamelModel):
    """One measurement-to-line-item rule of a template."""

    id: UUID = Field(default_factory=uuid4)
    template_id: UUID
    measurement_type: MeasurementType
    calculation_type: CalculationType = CalculationType.PER_UNIT
    coverage_per_unit: float | None = 1.0
    custom_formula: str | None = None
    apply_waste: bool = True

    product_id: UUID | None = None
    product_description: str | None = None
    unit_price: float | None = 0.0

    labor_minutes_per_unit: float | None = 0.0
    labor_rate: float | None = None

    sort_order: float = 0
    is_active: bool = True


class CatalogItem(CamelModel):
    """Organization product catalog entry (read-only to the engine)."""

    id: UUID = Field(default_factory=uuid4)
    org_id: str
    item_code: str | None = None
    description: str
    sell_price: float = 0.0
    cost_price: float | None = None
    unit: str | None = None
    category: str | None = None
    is_active: bool = True


class PricingObservation(CamelModel):
    """A single historical line item about to be folded into a pattern."""

    description: str
    unit_price: float
    quantity: float = 1.0
    amount: float | None = None
    source: str = "tradify"

    # Product catalog linking (replace prior values when present)
    item_code: str | None = None
    cost_price: float | None = None
    markup_percentage: float | None = None
    unit: str | None = None
    product_id: UUID | None = None

    @property
    def effective_amount(self) -> float:
        if self.amount is not None:
            return self.amount
        return self.unit_price * self.quantity


class PricingPattern(CamelModel):
    """Aggregated historical price statistic for one normalized description."""

    id: UUID | None = None
    org_id: str
    source: str
    normalized_key: str
    item_description: str

    avg_unit_price: float
    min_unit_price: float | None = None
    max_unit_price: float | None = None
    avg_quantity: float = 0.0
    occurrence_count: int = 0
    total_revenue: float = 0.0

    item_code: str | None = None
    cost_price: float | None = None
    markup_percentage: float | None = None
    unit: str | None = None
    product_id: UUID | None = None

    last_updated_at: datetime | None = None


class PatternSnapshot(CamelModel):
    """Per-key entry of a consolidated historical context."""

    avg_price: float
    avg_qty: float
    count: int


class HistoricalContext(CamelModel):
    """Patterns + recent accepted quotes consolidated for one generation request."""

    quotes_analyzed: int = 0
    imported_patterns: int = 0
    avg_quote_total: float = 0.0
    avg_item_count: float = 0.0
    item_patterns: dict[str, PatternSnapshot] = Field(default_factory=dict)

    def lookup(self, key: str) -> PatternSnapshot | None:
        if not key:
            return None
        return self.item_patterns.get(key)


class RecentQuoteItem(CamelModel):
    description: str
    item_code: str | None = None
    qty: float = 0.0
    unit_cost: float = 0.0


class RecentQuote(CamelModel):
    """An accepted quote used as generation-time pricing history."""

    id: UUID
    total: float = 0.0
    items: list[RecentQuoteItem] = Field(default_factory=list)


class GeneratedQuoteItem(CamelModel):
    """Priced line item proposed for review; never persisted by the engine."""

    id: str = Field(default_factory=lambda: f"temp_{uuid4().hex[:12]}")
    description: str
    qty: float
    unit_cost: float
    total: float
    item_code: str | None = None
    cost_price: float | None = None
    product_id: UUID | None = None
    unit: str | None = None
    sort_order: float = 0
    measurement_type: MeasurementType
    measurement_value: float
    labor_cost: float | None = None
    historical_pricing: PatternSnapshot | None = None


class QuoteSummary(CamelModel):
    item_count: int
    subtotal: float
    waste_percent: float
    labor_markup: float


class HistoricalContextSummary(CamelModel):
    """Sanitized historical context returned alongside generated items."""

    quotes_analyzed: int
    imported_patterns: int
    avg_quote_total: float
    avg_item_count: float
    pricing_adjusted: bool


class TemplateRef(CamelModel):
    id: UUID
    name: str


class ExtractionRef(CamelModel):
    id: UUID
    address: str | None = None


class QuoteGenerationResult(CamelModel):
    items: list[GeneratedQuoteItem]
    template: TemplateRef
    extraction: ExtractionRef
    historical_context: HistoricalContextSummary | None = None
    summary: QuoteSummary


class ImportSession(CamelModel):
    """Summary of one historical pricing import."""

    id: UUID
    org_id: str
    filename: str
    source: str
    status: ImportStatus = ImportStatus.PROCESSING
    total_quotes: int = 0
    accepted_quotes: int = 0
    total_line_items: int = 0
    unique_patterns: int = 0
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


def _loose_float(v: Any) -> float | None:
    # The model occasionally returns "1,250.00" or "" instead of a number
    if v is None or isinstance(v, (int, float)):
        return v
    cleaned = str(v).replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


class ExtractedLineItem(CamelModel):
    """Line item returned by the AI quote extractor."""

    description: str | None = None
    quantity: float | None = None
    unit: str | None = None
    unit_price: float | None = None
    total: float | None = None
    category: str | None = None
    matched_product_code: str | None = None

    @field_validator("description", "unit", "category", "matched_product_code", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)

    @field_validator("quantity", "unit_price", "total", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float | None:
        return _loose_float(v)


class PdfQuoteExtraction(CamelModel):
    """Structured content of a historical PDF quote."""

    quote_number: str | None = None
    customer_name: str | None = None
    quote_date: str | None = None
    quote_total: float | None = None
    line_items: list[ExtractedLineItem] = Field(default_factory=list)

    @field_validator("quote_number", "customer_name", "quote_date", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)

    @field_validator("quote_total", mode="before")
    @classmethod
    def coerce_total(cls, v: Any) -> float | None:
        return _loose_float(v)

    @field_validator("line_items", mode="before")
    @classmethod
    def default_line_items(cls, v: Any) -> list:
        return v or []


class ExtractedDataSummary(CamelModel):
    quote_number: str | None = None
    customer_name: str | None = None
    line_item_count: int = 0


class PdfImportResult(CamelModel):
    session_id: UUID
    patterns_created: int
    extracted_data: ExtractedDataSummary
