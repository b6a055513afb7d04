"""SQLAlchemy async database models for RoofCalc.

Every table is scoped by org_id. Booleans are real booleans; money and
measurements are floats (quotes are reviewed by a person before they are sent).
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class QuoteTemplateModel(Base):
    """Named quote template with global waste/labor settings."""

    __tablename__ = "quote_templates"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    waste_percent: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    labor_markup_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    mappings: Mapped[list[TemplateMappingModel]] = relationship(
        back_populates="template", cascade="all, delete-orphan"
    )


class TemplateMappingModel(Base):
    """Measurement-to-product rule belonging to a template."""

    __tablename__ = "template_mappings"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_templates.id", ondelete="CASCADE"), nullable=False
    )

    measurement_type: Mapped[str] = mapped_column(Text, nullable=False)
    calculation_type: Mapped[str] = mapped_column(Text, nullable=False, default="per_unit")
    coverage_per_unit: Mapped[float | None] = mapped_column(Float, default=1.0)
    custom_formula: Mapped[str | None] = mapped_column(Text)
    apply_waste: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Catalog link, with fallbacks when no product is linked
    product_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    product_description: Mapped[str | None] = mapped_column(Text)
    unit_price: Mapped[float | None] = mapped_column(Float, default=0.0)

    # Labor component
    labor_minutes_per_unit: Mapped[float | None] = mapped_column(Float, default=0.0)
    labor_rate: Mapped[float | None] = mapped_column(Float, default=75.0)

    sort_order: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    template: Mapped[QuoteTemplateModel] = relationship(back_populates="mappings")

    __table_args__ = (Index("idx_template_mappings_template", "template_id", "sort_order"),)


class CatalogItemModel(Base):
    """Organization product catalog item."""

    __tablename__ = "catalog_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    item_code: Mapped[str | None] = mapped_column(Text, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    sell_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_price: Mapped[float | None] = mapped_column(Float)
    unit: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class MeasurementExtractionModel(Base):
    """Roof measurements extracted from a measurement report (cached AI output)."""

    __tablename__ = "measurement_extractions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    filename: Mapped[str | None] = mapped_column(Text)
    property_address: Mapped[str | None] = mapped_column(Text)

    # Areas (m²)
    total_roof_area: Mapped[float | None] = mapped_column(Float)
    pitched_roof_area: Mapped[float | None] = mapped_column(Float)
    flat_roof_area: Mapped[float | None] = mapped_column(Float)
    predominant_pitch: Mapped[float | None] = mapped_column(Float)

    # Linear measurements (m)
    ridges: Mapped[float | None] = mapped_column(Float)
    eaves: Mapped[float | None] = mapped_column(Float)
    valleys: Mapped[float | None] = mapped_column(Float)
    hips: Mapped[float | None] = mapped_column(Float)
    rakes: Mapped[float | None] = mapped_column(Float)
    wall_flashing: Mapped[float | None] = mapped_column(Float)
    step_flashing: Mapped[float | None] = mapped_column(Float)
    parapet_wall: Mapped[float | None] = mapped_column(Float)

    raw_extraction: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    extracted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


class PricingPatternModel(Base):
    """Historical pricing aggregate per (org, source, normalized description)."""

    __tablename__ = "pricing_patterns"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="tradify")
    item_description: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_key: Mapped[str] = mapped_column(Text, nullable=False)

    avg_unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    min_unit_price: Mapped[float | None] = mapped_column(Float)
    max_unit_price: Mapped[float | None] = mapped_column(Float)
    avg_quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Product catalog linking
    product_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    item_code: Mapped[str | None] = mapped_column(Text)
    cost_price: Mapped[float | None] = mapped_column(Float)
    markup_percentage: Mapped[float | None] = mapped_column(Float)
    unit: Mapped[str | None] = mapped_column(Text)

    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("org_id", "source", "normalized_key", name="uq_pricing_pattern_key"),
        Index("idx_pricing_patterns_lookup", "org_id", "normalized_key"),
    )


class ImportSessionModel(Base):
    """Audit record for one CSV/PDF pricing import."""

    __tablename__ = "import_sessions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="tradify")

    total_quotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_quotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_line_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_patterns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="processing")
    error_message: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class QuoteModel(Base):
    """Customer quote (only the fields pricing history needs)."""

    __tablename__ = "quotes"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    quote_number: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    items: Mapped[list[QuoteItemModel]] = relationship(
        back_populates="quote", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_quotes_org_status_accepted", "org_id", "status", "accepted_at"),)


class QuoteItemModel(Base):
    __tablename__ = "quote_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    quote_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    item_code: Mapped[str | None] = mapped_column(Text)
    qty: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    unit_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_price: Mapped[float | None] = mapped_column(Float)
    sort_order: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    quote: Mapped[QuoteModel] = relationship(back_populates="items")
