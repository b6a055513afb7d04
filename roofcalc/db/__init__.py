"""Database layer for RoofCalc with async SQLAlchemy."""

from roofcalc.db.connection import close_db, get_session, init_db
from roofcalc.db.models import (
    Base,
    CatalogItemModel,
    ImportSessionModel,
    MeasurementExtractionModel,
    PricingPatternModel,
    QuoteItemModel,
    QuoteModel,
    QuoteTemplateModel,
    TemplateMappingModel,
)

__all__ = [
    "Base",
    "CatalogItemModel",
    "ImportSessionModel",
    "MeasurementExtractionModel",
    "PricingPatternModel",
    "QuoteItemModel",
    "QuoteModel",
    "QuoteTemplateModel",
    "TemplateMappingModel",
    "close_db",
    "get_session",
    "init_db",
]
