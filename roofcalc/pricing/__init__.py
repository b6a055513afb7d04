"""Historical pricing patterns: aggregation, persistence and context building."""

from roofcalc.pricing.history import record_quote_items
from roofcalc.pricing.patterns import apply_observation, build_historical_context, round2
from roofcalc.pricing.store import ImportSessionRepository, PricingPatternStore

__all__ = [
    "ImportSessionRepository",
    "PricingPatternStore",
    "apply_observation",
    "build_historical_context",
    "record_quote_items",
    "round2",
]
