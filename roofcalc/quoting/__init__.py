"""Quote generation from roof measurements and mapping templates."""

from roofcalc.quoting.generator import QuoteGenerator, generate_quote_items
from roofcalc.quoting.templates import TemplateService, validate_mapping

__all__ = ["QuoteGenerator", "TemplateService", "generate_quote_items", "validate_mapping"]
