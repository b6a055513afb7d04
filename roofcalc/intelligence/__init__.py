"""AI-backed helpers: PDF quote line-item extraction, template suggestion
and the in-memory rate limiter guarding them."""

from roofcalc.intelligence.quote_extractor import QuoteExtractor, QuoteLineItemExtractor
from roofcalc.intelligence.rate_limiter import RateLimiter
from roofcalc.intelligence.template_suggester import TemplateSuggester

__all__ = ["QuoteExtractor", "QuoteLineItemExtractor", "RateLimiter", "TemplateSuggester"]
