"""Historical pricing ingestion (Tradify CSV exports and PDF quotes)."""

from roofcalc.ingestion.pdf_quotes import import_pricing_pdf
from roofcalc.ingestion.tradify import import_pricing_csv

__all__ = ["import_pricing_csv", "import_pricing_pdf"]
