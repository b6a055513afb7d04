"""Description canonicalization for pricing pattern matching."""

from roofcalc.canonical.normalize import normalize_item_code, normalize_key

__all__ = ["normalize_key", "normalize_item_code"]
