"""HTTP surface for RoofCalc (FastAPI)."""
