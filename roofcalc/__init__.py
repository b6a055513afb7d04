"""RoofCalc - measurement-driven quote pricing for roofing contractors."""

__version__ = "0.1.0"
