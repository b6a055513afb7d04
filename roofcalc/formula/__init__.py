"""Safe formula evaluation for template mappings."""

from roofcalc.formula.evaluator import (
    MEASUREMENT_VARIABLE,
    Formula,
    compile_formula,
    evaluate,
    validate_formula,
)

__all__ = [
    "MEASUREMENT_VARIABLE",
    "Formula",
    "compile_formula",
    "evaluate",
    "validate_formula",
]
