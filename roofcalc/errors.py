"""RoofCalc error taxonomy.

Every error raised out of the engine derives from RoofCalcError so callers
(web routes, CLI) can map them to a response in one place.
"""

from __future__ import annotations

from typing import Any


class RoofCalcError(Exception):
    """Base exception for RoofCalc errors.

    Attributes:
        message: Human-readable error message
        details: Additional error context (e.g. the failed import session id)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def session_id(self) -> str | None:
        """Import session id recorded alongside the failure, if any."""
        value = self.details.get("session_id")
        return str(value) if value is not None else None


class ValidationError(RoofCalcError):
    """Bad or missing required input (missing ids, malformed CSV header, bad PDF data)."""


class NotFoundError(RoofCalcError):
    """Template, extraction, mapping set or pattern could not be located."""


class EvaluationError(RoofCalcError):
    """Formula could not be tokenized, parsed or evaluated.

    Raised only by roofcalc.formula; the resolver always recovers from it.
    """


class ExternalServiceError(RoofCalcError):
    """Upstream AI service failed, is not configured, or returned garbage."""


class AIServiceTimeoutError(ExternalServiceError):
    """Upstream AI service did not answer within the request timeout."""


class ParseError(RoofCalcError):
    """PDF text extraction exhausted every available parser."""
