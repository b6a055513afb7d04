"""RoofCalc web route modules.

Each module exports a ``router`` (APIRouter) that ``roofcalc.web.app``
includes. Routes open their own session with ``async with get_session()``
and let RoofCalcError propagate to the app's exception handler.

Usage:
    from roofcalc.web.routes import pricing
    app.include_router(pricing.router)
"""

from roofcalc.web.routes import health, pricing, quotes, templates

__all__ = ["health", "pricing", "quotes", "templates"]
