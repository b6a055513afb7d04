"""Historical pricing routes: imports, pattern management and AI templates.

Routes:
- POST   /ml/import-tradify-csv          - Import a Tradify quote export
- DELETE /ml/clear-tradify-csv           - Remove Tradify patterns
- POST   /ml/import-pdf-quote            - Import one historical PDF quote
- GET    /ml/pricing-patterns            - List patterns (most frequent first)
- PATCH  /ml/pricing-patterns/{id}       - Manual overrides on a pattern
- DELETE /ml/pricing-patterns            - Remove all patterns
- GET    /ml/import-sessions             - Import audit trail
- POST   /ml/generate-template           - AI template from pricing history
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from roofcalc.config import get_config
from roofcalc.db.connection import get_session
from roofcalc.errors import ValidationError
from roofcalc.ingestion import import_pricing_csv, import_pricing_pdf
from roofcalc.intelligence.template_suggester import TemplateSuggester
from roofcalc.pricing.store import ImportSessionRepository, PricingPatternStore
from roofcalc.ingestion.locks import ImportLockRegistry
from roofcalc.web.dependencies import ai_rate_limit, get_import_locks, get_org_id
from roofcalc.web.models import (
    GenerateTemplateRequest,
    ImportCsvRequest,
    ImportPdfRequest,
    PatternOverrideRequest,
)

router = APIRouter(prefix="/ml", tags=["pricing"])


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


@router.post("/import-tradify-csv")
async def import_tradify_csv(
    body: ImportCsvRequest,
    org_id: str = Depends(get_org_id),
    locks: ImportLockRegistry = Depends(get_import_locks),
):
    if not body.csv_content:
        raise ValidationError("CSV content is required")

    async with get_session() as session:
        result = await import_pricing_csv(
            session, org_id, body.csv_content, body.filename, locks=locks
        )

    return {
        "success": True,
        "session": {
            "id": str(result.id),
            "totalQuotes": result.total_quotes,
            "acceptedQuotes": result.accepted_quotes,
            "totalLineItems": result.total_line_items,
            "uniquePatterns": result.unique_patterns,
        },
    }


@router.delete("/clear-tradify-csv")
async def clear_tradify_csv(org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        deleted = await PricingPatternStore(session).clear(
            org_id, get_config().imports.tradify_source
        )
    return {"success": True, "message": "CSV pricing data cleared", "deleted": deleted}


@router.post("/import-pdf-quote", dependencies=[Depends(ai_rate_limit)])
async def import_pdf_quote(
    body: ImportPdfRequest,
    org_id: str = Depends(get_org_id),
    locks: ImportLockRegistry = Depends(get_import_locks),
):
    if not body.pdf_base64 or not body.filename:
        raise ValidationError("Missing PDF data or filename")

    async with get_session() as session:
        result = await import_pricing_pdf(
            session, org_id, body.pdf_base64, body.filename, locks=locks
        )

    return {"success": True, **_dump(result)}


@router.get("/pricing-patterns")
async def list_pricing_patterns(
    org_id: str = Depends(get_org_id),
    source: str | None = Query(default=None),
):
    async with get_session() as session:
        patterns = await PricingPatternStore(session).list_patterns(org_id, source)
    return [_dump(p) for p in patterns]


@router.patch("/pricing-patterns/{pattern_id}")
async def update_pricing_pattern(
    pattern_id: UUID,
    body: PatternOverrideRequest,
    org_id: str = Depends(get_org_id),
):
    async with get_session() as session:
        pattern = await PricingPatternStore(session).update_overrides(
            org_id, pattern_id, **body.model_dump(exclude_unset=True)
        )
    return _dump(pattern)


@router.delete("/pricing-patterns")
async def clear_pricing_patterns(org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        deleted = await PricingPatternStore(session).clear(org_id)
    return {"success": True, "message": "All pricing patterns cleared", "deleted": deleted}


@router.get("/import-sessions")
async def list_import_sessions(org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        sessions = await ImportSessionRepository(session).list_sessions(org_id)
    return [_dump(s) for s in sessions]


@router.post("/generate-template", dependencies=[Depends(ai_rate_limit)])
async def generate_template(body: GenerateTemplateRequest, org_id: str = Depends(get_org_id)):
    async with get_session() as session:
        template, mappings, analyzed = await TemplateSuggester(session).suggest(
            org_id, body.template_name
        )

    return {
        "success": True,
        "template": _dump(template),
        "mappings": [_dump(m) for m in mappings],
        "patternsAnalyzed": analyzed,
        "mappingsCreated": len(mappings),
    }
