"""Quote generation routes.

Routes:
- POST /ai/generate-quote-items - Price a template against a roof measurement extraction
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from roofcalc.db.connection import get_session
from roofcalc.quoting.generator import QuoteGenerator
from roofcalc.web.dependencies import ai_rate_limit, get_org_id
from roofcalc.web.models import GenerateQuoteItemsRequest

router = APIRouter(tags=["quotes"])


@router.post("/ai/generate-quote-items", dependencies=[Depends(ai_rate_limit)])
async def generate_quote_items(
    body: GenerateQuoteItemsRequest,
    org_id: str = Depends(get_org_id),
):
    """Generate priced line items for review.

    Items are not saved; the caller reviews them and creates the quote.
    """
    async with get_session() as session:
        result = await QuoteGenerator(session).generate(
            org_id,
            body.extraction_id,
            body.template_id,
            use_historical_context=body.use_historical_context,
        )

    return result.model_dump(mode="json", by_alias=True)
