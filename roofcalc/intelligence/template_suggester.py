"""AI-suggested quote templates built from an organization's pricing history."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

import openai
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.config import LLMConfig, get_config
from roofcalc.db.queries import get_catalog_items
from roofcalc.errors import ExternalServiceError, RoofCalcError, ValidationError
from roofcalc.intelligence.quote_extractor import build_client, complete_json
from roofcalc.models import (
    CalculationType,
    CatalogItem,
    MeasurementType,
    PricingPattern,
    QuoteTemplate,
    TemplateMapping,
)
from roofcalc.pricing.store import PricingPatternStore
from roofcalc.quoting.templates import TemplateService

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "AI Generated Template"
MAX_CATALOG_PRODUCTS = 200
MAX_DESCRIPTION_LENGTH = 500
MIN_COVERAGE = 0.01
MAX_COVERAGE = 1000.0
SUGGESTION_LABOR_RATE = 75.0

MEASUREMENT_GUIDE = {
    MeasurementType.ROOF_AREA: ("Total Roof Area", "m²", "membrane, underlayment, insulation, sheets"),
    MeasurementType.PITCHED_AREA: ("Pitched Roof Area", "m²", "metal roofing, tiles, shingles"),
    MeasurementType.FLAT_AREA: ("Flat Roof Area", "m²", "EPDM, TPO, waterproofing"),
    MeasurementType.RIDGES: ("Ridges", "m", "ridge caps, ridge vents"),
    MeasurementType.EAVES: ("Eaves", "m", "gutters, fascia, drip edge"),
    MeasurementType.VALLEYS: ("Valleys", "m", "valley flashing"),
    MeasurementType.HIPS: ("Hips", "m", "hip caps"),
    MeasurementType.RAKES: ("Rakes", "m", "rake trim, barge boards"),
    MeasurementType.WALL_FLASHING: ("Wall Flashing", "m", "apron flashing where roof meets walls"),
    MeasurementType.STEP_FLASHING: ("Step Flashing", "m", "stepped flashing along walls and chimneys"),
    MeasurementType.PARAPET_WALL: ("Parapet Wall", "m", "coping, counter flashing"),
    MeasurementType.FIXED_JOB: (
        "Fixed Job Cost",
        "job",
        "crane hire, scaffolding, EWP hire, solar panel removal, site cleanup, permits",
    ),
}

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def parse_suggestions(content: str) -> list[dict[str, Any]]:
    """Parse the model's JSON array, tolerating code fences and truncation.

    A response cut off mid-array is repaired by closing it after the last
    complete object.

    Raises:
        ExternalServiceError: If no JSON array can be recovered
    """
    cleaned = content.strip()
    fenced = _CODE_FENCE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    elif cleaned.startswith("```"):
        # Opening fence without a closing one (truncated response)
        cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)

    if not cleaned.endswith("]"):
        last_object = cleaned.rfind("}")
        if last_object > 0:
            cleaned = cleaned[: last_object + 1] + "]"

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Template suggestion is not valid JSON: {content[:200]!r}")
        raise ExternalServiceError("AI returned invalid response format") from e

    if isinstance(parsed, dict):
        # json_object mode wraps the array in a key
        parsed = next((v for v in parsed.values() if isinstance(v, list)), [])
    if not isinstance(parsed, list):
        raise ExternalServiceError("AI returned invalid response format")
    return [entry for entry in parsed if isinstance(entry, dict)]


def is_valid_suggestion(entry: dict[str, Any]) -> bool:
    if entry.get("measurementType") not in {m.value for m in MeasurementType}:
        return False
    description = entry.get("productDescription")
    if not description or not isinstance(description, str):
        return False
    calculation = entry.get("calculationType")
    if calculation and calculation not in {c.value for c in CalculationType}:
        return False
    coverage = entry.get("coveragePerUnit")
    if coverage is not None and (
        isinstance(coverage, bool) or not isinstance(coverage, (int, float)) or coverage <= 0
    ):
        return False
    return True


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def suggestion_to_mapping_fields(
    entry: dict[str, Any], valid_product_ids: set[str], sort_order: int
) -> dict[str, Any]:
    """Mapping fields for one validated suggestion (clamped and sanitized)."""
    product_id = entry.get("productId")
    coverage = _number(entry.get("coveragePerUnit"), 1.0) or 1.0
    return {
        "measurement_type": entry["measurementType"],
        "calculation_type": entry.get("calculationType") or CalculationType.PER_UNIT.value,
        "coverage_per_unit": max(MIN_COVERAGE, min(MAX_COVERAGE, coverage)),
        "custom_formula": entry.get("customFormula") or None,
        "apply_waste": bool(entry.get("applyWaste")),
        "product_id": (
            product_id if isinstance(product_id, str) and product_id in valid_product_ids else None
        ),
        "product_description": entry["productDescription"][:MAX_DESCRIPTION_LENGTH],
        "unit_price": max(0.0, _number(entry.get("unitPrice"), 0.0)),
        "labor_minutes_per_unit": 0.0,
        "labor_rate": SUGGESTION_LABOR_RATE,
        "sort_order": sort_order,
        "is_active": True,
    }


class TemplateSuggester:
    """Asks the LLM to categorize historical line items into a quote template."""

    def __init__(
        self,
        session: AsyncSession,
        client: openai.AsyncOpenAI | None = None,
        llm: LLMConfig | None = None,
    ):
        self.session = session
        self.llm = llm or get_config().llm
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = build_client(self.llm)
        return self._client

    def build_prompt(self, patterns: Sequence[PricingPattern], catalog: Sequence[CatalogItem]) -> str:
        categories = "\n".join(
            f"- {mt.value}: {label} ({unit}) - {hint}"
            for mt, (label, unit, hint) in MEASUREMENT_GUIDE.items()
        )
        history = json.dumps(
            [
                {
                    "description": p.item_description,
                    "avgPrice": f"{p.avg_unit_price:.2f}",
                    "avgQty": f"{(p.avg_quantity or 1):.2f}",
                    "occurrences": p.occurrence_count,
                }
                for p in patterns
            ],
            indent=2,
        )

        catalog_section = ""
        if catalog:
            products = json.dumps(
                [
                    {
                        "id": str(c.id),
                        "itemCode": c.item_code,
                        "description": c.description,
                        "sellPrice": c.sell_price,
                        "unit": c.unit,
                        "category": c.category,
                    }
                    for c in list(catalog)[:MAX_CATALOG_PRODUCTS]
                ],
                indent=2,
            )
            catalog_section = (
                "\nEXISTING PRODUCT CATALOG (match to these when possible):\n"
                f"{products}\n"
                "When a historical line item matches a product, include its id as \"productId\".\n"
            )

        return (
            "You are a roofing industry expert. Categorize these line items from historical "
            "accepted quotes into quote template mappings.\n\n"
            f"AVAILABLE CATEGORIES:\n{categories}\n"
            f"{catalog_section}\n"
            f"HISTORICAL LINE ITEMS:\n{history}\n\n"
            "For EACH line item return an object with: measurementType, productDescription, "
            "calculationType (per_unit, per_coverage, fixed or formula), coveragePerUnit, "
            "unitPrice, applyWaste, optional productId and optional customFormula (using the "
            "variable 'measurement'). Fixed job costs use measurementType \"fixed_job\" and "
            "calculationType \"fixed\".\n\n"
            "Return ONLY a valid JSON array, no other text."
        )

    async def suggest(
        self, org_id: str, template_name: str | None = None
    ) -> tuple[QuoteTemplate, list[TemplateMapping], int]:
        """Create a template from AI-categorized pricing patterns.

        Returns:
            (template, created mappings, number of patterns analyzed)

        Raises:
            ValidationError: No patterns to learn from, or no usable suggestions
            ExternalServiceError: AI unavailable or response unparseable
        """
        patterns = await PricingPatternStore(self.session).list_patterns(org_id)
        if not patterns:
            raise ValidationError(
                "No pricing patterns found. Import a Tradify CSV first to teach the AI "
                "your pricing history."
            )

        catalog = await get_catalog_items(self.session, org_id, active_only=True)
        content = await complete_json(
            self.client,
            self.llm,
            system_prompt="You design roofing quote templates. Respond with JSON only.",
            user_prompt=self.build_prompt(patterns, catalog),
            json_mode=False,
        )

        suggestions = parse_suggestions(content)
        if not suggestions:
            raise ValidationError(
                "AI could not generate any mappings from your pricing history. "
                "Try importing more quote data."
            )

        valid = [entry for entry in suggestions if is_valid_suggestion(entry)]
        if not valid:
            raise ValidationError(
                "AI response contained no valid mappings. Try importing more quote data."
            )

        service = TemplateService(self.session)
        template = await service.create_template(
            org_id,
            name=template_name or DEFAULT_TEMPLATE_NAME,
            description=f"Auto-generated from {len(patterns)} pricing patterns",
            waste_percent=10.0,
            labor_markup_percent=0.0,
        )

        product_ids = {str(c.id) for c in catalog}
        mappings: list[TemplateMapping] = []
        for index, entry in enumerate(valid):
            fields = suggestion_to_mapping_fields(entry, product_ids, index)
            try:
                async with self.session.begin_nested():
                    mappings.append(await service.create_mapping(org_id, template.id, **fields))
            except RoofCalcError as e:
                logger.warning(f"Skipping suggested mapping {fields['product_description']!r}: {e.message}")

        logger.info(
            f"AI template {template.id} created with {len(mappings)}/{len(valid)} mappings "
            f"from {len(patterns)} patterns for org={org_id}"
        )
        return template, mappings, len(patterns)
