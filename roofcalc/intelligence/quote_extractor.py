"""AI extraction of line items from historical quote text."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol, Sequence

import openai
from pydantic import ValidationError as PydanticValidationError

from roofcalc.config import LLMConfig, get_config
from roofcalc.errors import AIServiceTimeoutError, ExternalServiceError
from roofcalc.models import CatalogItem, PdfQuoteExtraction

logger = logging.getLogger(__name__)


class QuoteExtractor(Protocol):
    """Turns quote text into structured line items."""

    async def extract(
        self, text: str, filename: str, catalog: Sequence[CatalogItem]
    ) -> PdfQuoteExtraction: ...


def build_client(llm: LLMConfig) -> openai.AsyncOpenAI:
    """Create the OpenAI client for the configured endpoint.

    Raises:
        ExternalServiceError: If no API key is configured
    """
    if not llm.api_key:
        raise ExternalServiceError("AI service not configured (set OPENAI_API_KEY)")
    return openai.AsyncOpenAI(
        api_key=llm.api_key,
        base_url=llm.base_url,
        timeout=llm.request_timeout_seconds,
        max_retries=0,
    )


async def complete_json(
    client: openai.AsyncOpenAI,
    llm: LLMConfig,
    system_prompt: str,
    user_prompt: str,
    json_mode: bool = True,
) -> str:
    """Run one chat completion and return the raw message content.

    Raises:
        AIServiceTimeoutError: The request exceeded the configured timeout
        ExternalServiceError: Connection failure, API error or empty content
    """
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    try:
        response = await asyncio.wait_for(
            client.chat.completions.create(
                model=llm.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=llm.temperature,
                max_tokens=llm.max_tokens,
                **kwargs,
            ),
            timeout=llm.request_timeout_seconds,
        )
    except (openai.APITimeoutError, asyncio.TimeoutError) as e:
        logger.error(f"AI request timed out after {llm.request_timeout_seconds}s")
        raise AIServiceTimeoutError("AI request timed out") from e
    except openai.APIConnectionError as e:
        logger.error(f"AI connection failed: {e}")
        raise ExternalServiceError("AI connection failed") from e
    except openai.APIError as e:
        logger.error(f"AI request failed: {e}")
        raise ExternalServiceError("AI extraction failed") from e

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise ExternalServiceError("AI returned empty response")
    return content


class QuoteLineItemExtractor:
    """OpenAI-backed line item extraction for historical quotes."""

    SYSTEM_PROMPT = """You are a roofing quote analyzer. Extract line items from the provided quote text.

For each line item, extract:
- description: The item/service description
- quantity: The quantity (number)
- unit: The unit of measurement (e.g., m, m², each, bundle, lm, job)
- unitPrice: Price per unit (number)
- total: Total price for this line (number)
- category: Category (materials, labour, equipment, sundries, other)
- matchedProductCode: Item code of the matching catalog product, if any

Also extract:
- quoteNumber: Quote reference number if visible
- customerName: Customer name if visible
- quoteDate: Date of quote if visible
- quoteTotal: Total quote amount

Existing products in catalog for reference:
{catalog}

Return JSON in this exact format:
{{
  "quoteNumber": "string or null",
  "customerName": "string or null",
  "quoteDate": "string or null",
  "quoteTotal": number or null,
  "lineItems": [
    {{
      "description": "string",
      "quantity": number,
      "unit": "string",
      "unitPrice": number,
      "total": number,
      "category": "string",
      "matchedProductCode": "string or null"
    }}
  ]
}}"""

    def __init__(self, client: openai.AsyncOpenAI | None = None, llm: LLMConfig | None = None):
        self.llm = llm or get_config().llm
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = build_client(self.llm)
        return self._client

    def _catalog_context(self, catalog: Sequence[CatalogItem]) -> str:
        lines = [
            f"{item.item_code or '-'}: {item.description} (${item.sell_price:.2f})"
            for item in list(catalog)[: self.llm.catalog_context_items]
        ]
        return "\n".join(lines) if lines else "(no catalog products)"

    async def extract(
        self, text: str, filename: str, catalog: Sequence[CatalogItem]
    ) -> PdfQuoteExtraction:
        """Extract structured quote data from PDF text.

        Raises:
            AIServiceTimeoutError: The AI call timed out
            ExternalServiceError: AI unavailable, not configured or returned invalid JSON
        """
        system_prompt = self.SYSTEM_PROMPT.format(catalog=self._catalog_context(catalog))
        user_prompt = (
            f"Extract all line items from this quote (filename: {filename}):\n\n"
            f"{text[: self.llm.max_text_chars]}"
        )

        content = await complete_json(self.client, self.llm, system_prompt, user_prompt)

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"AI response for {filename} is not JSON: {e}")
            raise ExternalServiceError("Invalid AI response format") from e

        if not isinstance(payload, dict):
            raise ExternalServiceError("Invalid AI response format")

        try:
            extraction = PdfQuoteExtraction.model_validate(payload)
        except PydanticValidationError as e:
            logger.error(f"AI response for {filename} failed validation: {e}")
            raise ExternalServiceError("Invalid AI response format") from e

        logger.info(f"AI extracted {len(extraction.line_items)} line items from {filename}")
        return extraction
