"""Text extraction from uploaded PDF quotes.

pypdf is tried first; pdfplumber is the fallback when pypdf fails or
returns too little text (scanned covers, odd encodings).
"""

from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO
from typing import Callable

import pdfplumber
from pypdf import PdfReader

from roofcalc.errors import ParseError, ValidationError

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 20
MIN_PDF_BYTES = 100


def decode_pdf_payload(payload: str | bytes, min_bytes: int = MIN_PDF_BYTES) -> bytes:
    """Turn raw bytes or a base64 string (optionally a data URL) into PDF bytes.

    Raises:
        ValidationError: "Invalid PDF data" if decoding fails or the result is too small
    """
    if isinstance(payload, (bytes, bytearray)):
        data = bytes(payload)
    else:
        encoded = payload.strip()
        if encoded.startswith("data:") and "," in encoded:
            encoded = encoded.split(",", 1)[1]
        try:
            data = base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"PDF payload is not valid base64: {e}")
            raise ValidationError("Invalid PDF data") from e

    if len(data) < min_bytes:
        logger.warning(f"PDF payload too small: {len(data)} bytes")
        raise ValidationError("Invalid PDF data")
    return data


def _extract_with_pypdf(data: bytes) -> str:
    reader = PdfReader(BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_with_pdfplumber(data: bytes) -> str:
    with pdfplumber.open(BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


PARSERS: tuple[tuple[str, Callable[[bytes], str]], ...] = (
    ("pypdf", _extract_with_pypdf),
    ("pdfplumber", _extract_with_pdfplumber),
)


def extract_pdf_text(
    data: bytes,
    min_chars: int = MIN_TEXT_CHARS,
    parsers: tuple[tuple[str, Callable[[bytes], str]], ...] = PARSERS,
) -> str:
    """Extract text, falling through the parsers until one yields enough.

    Args:
        data: PDF bytes
        min_chars: Minimum trimmed text length accepted from a parser
        parsers: (name, extractor) pairs in priority order

    Returns:
        Extracted text

    Raises:
        ParseError: Every parser failed or produced too little text. The message
            joins per-parser errors ("pypdf: ...; pdfplumber: ...") or reads
            "No text extracted" when they ran cleanly but found nothing.
    """
    errors: list[str] = []

    for name, extractor in parsers:
        try:
            text = extractor(data)
        except Exception as e:  # parsers raise a wide range of errors on bad PDFs
            errors.append(f"{name}: {e}")
            logger.warning(f"PDF text extraction with {name} failed: {e}")
            continue

        if len(text.strip()) >= min_chars:
            logger.debug(f"Extracted {len(text)} chars of PDF text with {name}")
            return text
        logger.warning(f"{name} extracted only {len(text.strip())} chars, trying next parser")

    raise ParseError("; ".join(errors) if errors else "No text extracted")
