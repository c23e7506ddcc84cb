from __future__ import annotations

import json
import logging
import math
import re
import datetime as dt
from datetime import date
from typing import Any, Iterable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger.core.config import settings
from ledger.errors import ReceiptParseError, ReceiptValidationError
from ledger.models import TxnType
from ledger.utils.dates import parse_iso_date


log = logging.getLogger("ledger.receipts")

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "application/pdf")
MAX_IMAGE_BYTES = 10 * 1024 * 1024
LOW_CONFIDENCE_THRESHOLD = 70

AMOUNT_UNCLEAR = "Amount extraction unclear"
MERCHANT_MISSING = "Merchant name not detected"
LOW_CONFIDENCE = "Low confidence in overall extraction"

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


class ReceiptCategory(BaseModel):
    """Category the model may suggest; ids are compared as strings."""

    id: str
    name: str
    type: TxnType

    model_config = ConfigDict(from_attributes=True)

    @field_validator("id", mode="before")
    def id_as_str(cls, v: Any):
        return str(v)


class SuggestedCategory(BaseModel):
    id: str
    name: str
    confidence: float = 0.0


class ReceiptExtraction(BaseModel):
    description: str
    amount: float
    date: dt.date
    merchant: Optional[str] = None
    tax: Optional[float] = None
    tip: Optional[float] = None
    confidence: float
    suggested_category: Optional[SuggestedCategory] = None
    uncertainties: list[str] = Field(default_factory=list)
    raw_text: Optional[str] = None


class ReceiptConfigStatus(BaseModel):
    is_configured: bool
    missing_config: list[str] = Field(default_factory=list)


class ReceiptModelClient(Protocol):
    @property
    def is_configured(self) -> bool: ...

    def generate(self, prompt: str, image_bytes: bytes, mime_type: str) -> str: ...


def validate_image(content_type: str | None, size: int, *, max_bytes: int = MAX_IMAGE_BYTES) -> None:
    if size <= 0:
        raise ReceiptValidationError("No image provided")
    if (content_type or "").lower() not in ALLOWED_MIME_TYPES:
        raise ReceiptValidationError("Unsupported file format. Please use JPG, PNG, or PDF.")
    if size > max_bytes:
        raise ReceiptValidationError(f"File size too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")


def build_prompt(categories: Iterable[ReceiptCategory], *, currency: str = "IDR") -> str:
    category_list = "\n".join(f"- [{c.id}] {c.name} ({c.type.value.lower()})" for c in categories)
    return f"""
You are an expert OCR system specialized in extracting financial transaction data from receipts, invoices, and bills.

Analyze this image and extract transaction information with high accuracy. Return ONLY a valid JSON response with this exact structure:

{{
  "description": "Brief, clear description of the transaction/merchant",
  "amount": number,
  "date": "YYYY-MM-DD",
  "merchant": "Merchant/store name if identifiable",
  "tax": number,
  "tip": number,
  "confidence": number,
  "suggestedCategory": {{
    "id": "category id in brackets from the list",
    "name": "category_name",
    "confidence": number
  }},
  "uncertainties": ["list of fields that need verification"],
  "rawText": "all text extracted from image"
}}

AVAILABLE CATEGORIES:
{category_list or "- (none)"}

EXTRACTION RULES:
1. Amount: Extract the FINAL TOTAL amount (look for "Total", "Jumlah", "Grand Total", etc.)
2. Date: Convert to YYYY-MM-DD format. If unclear, use today's date and mark as uncertain
3. Merchant: Extract business/store name from header or footer
4. Category: Match to the most appropriate category from the list above
5. Currency: Convert all amounts to {currency}
6. Confidence: Rate 0-100 based on text clarity and extraction certainty
7. Uncertainties: List any fields where the extraction is unclear or ambiguous

IMPORTANT:
- Be conservative with confidence scores
- Only use high confidence (80+) when text is very clear
- Mark unclear dates, amounts, or merchant names as uncertain
- If multiple amounts exist, prioritize the final total
- Return valid JSON only, no additional text or explanations
""".strip()


def parse_model_response(text: str) -> dict[str, Any]:
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        log.error("Failed to parse model response: %r", (text or "")[:500])
        raise ReceiptParseError(
            "Failed to parse AI response",
            details="The image might be unclear or contain no transaction data.",
        ) from exc
    if not isinstance(data, dict):
        raise ReceiptParseError(
            "Failed to parse AI response",
            details="The image might be unclear or contain no transaction data.",
        )
    return data


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _clamp_confidence(value: Any) -> float:
    return min(100.0, max(0.0, _to_number(value) or 0.0))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def sanitize_extraction(
    raw: dict[str, Any],
    categories: Iterable[ReceiptCategory],
    *,
    today: date,
) -> ReceiptExtraction:
    """Whitelist, coerce and clamp an untrusted model payload.

    Pure: the result depends only on the arguments.
    """
    amount = max(0.0, _to_number(raw.get("amount")) or 0.0)
    tax = _to_number(raw.get("tax"))
    tip = _to_number(raw.get("tip"))
    raw_text = raw.get("rawText", raw.get("raw_text"))
    raw_uncertainties = raw.get("uncertainties")
    uncertainties = [str(u) for u in raw_uncertainties] if isinstance(raw_uncertainties, list) else []

    suggested: SuggestedCategory | None = None
    raw_suggestion = raw.get("suggestedCategory", raw.get("suggested_category"))
    if isinstance(raw_suggestion, dict) and raw_suggestion.get("id") not in (None, ""):
        wanted = str(raw_suggestion["id"])
        match = next((c for c in categories if c.id == wanted), None)
        if match is not None:
            suggested = SuggestedCategory(
                id=match.id,
                name=match.name,
                confidence=_clamp_confidence(raw_suggestion.get("confidence")),
            )

    result = ReceiptExtraction(
        description=str(raw.get("description") or "Transaction").strip() or "Transaction",
        amount=amount,
        date=parse_iso_date(raw.get("date")) or today,
        merchant=_optional_text(raw.get("merchant")),
        tax=max(0.0, tax) if tax is not None else None,
        tip=max(0.0, tip) if tip is not None else None,
        confidence=_clamp_confidence(raw.get("confidence")),
        suggested_category=suggested,
        uncertainties=uncertainties,
        raw_text=str(raw_text) if raw_text else None,
    )

    if result.amount == 0:
        result.uncertainties.append(AMOUNT_UNCLEAR)
    if not result.merchant:
        result.uncertainties.append(MERCHANT_MISSING)
    if result.confidence < LOW_CONFIDENCE_THRESHOLD:
        result.uncertainties.append(LOW_CONFIDENCE)
    return result


class ReceiptExtractionService:
    def __init__(self, client: ReceiptModelClient, *, max_bytes: int | None = None, currency: str = "IDR") -> None:
        self.client = client
        self.max_bytes = max_bytes or settings.RECEIPT_MAX_BYTES
        self.currency = currency

    def config_status(self) -> ReceiptConfigStatus:
        if self.client.is_configured:
            return ReceiptConfigStatus(is_configured=True)
        return ReceiptConfigStatus(is_configured=False, missing_config=["LEDGER_GEMINI_API_KEY (server-side)"])

    def extract(
        self,
        image_bytes: bytes,
        mime_type: str,
        categories: Iterable[ReceiptCategory],
        *,
        today: date,
    ) -> ReceiptExtraction:
        validate_image(mime_type, len(image_bytes), max_bytes=self.max_bytes)
        categories = list(categories)
        prompt = build_prompt(categories, currency=self.currency)
        text = self.client.generate(prompt, image_bytes, mime_type)
        raw = parse_model_response(text)
        result = sanitize_extraction(raw, categories, today=today)
        log.info(
            "Receipt extracted: amount=%s confidence=%s uncertainties=%d",
            result.amount,
            result.confidence,
            len(result.uncertainties),
        )
        return result
