"""Google Gemini client adapter for receipt extraction."""

from __future__ import annotations

import base64
from typing import Any, Optional

import httpx

from ledger.core.config import settings
from ledger.errors import ExtractionServiceError, ReceiptNotConfiguredError


class GeminiClient:
    """Minimal ``generateContent`` client over the public REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GEMINI_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        """Send the prompt plus inline image and return the model's text answer."""
        if not self.is_configured:
            raise ReceiptNotConfiguredError("Gemini API key not configured")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(image_bytes).decode("ascii"),
                            }
                        },
                    ]
                }
            ]
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExtractionServiceError(
                "Failed to process image",
                details=f"Model endpoint returned {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionServiceError("Failed to process image", details=str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise ExtractionServiceError("Failed to process image", details="Model endpoint returned invalid JSON") from exc

        return _extract_text(data)


def _extract_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        raise ExtractionServiceError(
            "Failed to process image",
            details="Model response contained no candidates",
        ) from None
    texts = [p.get("text", "") for p in parts if isinstance(p, dict)]
    return "".join(texts)
