from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import Depends, Query

from ledger import models
from ledger.providers.gemini import GeminiClient
from ledger.services.receipt_service import ReceiptExtractionService


def get_today() -> date:
    """Run date for the recurring processor; tests override to pin the clock."""
    return models.today_local()


def get_run_date(
    today: Optional[date] = Query(None, description="Run date (YYYY-MM-DD); defaults to the server clock"),
    clock_today: date = Depends(get_today),
) -> date:
    return today or clock_today


def get_receipt_service() -> ReceiptExtractionService:
    return ReceiptExtractionService(GeminiClient())
