from __future__ import annotations

from datetime import date

from fastapi import Depends, File, Form, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger import models
from ledger.core.database import get_db
from ledger.core.deps import get_receipt_service, get_today
from ledger.errors import AppError, ErrorCode, ReceiptNotConfiguredError, ReceiptValidationError
from ledger.services.receipt_service import (
    ReceiptCategory,
    ReceiptConfigStatus,
    ReceiptExtraction,
    ReceiptExtractionService,
)


def _load_categories(db: Session, user_id: int) -> list[ReceiptCategory]:
    try:
        rows = (
            db.query(models.Category)
            .filter(models.Category.user_id == user_id)
            .order_by(models.Category.id)
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise AppError(
            "Failed to fetch categories",
            code=ErrorCode.STORE_ERROR,
            details=str(exc),
        ) from exc
    return [ReceiptCategory.model_validate(row) for row in rows]


def extract_receipt(
    image: UploadFile | None = File(None),
    user_id: int | None = Form(None),
    db: Session = Depends(get_db),
    service: ReceiptExtractionService = Depends(get_receipt_service),
    today: date = Depends(get_today),
) -> ReceiptExtraction:
    status = service.config_status()
    if not status.is_configured:
        # 설정 누락은 이미지 검사보다 먼저 알림
        raise ReceiptNotConfiguredError("Gemini API key not configured")
    if image is None:
        raise ReceiptValidationError("No image provided")
    if user_id is None:
        raise ReceiptValidationError("User ID is required")

    # 한도 + 1 바이트까지만 읽어도 초과 여부 판정 가능
    data = image.file.read(service.max_bytes + 1)
    categories = _load_categories(db, user_id)
    return service.extract(data, image.content_type or "", categories, today=today)


def receipt_status(service: ReceiptExtractionService = Depends(get_receipt_service)) -> ReceiptConfigStatus:
    return service.config_status()
