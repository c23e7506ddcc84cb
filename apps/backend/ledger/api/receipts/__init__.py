"""Receipt extraction routes."""

from fastapi import APIRouter

from ledger.services.receipt_service import ReceiptConfigStatus, ReceiptExtraction

from . import handlers

router = APIRouter(prefix="/receipts", tags=["receipts"])

router.add_api_route(
    "/extract",
    handlers.extract_receipt,
    methods=["POST"],
    response_model=ReceiptExtraction,
)

router.add_api_route(
    "/status",
    handlers.receipt_status,
    methods=["GET"],
    response_model=ReceiptConfigStatus,
)
