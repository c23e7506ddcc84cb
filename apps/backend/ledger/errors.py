"""Application error taxonomy and translation to user-facing details.

Every failure that crosses an HTTP or CLI boundary is either an ``AppError``
(with a stable ``code``) or is mapped to one by :func:`get_error_details`.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .models import now_local_naive


log = logging.getLogger("ledger.errors")


class ErrorCode(str, Enum):
    # Transaction / account
    TRANSACTION_INVALID_AMOUNT = "TRANSACTION_INVALID_AMOUNT"
    TRANSACTION_CATEGORY_REQUIRED = "TRANSACTION_CATEGORY_REQUIRED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    # Recurring processor
    RECURRING_FETCH_FAILED = "RECURRING_FETCH_FAILED"
    STORE_ERROR = "STORE_ERROR"
    DUPLICATE_POSTING = "DUPLICATE_POSTING"
    # Receipt extraction
    RECEIPT_INVALID_IMAGE = "RECEIPT_INVALID_IMAGE"
    RECEIPT_NOT_CONFIGURED = "RECEIPT_NOT_CONFIGURED"
    RECEIPT_PARSE_FAILED = "RECEIPT_PARSE_FAILED"
    RECEIPT_SERVICE_UNAVAILABLE = "RECEIPT_SERVICE_UNAVAILABLE"
    # General
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_MESSAGES: dict[ErrorCode, tuple[str, str]] = {
    ErrorCode.TRANSACTION_INVALID_AMOUNT: ("Invalid transaction amount", "Enter an amount greater than 0"),
    ErrorCode.TRANSACTION_CATEGORY_REQUIRED: ("Category is required", "Select a category for this transaction"),
    ErrorCode.ACCOUNT_NOT_FOUND: ("Account not found", "Choose one of your existing accounts"),
    ErrorCode.CATEGORY_NOT_FOUND: ("Category not found", "Choose one of your existing categories"),
    ErrorCode.RECURRING_FETCH_FAILED: (
        "Recurring transactions could not be loaded",
        "The run will be retried by the next scheduled trigger",
    ),
    ErrorCode.STORE_ERROR: ("The database rejected the change", "Please try again in a moment"),
    ErrorCode.DUPLICATE_POSTING: ("This occurrence was already posted", "No action needed"),
    ErrorCode.RECEIPT_INVALID_IMAGE: ("The uploaded file cannot be processed", "Use a JPG, PNG or PDF up to 10MB"),
    ErrorCode.RECEIPT_NOT_CONFIGURED: (
        "Receipt scanning is not configured",
        "Set LEDGER_GEMINI_API_KEY on the server",
    ),
    ErrorCode.RECEIPT_PARSE_FAILED: (
        "The receipt could not be read",
        "Try a clearer photo or enter the transaction manually",
    ),
    ErrorCode.RECEIPT_SERVICE_UNAVAILABLE: (
        "Receipt scanning service is unavailable",
        "Please try again later or enter the transaction manually",
    ),
    ErrorCode.NETWORK_ERROR: ("Connection problem", "Check your internet connection"),
    ErrorCode.UNKNOWN_ERROR: ("An unexpected error occurred", "Please try again in a moment"),
}


class ErrorDetails(BaseModel):
    code: ErrorCode
    message: str
    user_message: str
    solution: Optional[str] = None


class AppError(Exception):
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        details: str | None = None,
        status_code: int | None = None,
        user_message: str | None = None,
        solution: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        default_user, default_solution = _MESSAGES[self.code]
        self.user_message = user_message or default_user
        self.solution = solution or default_solution

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code.value}
        if self.details:
            payload["details"] = self.details
        return payload


class StoreError(AppError):
    code = ErrorCode.STORE_ERROR


class FetchError(StoreError):
    code = ErrorCode.RECURRING_FETCH_FAILED


class ReceiptValidationError(AppError):
    code = ErrorCode.RECEIPT_INVALID_IMAGE
    status_code = 400


class ReceiptNotConfiguredError(AppError):
    code = ErrorCode.RECEIPT_NOT_CONFIGURED

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["is_configured"] = False
        return payload


class ReceiptParseError(AppError):
    code = ErrorCode.RECEIPT_PARSE_FAILED


class ExtractionServiceError(AppError):
    code = ErrorCode.RECEIPT_SERVICE_UNAVAILABLE


def _details(code: ErrorCode, message: str) -> ErrorDetails:
    user_message, solution = _MESSAGES[code]
    return ErrorDetails(code=code, message=message, user_message=user_message, solution=solution)


def get_error_details(error: BaseException | None) -> ErrorDetails:
    """Map any exception to a stable code plus a user message."""
    if isinstance(error, AppError):
        return ErrorDetails(
            code=error.code,
            message=error.message,
            user_message=error.user_message,
            solution=error.solution,
        )
    message = str(error) if error is not None and str(error) else "Unknown error"
    if isinstance(error, IntegrityError):
        if "external_id" in message:
            return _details(ErrorCode.DUPLICATE_POSTING, message)
        return _details(ErrorCode.STORE_ERROR, message)
    if isinstance(error, SQLAlchemyError):
        return _details(ErrorCode.STORE_ERROR, message)
    if isinstance(error, (ConnectionError, TimeoutError)):
        return _details(ErrorCode.NETWORK_ERROR, message)
    return _details(ErrorCode.UNKNOWN_ERROR, message)


def log_error(error: BaseException, context: str | None = None, *, logger: logging.Logger | None = None) -> ErrorDetails:
    details = get_error_details(error)
    (logger or log).error(
        "[%s] %s: %s (user_message=%r, at=%s)",
        details.code.value,
        context or "Error",
        details.message,
        details.user_message,
        now_local_naive().isoformat(timespec="seconds"),
    )
    return details
