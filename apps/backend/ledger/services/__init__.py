"""
Services 패키지

비즈니스 로직 서비스 클래스들을 제공합니다.
"""

from .recurring_store import RecurringStore, SqlRecurringStore
from .recurring_processor import ProcessingSummary, RecurringProcessor, RuleOutcome, RuleOutcomeStatus
from .receipt_service import ReceiptExtractionService
from .transaction_service import TransactionBalanceService
from .budget_service import budget_status, period_spending

__all__ = [
    "RecurringStore",
    "SqlRecurringStore",
    "ProcessingSummary",
    "RecurringProcessor",
    "RuleOutcome",
    "RuleOutcomeStatus",
    "ReceiptExtractionService",
    "TransactionBalanceService",
    "budget_status",
    "period_spending",
]
