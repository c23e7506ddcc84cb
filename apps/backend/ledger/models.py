from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "UTC"))
except Exception:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    """Calendar date of the configured clock (UTC unless overridden)."""
    return datetime.now(LOCAL_ZONE).date()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class TxnType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Account(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="cash")
    balance: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="category_type"), nullable=False)
    color: Mapped[str | None] = mapped_column(String(16))

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Transaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    # 부호 없는 금액; 잔액 반영 방향은 type 으로 결정
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    recurring_rule_id: Mapped[int | None] = mapped_column(
        ForeignKey("recurringrule.id", ondelete="SET NULL"), nullable=True
    )
    # "rule-{rule_id}-{due_date}" for postings generated by the recurring processor
    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    balance_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_txn_user_external_id"),
        CheckConstraint("amount >= 0", name="ck_txn_amount_non_negative"),
        Index("ix_txn_user_date", "user_id", "occurred_at"),
    )

    def signed_amount(self) -> float:
        magnitude = abs(float(self.amount or 0))
        if self.type == TxnType.EXPENSE:
            return -magnitude
        return magnitude


class RecurringFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class RecurringRule(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="recurring_type"), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    # Plain string so that a value outside RecurringFrequency can still be loaded
    # and skipped by the processor instead of failing the whole fetch.
    frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    # NULL == retired
    next_due_date: Mapped[date | None] = mapped_column(Date)
    last_created_date: Mapped[date | None] = mapped_column(Date)

    account: Mapped["Account"] = relationship("Account")
    category: Mapped["Category | None"] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        Index("ix_recurring_next_due", "next_due_date"),
    )

    @property
    def is_retired(self) -> bool:
        return self.next_due_date is None

    def signed_amount(self) -> float:
        magnitude = abs(float(self.amount or 0))
        if self.type == TxnType.EXPENSE:
            return -magnitude
        return magnitude

    def occurrence_key(self, due: date | None = None) -> str:
        due = due or self.next_due_date
        if due is None:
            raise ValueError(f"Recurring rule {self.id} is retired")
        return f"rule-{self.id}-{due.isoformat()}"


class BudgetPeriod(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class Budget(Base, TimestampMixin):
    """Spending limit for one expense category per calendar week or month."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("category.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(SAEnum(BudgetPeriod, name="budget_period"), nullable=False)

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "period", name="uq_budget_user_category_period"),
        CheckConstraint("amount > 0", name="ck_budget_amount_positive"),
    )
