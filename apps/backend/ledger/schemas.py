from __future__ import annotations

import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import BudgetPeriod, RecurringFrequency, TxnType


# Account Schemas
class AccountCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=100)
    type: str = "cash"
    balance: float = 0
    currency: str = "IDR"

    @field_validator("currency")
    def currency_len(cls, v: str):
        if len(v) != 3:
            raise ValueError("currency must be 3-letter code")
        return v.upper()

    @field_validator("balance")
    def balance_finite(cls, v: float):
        if not math.isfinite(v):
            raise ValueError("balance must be finite")
        return v


class AccountOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: str
    balance: float
    currency: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Category Schemas
class CategoryCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=100)
    type: TxnType
    color: Optional[str] = None


class CategoryOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: TxnType
    color: Optional[str]

    model_config = ConfigDict(from_attributes=True)


# Transaction Schemas
class TransactionCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    occurred_at: date
    type: TxnType
    account_id: int
    category_id: Optional[int] = None
    amount: float
    description: str = Field(..., min_length=1, max_length=500)

    @field_validator("amount")
    def amount_positive(cls, v: float):
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class TransactionOut(BaseModel):
    id: int
    user_id: int
    occurred_at: date
    type: TxnType
    account_id: int
    category_id: Optional[int]
    amount: float
    description: str
    recurring_rule_id: Optional[int]
    external_id: Optional[str]
    balance_applied: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# RecurringRule Schemas
class RecurringRuleCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    type: TxnType
    amount: float
    account_id: int
    category_id: Optional[int] = None
    frequency: RecurringFrequency
    start_date: date
    end_date: Optional[date] = None
    next_due_date: Optional[date] = None

    @field_validator("amount")
    def amount_positive(cls, v: float):
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.next_due_date is None:
            # 첫 발생일은 시작일
            self.next_due_date = self.start_date
        return self


class RecurringRuleUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[float] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    frequency: Optional[RecurringFrequency] = None
    end_date: Optional[date] = None
    next_due_date: Optional[date] = None

    @field_validator("amount")
    def amount_positive(cls, v: float | None):
        if v is None:
            return v
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class RecurringRuleOut(BaseModel):
    id: int
    user_id: int
    description: str
    type: TxnType
    amount: float
    account_id: int
    category_id: Optional[int]
    frequency: str
    start_date: Optional[date]
    end_date: Optional[date]
    next_due_date: Optional[date]
    last_created_date: Optional[date]
    is_retired: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Budget Schemas
class BudgetCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    category_id: int
    amount: float
    period: BudgetPeriod = BudgetPeriod.MONTHLY

    @field_validator("amount")
    def amount_positive(cls, v: float):
        if not math.isfinite(v) or v <= 0:
            raise ValueError("amount must be a positive number")
        return v


class BudgetUpdate(BaseModel):
    amount: Optional[float] = None
    period: Optional[BudgetPeriod] = None

    @field_validator("amount")
    def amount_positive(cls, v: float | None):
        if v is not None and (not math.isfinite(v) or v <= 0):
            raise ValueError("amount must be a positive number")
        return v


class BudgetOut(BaseModel):
    id: int
    user_id: int
    category_id: int
    amount: float
    period: BudgetPeriod
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BudgetStatusOut(BudgetOut):
    # 기준일이 속한 기간의 지출 현황
    period_start: date
    period_end: date
    spent: float
    remaining: float
    over_budget: bool
