from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .core.database import get_db
from .core.deps import get_run_date, get_today
from . import models
from .schemas import (
    AccountCreate,
    AccountOut,
    BudgetCreate,
    BudgetOut,
    BudgetStatusOut,
    BudgetUpdate,
    CategoryCreate,
    CategoryOut,
    RecurringRuleCreate,
    RecurringRuleOut,
    RecurringRuleUpdate,
    TransactionCreate,
    TransactionOut,
)
from .services.budget_service import budget_status
from .services.recurring_processor import ProcessingSummary, RecurringProcessor
from .services.recurring_store import SqlRecurringStore
from .services.transaction_service import TransactionBalanceService


router = APIRouter()


def _get_account_for_user(db: Session, user_id: int, account_id: int) -> models.Account:
    acc = (
        db.query(models.Account)
        .filter(models.Account.id == account_id, models.Account.user_id == user_id)
        .first()
    )
    if not acc:
        raise HTTPException(status_code=400, detail="Account not found for user")
    return acc


def _get_category_for_user(
    db: Session, user_id: int, category_id: int, txn_type: models.TxnType, kind: str = "rule"
) -> models.Category:
    cat = (
        db.query(models.Category)
        .filter(models.Category.id == category_id, models.Category.user_id == user_id)
        .first()
    )
    if not cat:
        raise HTTPException(status_code=400, detail="Category not found for user")
    if cat.type != txn_type:
        raise HTTPException(status_code=400, detail=f"Category type does not match {kind} type")
    return cat


# ===== Accounts =====
@router.post("/accounts", response_model=AccountOut, status_code=201)
def create_account(payload: AccountCreate, db: Session = Depends(get_db)):
    acc = models.Account(**payload.model_dump())
    db.add(acc)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Account name already exists for user")
    db.refresh(acc)
    return acc


@router.get("/accounts", response_model=list[AccountOut])
def list_accounts(user_id: int = Query(...), db: Session = Depends(get_db)):
    return (
        db.query(models.Account)
        .filter(models.Account.user_id == user_id)
        .order_by(models.Account.id)
        .all()
    )


# ===== Categories =====
@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    cat = models.Category(**payload.model_dump())
    db.add(cat)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Category already exists")
    db.refresh(cat)
    return cat


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(
    user_id: int = Query(...),
    type: Optional[models.TxnType] = Query(None),
    db: Session = Depends(get_db),
):
    q = db.query(models.Category).filter(models.Category.user_id == user_id)
    if type is not None:
        q = q.filter(models.Category.type == type)
    return q.order_by(models.Category.type, models.Category.name).all()


# ===== Transactions =====
@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    response: Response,
    user_id: int = Query(...),
    account_id: Optional[int] = Query(None),
    recurring_rule_id: Optional[int] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    q = db.query(models.Transaction).filter(models.Transaction.user_id == user_id)
    if account_id is not None:
        q = q.filter(models.Transaction.account_id == account_id)
    if recurring_rule_id is not None:
        q = q.filter(models.Transaction.recurring_rule_id == recurring_rule_id)
    if start is not None:
        q = q.filter(models.Transaction.occurred_at >= start)
    if end is not None:
        q = q.filter(models.Transaction.occurred_at <= end)
    total = q.count()
    response.headers["X-Total-Count"] = str(total)
    return (
        q.order_by(models.Transaction.occurred_at.desc(), models.Transaction.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(payload: TransactionCreate, db: Session = Depends(get_db)):
    _get_account_for_user(db, payload.user_id, payload.account_id)
    if payload.category_id is not None:
        _get_category_for_user(db, payload.user_id, payload.category_id, payload.type, kind="transaction")
    tx = models.Transaction(**payload.model_dump())
    return TransactionBalanceService(db).post(tx)


@router.delete("/transactions/{txn_id}", status_code=204)
def delete_transaction(txn_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    tx = (
        db.query(models.Transaction)
        .filter(models.Transaction.id == txn_id, models.Transaction.user_id == user_id)
        .first()
    )
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found")
    # 잔액 되돌리기 후 삭제
    TransactionBalanceService(db).remove(tx)
    return Response(status_code=204)


# ===== Budgets =====
def _get_budget_or_404(db: Session, budget_id: int, user_id: int) -> models.Budget:
    bd = (
        db.query(models.Budget)
        .filter(models.Budget.id == budget_id, models.Budget.user_id == user_id)
        .first()
    )
    if not bd:
        raise HTTPException(status_code=404, detail="Budget not found")
    return bd


@router.post("/budgets", response_model=BudgetOut, status_code=201)
def create_budget(payload: BudgetCreate, db: Session = Depends(get_db)):
    _get_category_for_user(db, payload.user_id, payload.category_id, models.TxnType.EXPENSE, kind="budget")
    item = models.Budget(**payload.model_dump())
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Budget already exists for this category and period")
    db.refresh(item)
    return item


@router.get("/budgets", response_model=list[BudgetStatusOut])
def list_budgets(
    user_id: int = Query(...),
    on: Optional[date] = Query(None, description="Reference date for the current period (YYYY-MM-DD)"),
    clock_today: date = Depends(get_today),
    db: Session = Depends(get_db),
):
    ref = on or clock_today
    rows = (
        db.query(models.Budget)
        .filter(models.Budget.user_id == user_id)
        .order_by(models.Budget.id.desc())
        .all()
    )
    return [budget_status(db, bd, ref) for bd in rows]


@router.patch("/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    bd = _get_budget_or_404(db, budget_id, user_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
        setattr(bd, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Budget already exists for this category and period")
    db.refresh(bd)
    return bd


@router.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    bd = _get_budget_or_404(db, budget_id, user_id)
    db.delete(bd)
    db.commit()
    return Response(status_code=204)


# ===== Recurring Rules =====
@router.post("/recurring-rules", response_model=RecurringRuleOut, status_code=201)
def create_recurring_rule(payload: RecurringRuleCreate, db: Session = Depends(get_db)):
    _get_account_for_user(db, payload.user_id, payload.account_id)
    if payload.category_id is not None:
        _get_category_for_user(db, payload.user_id, payload.category_id, payload.type)
    data = payload.model_dump()
    data["frequency"] = payload.frequency.value
    rule = models.RecurringRule(**data)
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


@router.get("/recurring-rules", response_model=list[RecurringRuleOut])
def list_recurring_rules(user_id: int = Query(...), db: Session = Depends(get_db)):
    # 다음 예정일 순, 종료된 규칙은 마지막
    return (
        db.query(models.RecurringRule)
        .filter(models.RecurringRule.user_id == user_id)
        .order_by(
            models.RecurringRule.next_due_date.is_(None),
            models.RecurringRule.next_due_date,
            models.RecurringRule.id,
        )
        .all()
    )


def _get_rule_or_404(db: Session, rule_id: int, user_id: int) -> models.RecurringRule:
    rule = (
        db.query(models.RecurringRule)
        .filter(models.RecurringRule.id == rule_id, models.RecurringRule.user_id == user_id)
        .first()
    )
    if not rule:
        raise HTTPException(status_code=404, detail="RecurringRule not found")
    return rule


@router.get("/recurring-rules/{rule_id}", response_model=RecurringRuleOut)
def get_recurring_rule(rule_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    return _get_rule_or_404(db, rule_id, user_id)


@router.patch("/recurring-rules/{rule_id}", response_model=RecurringRuleOut)
def update_recurring_rule(
    rule_id: int,
    payload: RecurringRuleUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    rule = _get_rule_or_404(db, rule_id, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("account_id") is not None:
        _get_account_for_user(db, rule.user_id, changes["account_id"])
    elif "account_id" in changes:
        raise HTTPException(status_code=400, detail="account_id cannot be null")
    if changes.get("category_id") is not None:
        _get_category_for_user(db, rule.user_id, changes["category_id"], rule.type)
    for key in ("description", "amount", "frequency"):
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
    end_date = changes.get("end_date", rule.end_date)
    if end_date is not None and rule.start_date is not None and end_date < rule.start_date:
        raise HTTPException(status_code=400, detail="end_date must be on or after start_date")
    if changes.get("frequency") is not None:
        changes["frequency"] = models.RecurringFrequency(changes["frequency"]).value
    for key, value in changes.items():
        setattr(rule, key, value)
    db.commit()
    db.refresh(rule)
    return rule


@router.delete("/recurring-rules/{rule_id}", status_code=204)
def delete_recurring_rule(rule_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    rule = _get_rule_or_404(db, rule_id, user_id)
    # 생성된 거래는 유지하고 연결 해제: rule- 키도 비워서 같은 id 로 재사용된 규칙과 겹치지 않게 함
    db.query(models.Transaction).filter(
        models.Transaction.user_id == rule.user_id,
        models.Transaction.external_id.like(f"rule-{rule.id}-%"),
    ).update({models.Transaction.external_id: None}, synchronize_session=False)
    db.query(models.Transaction).filter(models.Transaction.recurring_rule_id == rule.id).update(
        {models.Transaction.recurring_rule_id: None}, synchronize_session=False
    )
    db.delete(rule)
    db.commit()
    return Response(status_code=204)


@router.post("/recurring/process", response_model=ProcessingSummary)
def process_recurring_rules(
    run_date: date = Depends(get_run_date),
    db: Session = Depends(get_db),
):
    """Trigger one run of the recurring processor (scheduler entry point)."""
    return RecurringProcessor(SqlRecurringStore(db)).run(run_date)
