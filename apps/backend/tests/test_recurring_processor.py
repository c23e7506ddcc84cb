from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import delete
from sqlalchemy.orm import Session

from ledger import models
from ledger.errors import FetchError, StoreError
from ledger.services.recurring_processor import RecurringProcessor, RuleOutcomeStatus
from ledger.services.recurring_store import SqlRecurringStore


class FlakyStore(SqlRecurringStore):
    """SqlRecurringStore that fails selected operations for selected rules/accounts."""

    def __init__(self, db, *, fail_insert=(), fail_balance=(), fail_update=(), fail_fetch=False):
        super().__init__(db)
        self.fail_insert = set(fail_insert)
        self.fail_balance = set(fail_balance)
        self.fail_update = set(fail_update)
        self.fail_fetch = fail_fetch

    def fetch_due_rules(self, today):
        if self.fail_fetch:
            raise FetchError("Failed to fetch due recurring rules", details="connection refused")
        return super().fetch_due_rules(today)

    def insert_transaction(self, rule, today):
        if rule.id in self.fail_insert:
            raise StoreError(f"Failed to create transaction for rule {rule.id}")
        return super().insert_transaction(rule, today)

    def apply_balance_delta(self, account_id, signed_amount, *, transaction_id=None):
        if account_id in self.fail_balance:
            raise StoreError(f"Failed to update balance for account {account_id}")
        return super().apply_balance_delta(account_id, signed_amount, transaction_id=transaction_id)

    def update_rule(self, rule_id, *, next_due_date, last_created_date):
        if rule_id in self.fail_update:
            raise StoreError(f"Failed to update rule {rule_id}")
        return super().update_rule(rule_id, next_due_date=next_due_date, last_created_date=last_created_date)


class DeletingStore(SqlRecurringStore):
    """Deletes another rule from a separate session while the first rule is posted."""

    def __init__(self, db, *, victim_id):
        super().__init__(db)
        self.victim_id = victim_id

    def insert_transaction(self, rule, today):
        if self.victim_id is not None:
            with Session(bind=self.db.get_bind()) as other:
                other.execute(delete(models.RecurringRule).where(models.RecurringRule.id == self.victim_id))
                other.commit()
            self.victim_id = None
        return super().insert_transaction(rule, today)


def _transactions(db_session, rule_id=None):
    q = db_session.query(models.Transaction)
    if rule_id is not None:
        q = q.filter(models.Transaction.recurring_rule_id == rule_id)
    return q.order_by(models.Transaction.id).all()


def _run(db_session, today, store=None):
    return RecurringProcessor(store or SqlRecurringStore(db_session)).run(today)


def test_posts_exactly_one_transaction_per_due_rule(db_session, factory):
    acc = factory.account(balance=1000)
    due_a = factory.rule(acc, next_due_date=date(2024, 3, 1), description="Internet")
    due_b = factory.rule(acc, next_due_date=date(2024, 3, 5), frequency="WEEKLY", description="Groceries")
    future = factory.rule(acc, next_due_date=date(2024, 3, 6), description="Gym")
    retired = factory.rule(acc, next_due_date=None, description="Old plan")

    summary = _run(db_session, date(2024, 3, 5))

    assert summary.due == 2
    assert summary.posted == 2
    assert summary.failed == 0
    assert summary.message == "Successfully processed 2 transaction(s)."
    assert len(_transactions(db_session, due_a.id)) == 1
    assert len(_transactions(db_session, due_b.id)) == 1
    assert _transactions(db_session, future.id) == []
    assert _transactions(db_session, retired.id) == []

    db_session.refresh(acc)
    assert float(acc.balance) == pytest.approx(800)


def test_monthly_rule_posts_today_and_clamps_next_due(db_session, factory):
    acc = factory.account()
    cat = factory.category("Salary", models.TxnType.INCOME)
    rule = factory.rule(
        acc,
        next_due_date=date(2024, 1, 31),
        frequency="MONTHLY",
        amount=5_000_000,
        txn_type=models.TxnType.INCOME,
        category=cat,
        description="Gaji",
    )

    summary = _run(db_session, date(2024, 2, 1))

    assert summary.outcomes[0].status == RuleOutcomeStatus.POSTED
    [tx] = _transactions(db_session, rule.id)
    assert tx.occurred_at == date(2024, 2, 1)
    assert tx.description == "Gaji"
    assert tx.type == models.TxnType.INCOME
    assert tx.category_id == cat.id
    assert float(tx.amount) == 5_000_000
    assert tx.external_id == f"rule-{rule.id}-2024-01-31"
    assert tx.balance_applied is True

    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 2, 29)
    assert rule.last_created_date == date(2024, 2, 1)
    db_session.refresh(acc)
    assert float(acc.balance) == 5_000_000


def test_non_leap_year_clamps_to_feb_28(db_session, factory):
    acc = factory.account()
    rule = factory.rule(acc, next_due_date=date(2023, 1, 31))

    _run(db_session, date(2023, 2, 1))

    db_session.refresh(rule)
    assert rule.next_due_date == date(2023, 2, 28)


def test_rule_ending_today_is_retired_after_posting(db_session, factory):
    acc = factory.account()
    rule = factory.rule(acc, next_due_date=date(2024, 3, 10), frequency="DAILY", end_date=date(2024, 3, 10))

    summary = _run(db_session, date(2024, 3, 10))

    assert summary.retired == 1
    assert summary.outcomes[0].status == RuleOutcomeStatus.RETIRED
    assert len(_transactions(db_session, rule.id)) == 1
    db_session.refresh(rule)
    assert rule.next_due_date is None
    assert rule.is_retired
    assert rule.last_created_date == date(2024, 3, 10)


def test_rule_with_next_occurrence_past_end_date_is_retired(db_session, factory):
    acc = factory.account()
    rule = factory.rule(acc, next_due_date=date(2024, 3, 1), frequency="MONTHLY", end_date=date(2024, 3, 20))

    _run(db_session, date(2024, 3, 1))

    db_session.refresh(rule)
    assert rule.next_due_date is None


def test_expense_decreases_and_income_increases_balance(db_session, factory):
    acc = factory.account(balance=500)
    factory.rule(acc, next_due_date=date(2024, 6, 1), amount=120, txn_type=models.TxnType.EXPENSE)
    factory.rule(acc, next_due_date=date(2024, 6, 1), amount=70, txn_type=models.TxnType.INCOME, description="Refund")

    _run(db_session, date(2024, 6, 1))

    db_session.refresh(acc)
    assert float(acc.balance) == pytest.approx(450)


def test_unknown_frequency_is_skipped_without_mutation(db_session, factory):
    acc = factory.account(balance=100)
    rule = factory.rule(acc, next_due_date=date(2024, 1, 1), frequency="FORTNIGHTLY")

    summary = _run(db_session, date(2024, 1, 1))

    assert summary.skipped == 1
    assert summary.posted == 0
    assert _transactions(db_session) == []
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 1, 1)
    assert rule.last_created_date is None
    db_session.refresh(acc)
    assert float(acc.balance) == 100


def test_insert_failure_skips_rule_and_continues(db_session, factory):
    acc = factory.account(balance=1000)
    broken = factory.rule(acc, next_due_date=date(2024, 4, 1), description="Broken")
    healthy = factory.rule(acc, next_due_date=date(2024, 4, 1), description="Healthy")

    summary = _run(db_session, date(2024, 4, 1), FlakyStore(db_session, fail_insert={broken.id}))

    assert summary.failed == 1
    assert summary.posted == 1
    assert _transactions(db_session, broken.id) == []
    assert len(_transactions(db_session, healthy.id)) == 1
    db_session.refresh(broken)
    assert broken.next_due_date == date(2024, 4, 1)
    assert broken.last_created_date is None
    db_session.refresh(acc)
    assert float(acc.balance) == 900


def test_balance_failure_keeps_posting_and_retry_does_not_double_post(db_session, factory):
    acc = factory.account(balance=1000)
    rule = factory.rule(acc, next_due_date=date(2024, 5, 1), amount=250)

    first = _run(db_session, date(2024, 5, 1), FlakyStore(db_session, fail_balance={acc.id}))

    assert first.failed == 1
    [tx] = _transactions(db_session, rule.id)
    assert tx.balance_applied is False
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 5, 1)  # not advanced
    db_session.refresh(acc)
    assert float(acc.balance) == 1000

    second = _run(db_session, date(2024, 5, 1))

    assert second.posted == 1
    [tx_again] = _transactions(db_session, rule.id)
    assert tx_again.id == tx.id
    assert tx_again.balance_applied is True
    db_session.refresh(acc)
    assert float(acc.balance) == 750
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 6, 1)


def test_rule_update_failure_is_retried_without_reapplying_balance(db_session, factory):
    acc = factory.account(balance=0)
    rule = factory.rule(acc, next_due_date=date(2024, 7, 1), amount=40, txn_type=models.TxnType.INCOME)

    first = _run(db_session, date(2024, 7, 1), FlakyStore(db_session, fail_update={rule.id}))
    assert first.failed == 1
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 7, 1)

    _run(db_session, date(2024, 7, 2))

    assert len(_transactions(db_session, rule.id)) == 1
    db_session.refresh(acc)
    assert float(acc.balance) == 40
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 8, 1)
    assert rule.last_created_date == date(2024, 7, 2)


def test_second_run_same_day_posts_nothing(db_session, factory):
    acc = factory.account()
    rule = factory.rule(acc, next_due_date=date(2024, 2, 10), frequency="WEEKLY")

    _run(db_session, date(2024, 2, 10))
    again = _run(db_session, date(2024, 2, 10))

    assert again.due == 0
    assert again.message == "No recurring transactions due."
    assert len(_transactions(db_session, rule.id)) == 1


def test_overdue_rule_catches_up_one_period_per_run(db_session, factory):
    acc = factory.account()
    rule = factory.rule(acc, next_due_date=date(2024, 1, 1), frequency="DAILY")

    _run(db_session, date(2024, 1, 3))
    _run(db_session, date(2024, 1, 3))
    _run(db_session, date(2024, 1, 3))

    txns = _transactions(db_session, rule.id)
    assert [t.external_id for t in txns] == [
        f"rule-{rule.id}-2024-01-01",
        f"rule-{rule.id}-2024-01-02",
        f"rule-{rule.id}-2024-01-03",
    ]
    assert {t.occurred_at for t in txns} == {date(2024, 1, 3)}
    db_session.refresh(rule)
    assert rule.next_due_date == date(2024, 1, 4)


def test_fetch_failure_is_fatal(db_session, factory):
    acc = factory.account()
    factory.rule(acc, next_due_date=date(2024, 1, 1))

    with pytest.raises(FetchError):
        _run(db_session, date(2024, 1, 1), FlakyStore(db_session, fail_fetch=True))

    assert _transactions(db_session) == []


def test_rule_deleted_during_run_fails_alone(db_session, factory):
    acc = factory.account(balance=1000)
    first_id = factory.rule(acc, next_due_date=date(2024, 9, 1), description="Internet").id
    gone_id = factory.rule(acc, next_due_date=date(2024, 9, 1), description="Gym").id
    last_id = factory.rule(acc, next_due_date=date(2024, 9, 1), description="Phone").id

    summary = _run(db_session, date(2024, 9, 1), DeletingStore(db_session, victim_id=gone_id))

    assert summary.due == 3
    assert summary.posted == 2
    assert summary.failed == 1
    assert {o.rule_id: o.status for o in summary.outcomes} == {
        first_id: RuleOutcomeStatus.POSTED,
        gone_id: RuleOutcomeStatus.FAILED,
        last_id: RuleOutcomeStatus.POSTED,
    }
    assert len(_transactions(db_session, last_id)) == 1
    assert db_session.get(models.RecurringRule, last_id).next_due_date == date(2024, 10, 1)
    assert float(db_session.get(models.Account, acc.id).balance) == pytest.approx(800)
