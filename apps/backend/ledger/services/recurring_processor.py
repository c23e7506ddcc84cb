from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from ledger import models
from ledger.core.logging import log_event
from ledger.errors import StoreError, log_error
from ledger.utils.dates import UnknownFrequencyError, next_schedule

from .recurring_store import RecurringStore


log = logging.getLogger("ledger.recurring")


class RuleOutcomeStatus(str, Enum):
    POSTED = "POSTED"
    RETIRED = "RETIRED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class RuleOutcome(BaseModel):
    rule_id: int
    status: RuleOutcomeStatus
    transaction_id: Optional[int] = None
    next_due_date: Optional[date] = None
    error: Optional[str] = None


class ProcessingSummary(BaseModel):
    run_date: date
    due: int = 0
    posted: int = 0
    retired: int = 0
    skipped: int = 0
    failed: int = 0
    message: str = ""
    outcomes: list[RuleOutcome] = Field(default_factory=list)


class RecurringProcessor:
    """Post every due recurring rule once and move its schedule forward.

    A failure on one rule is logged and only ends that rule's work for this run;
    the loop always proceeds to the next rule. Only a failure to load the due set
    (``FetchError``) propagates to the caller.
    """

    def __init__(self, store: RecurringStore) -> None:
        self.store = store

    def run(self, today: date) -> ProcessingSummary:
        rules = self.store.fetch_due_rules(today)
        summary = ProcessingSummary(run_date=today, due=len(rules))
        if not rules:
            summary.message = "No recurring transactions due."
            log_event(log, "recurring.run", run_date=today, due=0)
            return summary

        # 첫 커밋 이후에는 인스턴스가 만료되므로 id 는 미리 확보
        rule_ids = [rule.id for rule in rules]
        for rule_id, rule in zip(rule_ids, rules):
            try:
                outcome = self.process_rule(rule, today)
            except SQLAlchemyError as exc:
                # e.g. the rule was deleted after the fetch
                self.store.rollback()
                details = log_error(exc, f"Failed to load recurring rule {rule_id}", logger=log)
                outcome = RuleOutcome(rule_id=rule_id, status=RuleOutcomeStatus.FAILED, error=details.message)
            summary.outcomes.append(outcome)
            if outcome.status == RuleOutcomeStatus.POSTED:
                summary.posted += 1
            elif outcome.status == RuleOutcomeStatus.RETIRED:
                summary.posted += 1
                summary.retired += 1
            elif outcome.status == RuleOutcomeStatus.SKIPPED:
                summary.skipped += 1
            else:
                summary.failed += 1

        summary.message = f"Successfully processed {summary.due} transaction(s)."
        log_event(
            log,
            "recurring.run",
            run_date=today,
            due=summary.due,
            posted=summary.posted,
            retired=summary.retired,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return summary

    def process_rule(self, rule: models.RecurringRule, today: date) -> RuleOutcome:
        rule_id = rule.id
        due = rule.next_due_date
        account_id = rule.account_id
        delta = rule.signed_amount()

        # 주기 계산을 먼저 수행: 알 수 없는 주기는 거래 생성 전에 건너뜀
        try:
            new_next = next_schedule(due, rule.frequency, end_date=rule.end_date, today=today)
        except UnknownFrequencyError as exc:
            log.warning("Skipping recurring rule %s: %s", rule_id, exc)
            return RuleOutcome(rule_id=rule_id, status=RuleOutcomeStatus.SKIPPED, next_due_date=due, error=str(exc))

        try:
            tx = self.store.insert_transaction(rule, today)
        except StoreError as exc:
            log_error(exc, f"Failed to create transaction for rule {rule_id}", logger=log)
            return RuleOutcome(rule_id=rule_id, status=RuleOutcomeStatus.FAILED, next_due_date=due, error=exc.message)

        tx_id = tx.id
        if not tx.balance_applied:
            try:
                self.store.apply_balance_delta(account_id, delta, transaction_id=tx_id)
            except StoreError as exc:
                # 거래는 이미 기록됨; 다음 실행에서 같은 키로 잔액만 다시 반영
                log_error(exc, f"Failed to update balance for rule {rule_id}", logger=log)
                return RuleOutcome(
                    rule_id=rule_id,
                    status=RuleOutcomeStatus.FAILED,
                    transaction_id=tx_id,
                    next_due_date=due,
                    error=exc.message,
                )
        else:
            log.info("Rule %s occurrence %s already posted as transaction %s", rule_id, due, tx_id)

        try:
            self.store.update_rule(rule_id, next_due_date=new_next, last_created_date=today)
        except StoreError as exc:
            log_error(exc, f"Failed to update rule {rule_id}", logger=log)
            return RuleOutcome(
                rule_id=rule_id,
                status=RuleOutcomeStatus.FAILED,
                transaction_id=tx_id,
                next_due_date=due,
                error=exc.message,
            )

        status = RuleOutcomeStatus.RETIRED if new_next is None else RuleOutcomeStatus.POSTED
        log_event(
            log,
            "recurring.rule",
            rule_id=rule_id,
            status=status.value,
            transaction_id=tx_id,
            due=due,
            next_due_date=new_next,
        )
        return RuleOutcome(rule_id=rule_id, status=status, transaction_id=tx_id, next_due_date=new_next)
