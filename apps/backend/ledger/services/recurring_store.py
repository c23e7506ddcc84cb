from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger import models
from ledger.errors import FetchError, StoreError


class RecurringStore(Protocol):
    def fetch_due_rules(self, today: date) -> list[models.RecurringRule]: ...

    def insert_transaction(self, rule: models.RecurringRule, today: date) -> models.Transaction: ...

    def apply_balance_delta(
        self, account_id: int, signed_amount: float, *, transaction_id: Optional[int] = None
    ) -> None: ...

    def update_rule(
        self, rule_id: int, *, next_due_date: Optional[date], last_created_date: Optional[date]
    ) -> None: ...

    def rollback(self) -> None: ...


class SqlRecurringStore:
    """Durable store used by the recurring processor.

    Each operation is its own unit of work: it commits on success and rolls back
    and raises ``StoreError`` on any database failure, so one rule's failure never
    leaves the session unusable for the next rule.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def fetch_due_rules(self, today: date) -> list[models.RecurringRule]:
        try:
            stmt = (
                select(models.RecurringRule)
                .where(
                    models.RecurringRule.next_due_date.is_not(None),
                    models.RecurringRule.next_due_date <= today,
                )
                .order_by(models.RecurringRule.id)
            )
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise FetchError("Failed to fetch due recurring rules", details=str(exc)) from exc

    def rollback(self) -> None:
        self.db.rollback()

    def find_posting(self, rule: models.RecurringRule) -> models.Transaction | None:
        return (
            self.db.query(models.Transaction)
            .filter(
                models.Transaction.user_id == rule.user_id,
                models.Transaction.external_id == rule.occurrence_key(),
            )
            .first()
        )

    def insert_transaction(self, rule: models.RecurringRule, today: date) -> models.Transaction:
        """Post the rule's current occurrence dated ``today``.

        Returns the existing posting when this occurrence was already posted by an
        earlier, partially failed run.
        """
        try:
            existing = self.find_posting(rule)
            if existing is not None:
                return existing
            tx = models.Transaction(
                user_id=rule.user_id,
                occurred_at=today,
                type=rule.type,
                account_id=rule.account_id,
                category_id=rule.category_id,
                amount=abs(float(rule.amount)),
                description=rule.description,
                recurring_rule_id=rule.id,
                external_id=rule.occurrence_key(),
                balance_applied=False,
            )
            self.db.add(tx)
            self.db.commit()
            self.db.refresh(tx)
            return tx
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to create transaction for rule {rule.id}", details=str(exc)) from exc

    def apply_balance_delta(
        self, account_id: int, signed_amount: float, *, transaction_id: Optional[int] = None
    ) -> None:
        """Add ``signed_amount`` to the account balance.

        When ``transaction_id`` is given the posting is flagged as applied in the
        same commit.
        """
        try:
            account = self.db.get(models.Account, account_id)
            if account is None:
                raise StoreError(f"Account {account_id} not found")
            account.balance = float(account.balance or 0) + float(signed_amount)
            if transaction_id is not None:
                tx = self.db.get(models.Transaction, transaction_id)
                if tx is not None:
                    tx.balance_applied = True
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to update balance for account {account_id}", details=str(exc)) from exc
        except StoreError:
            self.db.rollback()
            raise

    def update_rule(
        self, rule_id: int, *, next_due_date: Optional[date], last_created_date: Optional[date]
    ) -> None:
        try:
            rule = self.db.get(models.RecurringRule, rule_id)
            if rule is None:
                raise StoreError(f"Recurring rule {rule_id} not found")
            rule.next_due_date = next_due_date
            rule.last_created_date = last_created_date
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to update rule {rule_id}", details=str(exc)) from exc
        except StoreError:
            self.db.rollback()
            raise
