from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger import models
from ledger.errors import StoreError


log = logging.getLogger("ledger.transactions")


class TransactionBalanceService:
    """Keep account balances in step with manually entered transactions.

    The row and its balance delta are written in one commit, so a posting is
    never visible without its effect on the account.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def post(self, tx: models.Transaction) -> models.Transaction:
        try:
            self.db.add(tx)
            self._apply_delta(tx.account_id, tx.signed_amount())
            tx.balance_applied = True
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError("Failed to create transaction", details=str(exc)) from exc
        self.db.refresh(tx)
        return tx

    def remove(self, tx: models.Transaction) -> None:
        """Delete ``tx`` and revert its delta if it had been applied."""
        tx_id = tx.id
        try:
            if tx.balance_applied:
                self._apply_delta(tx.account_id, -tx.signed_amount())
            self.db.delete(tx)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to delete transaction {tx_id}", details=str(exc)) from exc
        log.info("Deleted transaction %s", tx_id)

    def _apply_delta(self, account_id: int, delta: float) -> None:
        if delta == 0:
            return
        account = self.db.get(models.Account, account_id)
        if account is None:
            return
        account.balance = float(account.balance or 0) + float(delta)
