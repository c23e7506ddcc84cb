from __future__ import annotations

from sqlalchemy.orm import Session

from .core.database import session_scope
from .models import Account, Category, TxnType, User


_DEFAULT_CATEGORIES = (
    (TxnType.INCOME, "Salary", "#10B981"),
    (TxnType.INCOME, "Other Income", "#34D399"),
    (TxnType.EXPENSE, "Food & Drink", "#F59E0B"),
    (TxnType.EXPENSE, "Transport", "#3B82F6"),
    (TxnType.EXPENSE, "Bills & Utilities", "#EF4444"),
    (TxnType.EXPENSE, "Shopping", "#8B5CF6"),
)


def seed_user(db: Session, email: str = "demo@example.com") -> User:
    """Create the demo user with a cash account and default categories (idempotent)."""
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(email=email, display_name="Demo", is_active=True)
        db.add(user)
        db.flush()

    if not db.query(Account).filter_by(user_id=user.id, name="Cash").first():
        db.add(Account(user_id=user.id, name="Cash", type="cash", balance=0, currency="IDR"))

    for txn_type, name, color in _DEFAULT_CATEGORIES:
        if not db.query(Category).filter_by(user_id=user.id, type=txn_type, name=name).first():
            db.add(Category(user_id=user.id, type=txn_type, name=name, color=color))
    return user


def seed() -> None:
    with session_scope() as db:
        seed_user(db)


if __name__ == "__main__":
    seed()
