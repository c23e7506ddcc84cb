from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import Generator, Any, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from ledger.core.database import Base, build_engine, get_db
from ledger.main import app
from ledger import models


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # 사용자 환경을 건드리지 않도록 임시 파일 SQLite 사용
    fd, path = tempfile.mkstemp(prefix="ledger_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = build_engine(test_db_url)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    # 간단 시드: demo user(1)
    user = models.User(email="demo@example.com", display_name="Demo", is_active=True)
    session.add(user)
    session.commit()

    try:
        yield session
    finally:
        session.close()
        # 테이블 데이터 정리 (SQLAlchemy 2.x 스타일)
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


class LedgerFactory:
    """Direct ORM helpers for tests that exercise services without HTTP."""

    def __init__(self, session) -> None:
        self.session = session

    @property
    def user_id(self) -> int:
        return self.session.query(models.User).order_by(models.User.id).first().id

    def account(self, name: str = "Cash", balance: float = 0, **kwargs) -> models.Account:
        acc = models.Account(user_id=self.user_id, name=name, type="cash", balance=balance, currency="IDR", **kwargs)
        self.session.add(acc)
        self.session.commit()
        return acc

    def category(self, name: str, txn_type: models.TxnType = models.TxnType.EXPENSE) -> models.Category:
        cat = models.Category(user_id=self.user_id, name=name, type=txn_type)
        self.session.add(cat)
        self.session.commit()
        return cat

    def rule(
        self,
        account: models.Account,
        *,
        next_due_date: Optional[date],
        frequency: str = "MONTHLY",
        amount: float = 100,
        txn_type: models.TxnType = models.TxnType.EXPENSE,
        end_date: Optional[date] = None,
        category: Optional[models.Category] = None,
        description: str = "Rent",
    ) -> models.RecurringRule:
        rule = models.RecurringRule(
            user_id=self.user_id,
            description=description,
            type=txn_type,
            amount=amount,
            account_id=account.id,
            category_id=category.id if category else None,
            frequency=frequency,
            start_date=next_due_date,
            end_date=end_date,
            next_due_date=next_due_date,
        )
        self.session.add(rule)
        self.session.commit()
        return rule


@pytest.fixture()
def factory(db_session) -> LedgerFactory:
    return LedgerFactory(db_session)
