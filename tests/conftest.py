from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import Generator, Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from balanceapp.core.database import Base, create_db_engine, get_db
from balanceapp.core.deps import get_notification_service
from balanceapp.main import app
from balanceapp.services.job_tracker import JobTracker
from balanceapp.services.notification_service import NotificationTally, PushNotificationService
from balanceapp import models


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # 사용자 환경을 건드리지 않도록 임시 파일 SQLite 사용
    fd, path = tempfile.mkstemp(prefix="balance_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(path + suffix)
        except OSError:
            pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_db_engine(test_db_url)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    # 간단 시드: demo user(1) + 프로필, I/E 미분류 그룹/카테고리(코드 00)
    user = models.User(email="demo@example.com", is_active=True)
    session.add(user)
    session.flush()
    session.add(models.UserProfile(user_id=user.id, display_name="Demo", base_currency="EUR", locale="en"))
    for t in ("I", "E"):
        g = models.CategoryGroup(type=t, code_gg=0, name="미분류")
        session.add(g)
        session.flush()
        session.add(models.Category(group_id=g.id, code_cc=0, name="미분류", full_code=f"{t}0000"))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        # 테이블 데이터 정리 (FK 역순)
        with engine.begin() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture()
def notifier() -> MagicMock:
    svc = MagicMock(spec=PushNotificationService)
    svc.dispatch.return_value = NotificationTally()
    svc.clear_badge.return_value = True
    return svc


@pytest.fixture(autouse=True)
def override_dependency(db_session, notifier):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.state.job_tracker = JobTracker()
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def user(db_session) -> models.User:
    return db_session.query(models.User).order_by(models.User.id).first()


@pytest.fixture()
def auth_headers(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def account(db_session, user) -> models.Account:
    acc = models.Account(user_id=user.id, name="Conto corrente", current_balance=1000, currency="EUR")
    db_session.add(acc)
    db_session.commit()
    return acc


@pytest.fixture()
def expense_category(db_session) -> models.Category:
    return db_session.query(models.Category).filter(models.Category.full_code == "E0000").one()


@pytest.fixture()
def make_rule(db_session, user, account):
    """Insert a rule directly, bypassing create-time materialization."""

    def _make(**overrides) -> models.RecurringRule:
        start = overrides.pop("start_date", date(2025, 1, 1))
        data = dict(
            user_id=user.id,
            account_id=account.id,
            description="Netflix",
            amount=10,
            currency="EUR",
            type=models.TxnType.EXPENSE,
            start_date=start,
            next_due_date=start,
            frequency=models.RecurringFrequency.MONTHLY,
            frequency_interval=1,
            day_of_month=start.day,
        )
        data.update(overrides)
        rule = models.RecurringRule(**data)
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make
