from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from maintenance_core.database import Base, build_engine
from maintenance_core.models import Company, User, WorkOrder

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock injected into use-cases."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def at(self, seconds: float) -> "FakeClock":
        self.now = T0 + timedelta(seconds=seconds)
        return self

    def advance(self, seconds: float) -> "FakeClock":
        self.now = self.now + timedelta(seconds=seconds)
        return self


@pytest.fixture()
def db():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def company(db) -> Company:
    company = Company(name="Acme Plant", code=f"ACME-{uuid4().hex[:6]}")
    db.add(company)
    db.commit()
    return company


def _make_user(db, company, *, role: str, username: str, name: str) -> User:
    user = User(
        company_id=company.id,
        username=username,
        password_hash="not-a-real-hash",
        name=name,
        initials="".join(part[0] for part in name.split()),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin(db, company) -> User:
    return _make_user(db, company, role="admin", username="admin", name="Ada Admin")


@pytest.fixture()
def manager(db, company) -> User:
    return _make_user(db, company, role="manager", username="manager", name="Maria Lopez")


@pytest.fixture()
def tech(db, company) -> User:
    return _make_user(db, company, role="tech", username="tech", name="Sam Carter")


@pytest.fixture()
def other_tech(db, company) -> User:
    return _make_user(db, company, role="tech", username="tech2", name="Lee Park")


@pytest.fixture()
def make_work_order(db, company, manager):
    counter = {"n": 0}

    def _make(*, status: str = "open", assigned_to=None, created_by=None, title: str | None = None) -> WorkOrder:
        counter["n"] += 1
        work_order = WorkOrder(
            company_id=company.id,
            work_order_number=counter["n"],
            title=title or f"Work order {counter['n']}",
            priority="medium",
            type="corrective",
            status=status,
            assigned_to_id=assigned_to.id if assigned_to is not None else None,
            created_by_id=(created_by or manager).id,
            total_time_minutes=0.0,
        )
        db.add(work_order)
        db.commit()
        return work_order

    return _make
