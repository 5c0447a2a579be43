import os
from typing import Callable, Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("MP_WEBHOOK_SECRET", "")
os.environ.setdefault("COINBASE_WEBHOOK_SECRET", "")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.init_db import init_db
from app.models.entitlement import AccountEntitlement
from app.models.plan import Plan
from app.models.user import User


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def seed_plans(db: Session) -> dict[str, Plan]:
    plans = {
        "explorer": Plan(code="explorer", name="Explorer", price_cents=0, links_quota=5, max_expiration_days=7),
        "creator": Plan(code="creator", name="Creator", price_cents=500, links_quota=50, max_expiration_days=90),
        "power": Plan(code="power", name="Power", price_cents=1500, links_quota=None, max_expiration_days=None),
        "closed": Plan(code="closed", name="Closed", price_cents=0, links_quota=0, max_expiration_days=None),
    }
    db.add_all(plans.values())
    db.commit()
    return plans


@pytest.fixture()
def plans(db_session: Session) -> dict[str, Plan]:
    return seed_plans(db_session)


@pytest.fixture()
def make_account(db_session: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(
        plan: Plan | None = None,
        *,
        links_created: int = 0,
        credits: int = 0,
    ) -> User:
        counter["n"] += 1
        user = User(email=f"user{counter['n']}@example.com", password_hash="not-a-real-hash")
        db_session.add(user)
        db_session.flush()
        if plan is not None or credits:
            db_session.add(AccountEntitlement(
                account_id=user.id,
                plan_id=plan.id if plan is not None else None,
                links_created_in_cycle=links_created,
                credit_balance=credits,
            ))
        db_session.commit()
        return user

    return _make
