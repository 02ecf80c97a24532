"""
Pytest fixtures for the medstore test suite.

Provides:
- a throwaway SQLite file database per test, built with the same engine
  hooks as production (BEGIN IMMEDIATE + busy timeout)
- sessions, a fixed clock, and medicine / batch factories
- a FastAPI TestClient bound to the per-test database
"""

import os

# keep the module-level engine off MySQL while the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from medstore.db.base import Base
from medstore.db.session import build_engine, build_session_factory
from medstore.schemas.inventory import BatchCreate
from medstore.services.catalog import create_medicine
from medstore.services.inventory import create_batch

OWNER = 1
OTHER_OWNER = 2

# fixed clock: 15 Oct 2026, 10:00 store time
NOW = datetime(2026, 10, 15, 10, 0, 0)
TODAY = NOW.date()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'medstore.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """One open transaction per test, rolled back afterwards."""
    session = session_factory()
    session.begin()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def medicine(db):
    return create_medicine(
        db,
        name="Paracetamol 500mg",
        generic_name="Paracetamol",
        manufacturer="Acme Pharma",
        form="tablet",
        strength="500mg",
    )


@pytest.fixture
def make_batch(db, medicine):
    """Factory: make_batch(quantity=..., expiry_date=..., ...) -> InventoryBatch."""
    seq = count(1)

    def _make(owner_id: int = OWNER, now: datetime = NOW, **overrides):
        data = {
            "medicine_id": medicine.id,
            "batch_number": f"B-{next(seq):03d}",
            "expiry_date": TODAY + timedelta(days=365),
            "manufacture_date": TODAY - timedelta(days=30),
            "quantity": 100,
            "purchase_price": Decimal("5.00"),
            "selling_price": Decimal("10.00"),
            "mrp": Decimal("12.00"),
            "supplier": "MedDistributors",
            "supplier_invoice_number": "INV-1001",
        }
        data.update(overrides)
        return create_batch(db, owner_id, BatchCreate(**data), now=now)

    return _make


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from medstore.api.deps import get_db
    from medstore.main import create_app

    app = create_app()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"X-Owner-Id": str(OWNER)}


def future(days: int) -> date:
    return TODAY + timedelta(days=days)
