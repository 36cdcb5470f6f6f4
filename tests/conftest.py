"""Shared pytest fixtures: in-memory database and a wired orchestrator."""

import os
from datetime import date
from decimal import Decimal

import pytest

# must be set before clinic_billing.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy.orm import sessionmaker

from clinic_billing.db.base import Base
from clinic_billing.db.session import build_engine
from clinic_billing.schemas.billing import InvoiceCreate, InvoiceLineIn
from clinic_billing.services.billing_service import BillingOrchestrator


class RecordingAudit:
    def __init__(self):
        self.events = []

    def __call__(self, entity_type, entity_id, actor_id, payload):
        self.events.append((entity_type, entity_id, actor_id, payload))

    def of(self, entity_type):
        return [e for e in self.events if e[0] == entity_type]


class RecordingInvalidator:
    def __init__(self):
        self.calls = []

    def __call__(self, paths):
        self.calls.append(paths)


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, future=True)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def invalidator():
    return RecordingInvalidator()


@pytest.fixture
def billing(db, audit, invalidator):
    return BillingOrchestrator(db, user_id=7, audit=audit, invalidate=invalidator)


@pytest.fixture
def issued_invoice(billing):
    """Factory: create and issue an invoice with one line per (qty, price, tax%)."""

    def _make(*lines, patient_id=42, **kwargs):
        items = [
            InvoiceLineIn(
                description=f"Service {i}",
                quantity=Decimal(qty),
                unit_price=Decimal(price),
                tax_percent=Decimal(tax),
            ) for i, (qty, price, tax) in enumerate(lines)
        ]
        res = billing.create_invoice(
            InvoiceCreate(patient_id=patient_id,
                          issued_date=kwargs.pop("issued_date", date(2026, 1, 5)),
                          items=items,
                          **kwargs))
        assert res.ok, res.error
        inv_id = res.data.id
        issued = billing.issue_invoice(inv_id)
        assert issued.ok, issued.error
        return inv_id

    return _make
