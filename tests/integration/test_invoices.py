"""Invoice lifecycle through the orchestrator."""

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from clinic_billing.models.billing import Invoice, InvoiceItem
from clinic_billing.schemas.billing import (
    BillingItemCreate,
    InvoiceCreate,
    InvoiceLineIn,
    PaymentCreate,
)
from clinic_billing.services import billing_invoices
from clinic_billing.services.billing_errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)


def _create(billing, **kw):
    items = kw.pop("items", [InvoiceLineIn(description="Consultation", quantity=Decimal(2),
                                           unit_price=Decimal("50.00"), tax_percent=Decimal(10))])
    return billing.create_invoice(InvoiceCreate(patient_id=kw.pop("patient_id", 42), items=items, **kw))


def test_create_invoice_computes_totals_and_starts_draft(billing, db):
    res = _create(billing, issued_date=date(2026, 3, 1), medical_record_id=9)
    assert res.ok

    inv = db.get(Invoice, res.data.id)
    assert inv.status == "draft"
    assert inv.subtotal == Decimal("100.00")
    assert inv.tax_amount == Decimal("10.00")
    assert inv.discount_amount == Decimal("0.00")
    assert inv.total_amount == Decimal("110.00")
    assert inv.due_date == date(2026, 3, 1) + timedelta(days=30)
    assert len(inv.items) == 1
    assert inv.items[0].line_total == Decimal("110.00")
    assert inv.invoice_number == "INV-20260301-0001"
    assert "/medical-records/9" in res.affected


def test_invoice_numbers_are_sequential_and_unique(billing):
    a = _create(billing).data.invoice_number
    b = _create(billing).data.invoice_number
    assert a != b
    assert int(b.rsplit("-", 1)[1]) == int(a.rsplit("-", 1)[1]) + 1


def test_create_rejects_bad_line_without_writing(billing, db):
    res = _create(billing, items=[
        InvoiceLineIn(description="ok", quantity=Decimal(1), unit_price=Decimal("5")),
        InvoiceLineIn(description="bad", quantity=Decimal(0), unit_price=Decimal("5")),
    ])
    assert not res.ok
    assert isinstance(res.error, ValidationError)
    assert (res.error.index, res.error.field) == (1, "quantity")
    assert db.query(Invoice).count() == 0


def test_create_rejects_due_before_issue(billing):
    res = _create(billing, issued_date=date(2026, 3, 1), due_date=date(2026, 2, 1))
    assert isinstance(res.error, ValidationError)
    assert res.error.field == "due_date"


def test_catalog_line_fills_description_and_price(billing, db):
    item = billing.create_item(BillingItemCreate(code="LAB-CBC", name="Complete blood count",
                                                 category="lab", default_price=Decimal("35.00"))).data
    res = _create(billing, items=[InvoiceLineIn(billing_item_id=item.id, quantity=Decimal(2))])
    assert res.ok
    line = db.get(Invoice, res.data.id).items[0]
    assert line.description == "Complete blood count"
    assert line.unit_price == Decimal("35.00")
    assert line.line_total == Decimal("70.00")


def test_inactive_catalog_item_is_rejected_with_line_index(billing):
    item = billing.create_item(BillingItemCreate(code="OLD", name="Old test", category="lab",
                                                 default_price=Decimal("1"), is_active=False)).data
    res = _create(billing, items=[
        InvoiceLineIn(description="a", quantity=Decimal(1), unit_price=Decimal("1")),
        InvoiceLineIn(billing_item_id=item.id, quantity=Decimal(1)),
    ])
    assert isinstance(res.error, ValidationError)
    assert (res.error.index, res.error.field) == (1, "billing_item_id")


def test_failure_after_first_write_rolls_everything_back(billing, db, monkeypatch, audit, invalidator):
    def boom(inv):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(billing_invoices, "invoice_paths", boom)

    res = _create(billing)
    assert not res.ok
    assert isinstance(res.error, PersistenceError)
    assert db.query(Invoice).count() == 0
    assert db.query(InvoiceItem).count() == 0
    assert audit.events == []
    assert invalidator.calls == []


def test_issue_only_from_draft(billing, db):
    inv_id = _create(billing).data.id
    assert billing.issue_invoice(inv_id).ok
    assert db.get(Invoice, inv_id).status == "issued"

    again = billing.issue_invoice(inv_id)
    assert isinstance(again.error, ConflictError)


def test_zero_total_invoice_is_paid_on_issue(billing, db):
    res = _create(billing, items=[InvoiceLineIn(description="Free follow-up", quantity=Decimal(1),
                                                unit_price=Decimal("0"))])
    billing.issue_invoice(res.data.id)
    assert db.get(Invoice, res.data.id).status == "paid"


def test_delete_only_draft(billing, db, issued_invoice):
    draft_id = _create(billing).data.id
    res = billing.delete_invoice(draft_id)
    assert res.ok
    assert db.get(Invoice, draft_id) is None
    assert db.query(InvoiceItem).filter(InvoiceItem.invoice_id == draft_id).count() == 0

    inv_id = issued_invoice((1, "10.00", 0))
    res = billing.delete_invoice(inv_id)
    assert isinstance(res.error, ConflictError)
    assert db.get(Invoice, inv_id) is not None


def test_delete_missing_invoice(billing):
    assert isinstance(billing.delete_invoice(999).error, NotFoundError)


def test_cancel_from_draft_or_issued_only(billing, db, issued_invoice):
    draft_id = _create(billing).data.id
    assert billing.cancel_invoice(draft_id, notes="entered twice").ok
    inv = db.get(Invoice, draft_id)
    assert inv.status == "cancelled"
    assert inv.notes == "entered twice"

    inv_id = issued_invoice((1, "100.00", 0))
    billing.record_payment(inv_id, PaymentCreate(amount=Decimal("10")))
    res = billing.cancel_invoice(inv_id)
    assert isinstance(res.error, ConflictError)
    assert db.get(Invoice, inv_id).status == "partially_paid"


def test_cancelled_invoice_refuses_payments(billing, issued_invoice):
    inv_id = issued_invoice((1, "100.00", 0))
    billing.cancel_invoice(inv_id)
    res = billing.record_payment(inv_id, PaymentCreate(amount=Decimal("10")))
    assert isinstance(res.error, ConflictError)


def test_mark_overdue_flips_only_untouched_issued(billing, db, issued_invoice):
    stale = issued_invoice((1, "100.00", 0), issued_date=date(2026, 1, 1), due_date=date(2026, 1, 31))
    paying = issued_invoice((1, "100.00", 0), issued_date=date(2026, 1, 1), due_date=date(2026, 1, 31))
    fresh = issued_invoice((1, "100.00", 0), issued_date=date(2026, 1, 1), due_date=date(2026, 3, 31))
    billing.record_payment(paying, PaymentCreate(amount=Decimal("10")))

    res = billing.mark_overdue(date(2026, 2, 15))
    assert res.ok
    assert res.data == [stale]
    assert db.get(Invoice, stale).status == "overdue"
    assert db.get(Invoice, paying).status == "partially_paid"
    assert db.get(Invoice, fresh).status == "issued"

    # a reversed payment lands on issued; the next scheduler run re-flags it
    pay = billing.record_payment(stale, PaymentCreate(amount=Decimal("20"))).data
    assert db.get(Invoice, stale).status == "partially_paid"
    billing.reverse_payment(pay.id)
    assert db.get(Invoice, stale).status == "issued"


def test_get_invoice_includes_balance(billing, issued_invoice):
    inv_id = issued_invoice((2, "50.00", 10))
    billing.record_payment(inv_id, PaymentCreate(amount=Decimal("60.00")))

    res = billing.get_invoice(inv_id)
    assert res.ok
    assert res.data.total_paid == Decimal("60.00")
    assert res.data.remaining == Decimal("50.00")
    assert len(res.data.invoice.payments) == 1

    assert isinstance(billing.get_invoice(12345).error, NotFoundError)


def test_list_invoices_filters_and_paginates(billing, issued_invoice):
    a = issued_invoice((1, "10.00", 0), patient_id=1, issued_date=date(2026, 1, 1))
    b = issued_invoice((1, "10.00", 0), patient_id=1, issued_date=date(2026, 2, 1))
    issued_invoice((1, "10.00", 0), patient_id=2, issued_date=date(2026, 3, 1))

    page = billing.list_invoices(patient_id=1).data
    assert page.total_count == 2
    assert [i.id for i in page.invoices] == [b, a]

    page = billing.list_invoices(start_date=date(2026, 1, 15), end_date=date(2026, 2, 15)).data
    assert [i.id for i in page.invoices] == [b]

    page = billing.list_invoices(limit=1, page=2).data
    assert page.total_count == 3
    assert len(page.invoices) == 1

    assert isinstance(billing.list_invoices(status="bogus").error, ValidationError)


def test_backdated_invoice_is_numbered_by_issued_date(billing):
    today = _create(billing, issued_date=date(2026, 3, 2)).data.invoice_number
    back = _create(billing, issued_date=date(2026, 3, 1)).data.invoice_number
    again = _create(billing, issued_date=date(2026, 3, 2)).data.invoice_number
    assert (today, back, again) == ("INV-20260302-0001", "INV-20260301-0001", "INV-20260302-0002")


def test_oversized_and_over_precise_lines_come_back_as_validation(billing, db):
    for line in (
        InvoiceLineIn(description="x", quantity=Decimal(1), unit_price=Decimal("1e30")),
        InvoiceLineIn(description="x", quantity=Decimal("1e40"), unit_price=Decimal("1")),
        InvoiceLineIn(description="x", quantity=Decimal(100), unit_price=Decimal("0.125")),
    ):
        res = _create(billing, items=[line])
        assert not res.ok
        assert isinstance(res.error, ValidationError)
        assert res.error.index == 0
    assert db.query(Invoice).count() == 0


def test_invoice_total_beyond_column_range(billing):
    big = InvoiceLineIn(description="x", quantity=Decimal(1), unit_price=Decimal("6000000000.00"))
    res = _create(billing, items=[big, big])
    assert isinstance(res.error, ValidationError)
    assert res.error.field == "items"


def test_unexpected_error_is_rolled_back_and_reported(billing, db, monkeypatch, audit):
    def boom(inv):
        raise RuntimeError("bug")

    monkeypatch.setattr(billing_invoices, "invoice_paths", boom)

    res = _create(billing)
    assert not res.ok
    assert isinstance(res.error, InternalError)
    assert db.query(Invoice).count() == 0
    assert audit.events == []


def test_refund_paid_invoice(billing, db, audit, issued_invoice):
    inv_id = issued_invoice((1, "100.00", 0))
    pay_id = billing.record_payment(inv_id, PaymentCreate(amount=Decimal("100"))).data.id
    audit.events.clear()

    res = billing.refund_invoice(inv_id, notes="procedure not performed")
    assert res.ok
    inv = db.get(Invoice, inv_id)
    assert inv.status == "refunded"
    assert inv.notes == "procedure not performed"
    assert audit.events[0][3] == {"action": "update", "status": "refunded", "total_paid": "100.00"}

    # the ledger is closed once refunded
    assert isinstance(billing.record_payment(inv_id, PaymentCreate(amount=Decimal("1"))).error,
                      ConflictError)
    assert isinstance(billing.reverse_payment(pay_id).error, ConflictError)
    assert isinstance(billing.refund_invoice(inv_id).error, ConflictError)
    assert db.get(Invoice, inv_id).status == "refunded"


def test_refund_requires_money_received(billing, issued_invoice):
    inv_id = issued_invoice((1, "100.00", 0))
    res = billing.refund_invoice(inv_id)
    assert isinstance(res.error, ConflictError)

    billing.record_payment(inv_id, PaymentCreate(amount=Decimal("30")))
    assert billing.refund_invoice(inv_id).ok
    assert isinstance(billing.refund_invoice(404).error, NotFoundError)
