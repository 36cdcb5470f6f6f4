"""Billing item catalog."""

from decimal import Decimal

from clinic_billing.models.billing import BillingItem
from clinic_billing.schemas.billing import (
    BillingItemCreate,
    BillingItemUpdate,
    InvoiceCreate,
    InvoiceLineIn,
)
from clinic_billing.services.billing_errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)


def _item(billing, code="CONS", name="Consultation", category="service", price="500"):
    res = billing.create_item(BillingItemCreate(code=code, name=name, category=category,
                                                default_price=Decimal(price)))
    assert res.ok, res.error
    return res.data


def _use(billing, item_id):
    return billing.create_invoice(InvoiceCreate(
        patient_id=1, items=[InvoiceLineIn(billing_item_id=item_id, quantity=Decimal(1))])).data


def test_create_and_duplicate_code(billing, audit, invalidator):
    item = _item(billing)
    assert item.default_price == Decimal("500.00")
    assert audit.of("billing_items")[0][3]["action"] == "create"
    assert invalidator.calls[-1] == ["/billing/items"]

    dup = billing.create_item(BillingItemCreate(code="CONS", name="Other", category="service"))
    assert isinstance(dup.error, ConflictError)


def test_create_validation(billing):
    res = billing.create_item(BillingItemCreate(code=" ", name="x", category="lab"))
    assert res.error.field == "code"
    res = billing.create_item(BillingItemCreate(code="A", name="x", category="lab",
                                                default_price=Decimal("-1")))
    assert isinstance(res.error, ValidationError)
    assert res.error.field == "default_price"


def test_update_unreferenced_item(billing, db):
    item = _item(billing)
    res = billing.update_item(item.id, BillingItemUpdate(name="Consultation (senior)",
                                                         default_price=Decimal("650")))
    assert res.ok
    row = db.get(BillingItem, item.id)
    assert row.name == "Consultation (senior)"
    assert row.default_price == Decimal("650.00")


def test_update_code_collision(billing):
    _item(billing, code="A")
    b = _item(billing, code="B")
    res = billing.update_item(b.id, BillingItemUpdate(code="A"))
    assert isinstance(res.error, ConflictError)


def test_referenced_item_only_toggles_active(billing, db):
    item = _item(billing)
    _use(billing, item.id)

    res = billing.update_item(item.id, BillingItemUpdate(default_price=Decimal("1")))
    assert isinstance(res.error, ConflictError)
    assert db.get(BillingItem, item.id).default_price == Decimal("500.00")

    # same value is not a change
    assert billing.update_item(item.id, BillingItemUpdate(name="Consultation")).ok

    res = billing.update_item(item.id, BillingItemUpdate(is_active=False))
    assert res.ok
    assert db.get(BillingItem, item.id).is_active is False


def test_delete_rules(billing, db):
    used = _item(billing, code="USED")
    _use(billing, used.id)
    free_id = _item(billing, code="FREE").id

    res = billing.delete_item(used.id)
    assert isinstance(res.error, ConflictError)
    assert "marking it as inactive" in res.error.msg

    assert billing.delete_item(free_id).ok
    assert db.get(BillingItem, free_id) is None
    assert isinstance(billing.delete_item(free_id).error, NotFoundError)


def test_list_items_filters(billing):
    _item(billing, code="LAB-1", name="Lipid panel", category="lab")
    _item(billing, code="LAB-2", name="CBC", category="lab")
    x = _item(billing, code="RAD-1", name="Chest X-ray", category="radiology")
    billing.update_item(x.id, BillingItemUpdate(is_active=False))

    page = billing.list_items(category="lab").data
    assert [i.name for i in page.items] == ["CBC", "Lipid panel"]

    page = billing.list_items(is_active=False).data
    assert [i.code for i in page.items] == ["RAD-1"]

    page = billing.list_items(search="x-ray").data
    assert page.total_count == 1


def test_get_item(billing):
    item = _item(billing, code="ECHO", name="Echocardiogram", category="cardio", price="1200.50")
    res = billing.get_item(item.id)
    assert res.ok
    assert res.data.code == "ECHO"
    assert res.data.default_price == Decimal("1200.50")

    assert isinstance(billing.get_item(999).error, NotFoundError)


def test_price_must_fit_the_column(billing):
    for price in ("1.999", "1e30"):
        res = billing.create_item(BillingItemCreate(code="P", name="x", category="lab",
                                                    default_price=Decimal(price)))
        assert isinstance(res.error, ValidationError)
        assert res.error.field == "default_price"
