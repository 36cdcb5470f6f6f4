# FILE: clinic_billing/services/billing_item_service.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import InvalidOperation
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinic_billing.models.billing import BillingItem, InvoiceItem
from clinic_billing.schemas.billing import BillingItemCreate, BillingItemUpdate
from clinic_billing.services.billing_errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_billing.services.billing_hooks import AuditEvent, Outcome, item_paths
from clinic_billing.services.billing_math import money_exact

# fields frozen once an invoice line points at the item
PRICED_FIELDS = ("code", "name", "category", "description", "default_price")


@dataclass
class BillingItemPage:
    items: List[BillingItem]
    total_count: int
    page: int
    limit: int


def _text(v: Optional[str], field: str) -> str:
    s = (v or "").strip()
    if not s:
        raise ValidationError(f"{field} is required", field=field)
    return s


def _price(v):
    try:
        p = money_exact(v)
    except (InvalidOperation, TypeError):
        raise ValidationError("default_price must be a number",
                              field="default_price")
    except ValueError as e:
        raise ValidationError(f"default_price {e}", field="default_price")
    if p < 0:
        raise ValidationError("default_price must be >= 0",
                              field="default_price")
    return p


def _get_item(db: Session, item_id: int) -> BillingItem:
    item = db.get(BillingItem, int(item_id))
    if not item:
        raise NotFoundError("Billing item not found")
    return item


def get_item(db: Session, *, item_id: int) -> Outcome:
    return Outcome(data=_get_item(db, item_id))


def _code_taken(db: Session, code: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(BillingItem.id).filter(BillingItem.code == code)
    if exclude_id is not None:
        q = q.filter(BillingItem.id != int(exclude_id))
    return q.first() is not None


def is_referenced(db: Session, item_id: int) -> bool:
    row = (db.query(InvoiceItem.id).filter(
        InvoiceItem.billing_item_id == int(item_id)).first())
    return row is not None


def create_item(db: Session, *, inp: BillingItemCreate) -> Outcome:
    code = _text(inp.code, "code")
    item = BillingItem(
        code=code,
        name=_text(inp.name, "name"),
        category=_text(inp.category, "category"),
        description=(inp.description or None),
        default_price=_price(inp.default_price),
        is_active=bool(inp.is_active),
    )
    if _code_taken(db, code):
        raise ConflictError(f"Billing item code {code} already exists")

    db.add(item)
    db.flush()

    return Outcome(
        data=item,
        events=[
            AuditEvent("billing_items", item.id, "create", {
                "code": item.code,
                "name": item.name,
                "category": item.category,
                "default_price": str(item.default_price),
            })
        ],
        affected=item_paths(),
    )


def update_item(db: Session, *, item_id: int, inp: BillingItemUpdate) -> Outcome:
    item = _get_item(db, item_id)

    changes = {}
    if inp.code is not None:
        changes["code"] = _text(inp.code, "code")
    if inp.name is not None:
        changes["name"] = _text(inp.name, "name")
    if inp.category is not None:
        changes["category"] = _text(inp.category, "category")
    if inp.description is not None:
        changes["description"] = inp.description or None
    if inp.default_price is not None:
        changes["default_price"] = _price(inp.default_price)

    changes = {k: v for k, v in changes.items() if getattr(item, k) != v}

    if changes and is_referenced(db, item.id):
        raise ConflictError(
            "Billing item is used in invoices; only its active flag can change")
    if "code" in changes and _code_taken(db, changes["code"], item.id):
        raise ConflictError(
            f"Billing item code {changes['code']} already exists")

    for k, v in changes.items():
        setattr(item, k, v)
    if inp.is_active is not None:
        item.is_active = bool(inp.is_active)
    db.flush()

    payload = {k: str(v) if v is not None else None for k, v in changes.items()}
    payload["is_active"] = item.is_active
    return Outcome(
        data=item,
        events=[AuditEvent("billing_items", item.id, "update", payload)],
        affected=item_paths(item.id),
    )


def delete_item(db: Session, *, item_id: int) -> Outcome:
    item = _get_item(db, item_id)
    if is_referenced(db, item.id):
        raise ConflictError(
            "Cannot delete billing item as it is used in invoices. "
            "Consider marking it as inactive instead.")

    data = {"id": item.id, "code": item.code}
    db.delete(item)
    db.flush()

    return Outcome(
        data=data,
        events=[AuditEvent("billing_items", data["id"], "delete", {"code": data["code"]})],
        affected=item_paths(data["id"]),
    )


def list_items(
    db: Session,
    *,
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> Outcome:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 50), 500))

    q = db.query(BillingItem)
    if category:
        q = q.filter(BillingItem.category == category)
    if is_active is not None:
        q = q.filter(BillingItem.is_active.is_(bool(is_active)))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(
                BillingItem.name.ilike(like),
                BillingItem.code.ilike(like),
                BillingItem.description.ilike(like),
            ))

    total = q.count()
    rows = (q.order_by(BillingItem.category.asc(),
                       BillingItem.name.asc()).offset(
                           (page - 1) * limit).limit(limit).all())

    return Outcome(data=BillingItemPage(items=rows,
                                        total_count=total,
                                        page=page,
                                        limit=limit))
