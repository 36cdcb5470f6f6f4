# FILE: clinic_billing/services/billing_invoices.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from clinic_billing.core.config import settings
from clinic_billing.models.billing import (
    BillingItem,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
)
from clinic_billing.schemas.billing import InvoiceCreate
from clinic_billing.services.billing_calc import build_line_drafts, compute_invoice_totals
from clinic_billing.services.billing_errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_billing.services.billing_hooks import AuditEvent, Outcome, invoice_paths
from clinic_billing.services.billing_numbers import next_number
from clinic_billing.services.billing_math import MONEY_MAX, money2
from clinic_billing.services.billing_payment_service import (
    lock_invoice,
    paid_total,
    refresh_status,
)
from clinic_billing.services.invoice_status import as_status

logger = logging.getLogger(__name__)

CANCELLABLE = {InvoiceStatus.DRAFT, InvoiceStatus.ISSUED}
REFUNDABLE = {InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID}


@dataclass
class InvoiceDetail:
    invoice: Invoice
    total_paid: Decimal
    remaining: Decimal


@dataclass
class InvoicePage:
    invoices: List[Invoice]
    total_count: int
    page: int
    limit: int


def _line_raws(db: Session, inp: InvoiceCreate) -> List[Dict[str, Any]]:
    """
    Resolve catalog references. A catalog line may omit description and
    unit_price; the item's name and default price fill them in.
    """
    raws: List[Dict[str, Any]] = []
    for i, line in enumerate(inp.items or []):
        raw = line.model_dump()
        item_id = raw.get("billing_item_id")
        if item_id is not None:
            item = db.get(BillingItem, int(item_id))
            if not item or not item.is_active:
                raise ValidationError(
                    f"Line {i}: billing item {item_id} not found or inactive",
                    index=i,
                    field="billing_item_id")
            if not (raw.get("description") or "").strip():
                raw["description"] = item.name
            if raw.get("unit_price") is None:
                raw["unit_price"] = item.default_price
        raws.append(raw)
    return raws


# ============================================================
# Mutations (NO commit here)
# ============================================================
def create_invoice(
    db: Session,
    *,
    inp: InvoiceCreate,
    user_id: Optional[int] = None,
) -> Outcome:
    if int(inp.patient_id) <= 0:
        raise ValidationError("patient_id must be positive", field="patient_id")

    issued = inp.issued_date or date.today()
    due = inp.due_date or (
        issued + timedelta(days=settings.BILLING_DEFAULT_DUE_DAYS))
    if due < issued:
        raise ValidationError("due_date cannot be before issued_date",
                              field="due_date")

    drafts = build_line_drafts(_line_raws(db, inp))
    totals = compute_invoice_totals(drafts)
    if max(totals.subtotal, totals.total_amount) > MONEY_MAX:
        raise ValidationError(f"Invoice total exceeds {MONEY_MAX}",
                              field="items")

    inv = Invoice(
        invoice_number=next_number(db,
                                   prefix=settings.BILLING_INVOICE_PREFIX,
                                   on=issued),
        patient_id=int(inp.patient_id),
        medical_record_id=inp.medical_record_id,
        appointment_id=inp.appointment_id,
        issued_date=issued,
        due_date=due,
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        discount_amount=totals.discount_amount,
        total_amount=totals.total_amount,
        status=InvoiceStatus.DRAFT.value,
        notes=(inp.notes or None),
        created_by=user_id,
    )
    for seq, ln in enumerate(totals.lines, start=1):
        d = ln.draft
        inv.items.append(
            InvoiceItem(
                seq=seq,
                billing_item_id=d.billing_item_id,
                description=d.description,
                quantity=d.quantity,
                unit_price=d.unit_price,
                discount_percent=d.discount_percent,
                discount_amount=ln.discount_amount,
                tax_percent=d.tax_percent,
                tax_amount=ln.tax_amount,
                line_total=ln.line_total,
            ))
    db.add(inv)
    db.flush()

    logger.info("invoice %s created for patient %s total=%s",
                inv.invoice_number, inv.patient_id, totals.total_amount)

    return Outcome(
        data=inv,
        events=[
            AuditEvent("invoices", inv.id, "create", {
                "invoice_number": inv.invoice_number,
                "patient_id": inv.patient_id,
                "total_amount": str(totals.total_amount),
            })
        ],
        affected=invoice_paths(inv),
    )


def issue_invoice(db: Session, *, invoice_id: int) -> Outcome:
    inv = lock_invoice(db, invoice_id)
    st = as_status(inv.status)
    if st != InvoiceStatus.DRAFT:
        raise ConflictError(
            f"Only draft invoices can be issued (status={st.value})")

    inv.status = InvoiceStatus.ISSUED.value
    inv.issued_at = datetime.utcnow()
    db.flush()
    # a zero-total invoice is settled the moment it is issued
    refresh_status(db, inv)

    return Outcome(
        data=inv,
        events=[
            AuditEvent("invoices", inv.id, "update", {"status": inv.status})
        ],
        affected=invoice_paths(inv),
    )


def cancel_invoice(
    db: Session,
    *,
    invoice_id: int,
    notes: Optional[str] = None,
) -> Outcome:
    inv = lock_invoice(db, invoice_id)
    st = as_status(inv.status)
    if st not in CANCELLABLE:
        raise ConflictError(
            f"Only draft or issued invoices can be cancelled (status={st.value})"
        )

    inv.status = InvoiceStatus.CANCELLED.value
    inv.cancelled_at = datetime.utcnow()
    if notes:
        inv.notes = notes
    db.flush()

    return Outcome(
        data=inv,
        events=[
            AuditEvent("invoices", inv.id, "update", {"status": inv.status})
        ],
        affected=invoice_paths(inv),
    )


def refund_invoice(
    db: Session,
    *,
    invoice_id: int,
    notes: Optional[str] = None,
) -> Outcome:
    """
    Close a settled or part-settled invoice as refunded. Payments stay on
    the ledger as history; the status is pinned from here on.
    """
    inv = lock_invoice(db, invoice_id)
    st = as_status(inv.status)
    if st not in REFUNDABLE:
        raise ConflictError(
            f"Only paid or partially paid invoices can be refunded (status={st.value})"
        )

    paid = paid_total(db, inv.id)
    inv.status = InvoiceStatus.REFUNDED.value
    if notes:
        inv.notes = notes
    db.flush()
    logger.info("invoice %s refunded (paid=%s)", inv.invoice_number, paid)

    return Outcome(
        data=inv,
        events=[
            AuditEvent("invoices", inv.id, "update", {
                "status": inv.status,
                "total_paid": str(paid),
            })
        ],
        affected=invoice_paths(inv),
    )


def delete_invoice(db: Session, *, invoice_id: int) -> Outcome:
    inv = lock_invoice(db, invoice_id)
    st = as_status(inv.status)
    if st != InvoiceStatus.DRAFT:
        raise ConflictError(
            "Only draft invoices can be deleted. Consider cancelling the invoice instead."
        )

    paths = invoice_paths(inv)
    data = {"id": inv.id, "invoice_number": inv.invoice_number}

    # items go with it (cascade)
    db.delete(inv)
    db.flush()

    return Outcome(
        data=data,
        events=[
            AuditEvent("invoices", data["id"], "delete",
                       {"invoice_number": data["invoice_number"]})
        ],
        affected=paths,
    )


def mark_overdue(db: Session, *, as_of: Optional[date] = None) -> Outcome:
    """
    Scheduler entry point. Only untouched issued invoices flip; anything
    with money or a claim against it keeps its ledger-derived status.
    """
    as_of = as_of or date.today()
    rows = (db.query(Invoice).filter(
        Invoice.status == InvoiceStatus.ISSUED.value).filter(
            Invoice.due_date < as_of).order_by(
                Invoice.id.asc()).with_for_update().all())

    events: List[AuditEvent] = []
    affected: List[str] = []
    for inv in rows:
        inv.status = InvoiceStatus.OVERDUE.value
        events.append(
            AuditEvent("invoices", inv.id, "update",
                       {"status": inv.status}))
        for p in invoice_paths(inv):
            if p not in affected:
                affected.append(p)
    db.flush()

    if rows:
        logger.info("marked %d invoices overdue as of %s", len(rows), as_of)

    return Outcome(data=[inv.id for inv in rows],
                   events=events,
                   affected=affected)


# ============================================================
# Reads
# ============================================================
def get_invoice(db: Session, *, invoice_id: int) -> Outcome:
    inv = (db.query(Invoice).options(
        selectinload(Invoice.items),
        selectinload(Invoice.payments),
        selectinload(Invoice.claims),
    ).filter(Invoice.id == int(invoice_id)).first())
    if not inv:
        raise NotFoundError("Invoice not found")

    paid = paid_total(db, inv.id)
    return Outcome(data=InvoiceDetail(
        invoice=inv,
        total_paid=paid,
        remaining=money2(inv.total_amount) - paid,
    ))


def list_invoices(
    db: Session,
    *,
    patient_id: Optional[int] = None,
    medical_record_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Outcome:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 10), 200))

    q = db.query(Invoice)
    if patient_id:
        q = q.filter(Invoice.patient_id == int(patient_id))
    if medical_record_id:
        q = q.filter(Invoice.medical_record_id == int(medical_record_id))
    if appointment_id:
        q = q.filter(Invoice.appointment_id == int(appointment_id))
    if status:
        try:
            st = as_status(status)
        except ValueError:
            raise ValidationError(f"Unknown invoice status: {status}",
                                  field="status")
        q = q.filter(Invoice.status == st.value)
    if start_date:
        q = q.filter(Invoice.issued_date >= start_date)
    if end_date:
        q = q.filter(Invoice.issued_date <= end_date)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(Invoice.invoice_number.ilike(like), Invoice.notes.ilike(like)))

    total = q.count()
    rows = (q.options(selectinload(Invoice.items)).order_by(
        Invoice.issued_date.desc(),
        Invoice.id.desc()).offset((page - 1) * limit).limit(limit).all())

    return Outcome(data=InvoicePage(invoices=rows,
                                    total_count=total,
                                    page=page,
                                    limit=limit))
