# FILE: clinic_billing/services/billing_payment_service.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_billing.models.billing import (
    ClaimStatus,
    InsuranceClaim,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentMethod,
)
from clinic_billing.services.billing_errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_billing.services.billing_hooks import AuditEvent, Outcome, invoice_paths
from clinic_billing.services.billing_math import ZERO, exceeds, money2, money_exact
from clinic_billing.services.invoice_status import as_status, resolve_status

logger = logging.getLogger(__name__)

# no payments or claims against these
CLOSED_STATUSES = {
    InvoiceStatus.DRAFT,
    InvoiceStatus.CANCELLED,
    InvoiceStatus.REFUNDED,
}


def parse_amount(v, field: str) -> Decimal:
    try:
        amt = money_exact(v)
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field} must be a number", field=field)
    except ValueError as e:
        raise ValidationError(f"{field} {e}", field=field)
    if amt <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    return amt


# ============================================================
# Ledger reads (NO commit here)
# ============================================================
def lock_invoice(db: Session, invoice_id: int) -> Invoice:
    """
    Row lock on the invoice, re-read from the database. Taken before reading
    the paid total so two writers on the same invoice cannot both pass the
    balance check.
    """
    inv = (db.query(Invoice).filter(Invoice.id == int(invoice_id)).
           populate_existing().with_for_update().first())
    if not inv:
        raise NotFoundError("Invoice not found")
    return inv


def reload_locked(db: Session, model, row_id: int, what: str):
    """
    Re-read a payment or claim once its invoice is locked. A copy loaded
    before the lock may be stale or already deleted.
    """
    row = (db.query(model).filter(model.id == int(row_id)).populate_existing().
           with_for_update().first())
    if not row:
        raise NotFoundError(f"{what} not found")
    return row


def paid_total(db: Session, invoice_id: int) -> Decimal:
    v = (db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.invoice_id == int(invoice_id)).scalar())
    return money2(v if v is not None else ZERO)


def has_pending_claim(db: Session, invoice_id: int) -> bool:
    row = (db.query(InsuranceClaim.id).filter(
        InsuranceClaim.invoice_id == int(invoice_id)).filter(
            InsuranceClaim.status == ClaimStatus.SUBMITTED.value).first())
    return row is not None


def remaining_balance(db: Session, inv: Invoice) -> Decimal:
    return money2(inv.total_amount) - paid_total(db, inv.id)


def require_open(inv: Invoice, what: str) -> None:
    st = as_status(inv.status)
    if st in CLOSED_STATUSES:
        raise ConflictError(
            f"Invoice {inv.invoice_number} is {st.value}; cannot record {what}")


def refresh_status(db: Session, inv: Invoice) -> Tuple[str, str]:
    """Re-derive and store the invoice status. Caller must have flushed."""
    old = as_status(inv.status)
    new = resolve_status(
        money2(inv.total_amount),
        paid_total(db, inv.id),
        has_pending_claim(db, inv.id),
        old,
    )
    if new != old:
        inv.status = new.value
        db.flush()
        logger.info("invoice %s status %s -> %s", inv.invoice_number,
                    old.value, new.value)
    return old.value, new.value


# ============================================================
# Mutations (NO commit here)
# ============================================================
def record_payment(
    db: Session,
    *,
    invoice_id: int,
    amount,
    method: str,
    payment_date: Optional[date] = None,
    reference_no: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Outcome:
    amount = parse_amount(amount, "amount")

    try:
        pm = PaymentMethod(str(method or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown payment method: {method}",
                              field="method")
    if pm == PaymentMethod.INSURANCE:
        raise ValidationError(
            "Insurance payments are recorded by approving a claim",
            field="method")

    inv = lock_invoice(db, invoice_id)
    require_open(inv, "payments")

    remaining = remaining_balance(db, inv)
    if exceeds(amount, remaining):
        raise ConflictError("amount exceeds remaining balance", remaining)

    pay = Payment(
        invoice_id=inv.id,
        payment_date=payment_date or date.today(),
        amount=amount,
        method=pm.value,
        reference_no=(reference_no or None),
        notes=(notes or None),
        created_by=user_id,
    )
    db.add(pay)
    db.flush()

    refresh_status(db, inv)

    return Outcome(
        data=pay,
        events=[
            AuditEvent("payments", pay.id, "create", {
                "invoice_id": inv.id,
                "amount": str(amount),
                "method": pm.value,
            })
        ],
        affected=invoice_paths(inv),
    )


def reverse_payment(
    db: Session,
    *,
    payment_id: int,
) -> Outcome:
    pay = db.get(Payment, int(payment_id))
    if not pay:
        raise NotFoundError("Payment not found")

    inv = lock_invoice(db, pay.invoice_id)
    pay = reload_locked(db, Payment, payment_id, "Payment")
    require_open(inv, "payment reversals")

    if pay.claim_id is not None:
        raise ConflictError(
            "Insurance payments follow their claim and cannot be reversed")

    amount = money2(pay.amount)
    db.delete(pay)
    db.flush()

    refresh_status(db, inv)

    return Outcome(
        data={
            "id": int(payment_id),
            "invoice_id": inv.id,
            "amount": amount,
        },
        events=[
            AuditEvent("payments", int(payment_id), "delete", {
                "invoice_id": inv.id,
                "amount": str(amount),
            })
        ],
        affected=invoice_paths(inv),
    )
