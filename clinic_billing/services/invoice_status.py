# FILE: clinic_billing/services/invoice_status.py
from __future__ import annotations

from decimal import Decimal

from clinic_billing.models.billing import InvoiceStatus
from clinic_billing.services.billing_math import D, covers

# only explicit issue / cancel (or refund) operations move these
PINNED_STATUSES = frozenset({
    InvoiceStatus.DRAFT,
    InvoiceStatus.CANCELLED,
    InvoiceStatus.REFUNDED,
})


def as_status(x) -> InvoiceStatus:
    if isinstance(x, InvoiceStatus):
        return x
    return InvoiceStatus(str(x))


def resolve_status(
    total: Decimal,
    total_paid: Decimal,
    has_pending_claim: bool,
    current_status,
) -> InvoiceStatus:
    """
    Map ledger state to the invoice status. Every mutation that touches
    payments or claims goes through here.

    Priority:
      1. draft / cancelled / refunded stay as they are
      2. a submitted claim -> insurance_pending
      3. paid >= total (epsilon) -> paid
      4. paid > 0 -> partially_paid
      5. otherwise issued, or overdue if the scheduler already marked it
    """
    current = as_status(current_status)

    if current in PINNED_STATUSES:
        return current
    if has_pending_claim:
        return InvoiceStatus.INSURANCE_PENDING
    if covers(total_paid, total):
        return InvoiceStatus.PAID
    if D(total_paid) > 0:
        return InvoiceStatus.PARTIALLY_PAID
    if current == InvoiceStatus.OVERDUE:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.ISSUED
