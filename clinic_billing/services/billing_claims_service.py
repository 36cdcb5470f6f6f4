# FILE: clinic_billing/services/billing_claims_service.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from clinic_billing.core.config import settings
from clinic_billing.models.billing import (
    ClaimStatus,
    InsuranceClaim,
    Payment,
    PaymentMethod,
)
from clinic_billing.services.billing_errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_billing.services.billing_hooks import AuditEvent, Outcome, invoice_paths
from clinic_billing.services.billing_math import exceeds
from clinic_billing.services.billing_payment_service import (
    has_pending_claim,
    lock_invoice,
    parse_amount,
    refresh_status,
    reload_locked,
    remaining_balance,
    require_open,
)

logger = logging.getLogger(__name__)


def _required(v: Optional[str], field: str) -> str:
    s = (v or "").strip()
    if not s:
        raise ValidationError(f"{field} is required", field=field)
    return s


def _parse_outcome(outcome) -> ClaimStatus:
    try:
        st = ClaimStatus(str(getattr(outcome, "value", outcome)).strip().lower())
    except ValueError:
        st = None
    if st not in (ClaimStatus.APPROVED, ClaimStatus.DENIED):
        raise ValidationError("outcome must be approved or denied",
                              field="outcome")
    return st


def submit_claim(
    db: Session,
    *,
    invoice_id: int,
    provider: str,
    policy_number: str,
    claim_amount,
    claim_date: Optional[date] = None,
    claim_number: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Outcome:
    claim_amount = parse_amount(claim_amount, "claim_amount")
    provider = _required(provider, "provider")
    policy_number = _required(policy_number, "policy_number")

    inv = lock_invoice(db, invoice_id)
    require_open(inv, "claims")

    # concurrent claims are not summed; any submitted claim pins insurance_pending
    if not settings.BILLING_ALLOW_CONCURRENT_CLAIMS and has_pending_claim(
            db, inv.id):
        raise ConflictError(
            f"Invoice {inv.invoice_number} already has a submitted claim")

    cl = InsuranceClaim(
        invoice_id=inv.id,
        provider=provider,
        policy_number=policy_number,
        claim_number=(claim_number or "").strip() or None,
        claim_date=claim_date or date.today(),
        claim_amount=claim_amount,
        status=ClaimStatus.SUBMITTED.value,
        notes=(notes or None),
        created_by=user_id,
    )
    db.add(cl)
    db.flush()

    refresh_status(db, inv)

    return Outcome(
        data=cl,
        events=[
            AuditEvent("insurance_claims", cl.id, "create", {
                "invoice_id": inv.id,
                "provider": provider,
                "claim_amount": str(claim_amount),
            })
        ],
        affected=invoice_paths(inv),
    )


def resolve_claim(
    db: Session,
    *,
    claim_id: int,
    outcome,
    approved_amount=None,
    denial_reason: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Outcome:
    """
    approved -> one synthetic insurance payment of approved_amount.
    denied   -> status falls back to whatever the cash ledger says.
    Claim, payment and invoice status land in the caller's transaction.
    """
    st = _parse_outcome(outcome)
    if st == ClaimStatus.APPROVED:
        approved_amount = parse_amount(approved_amount, "approved_amount")

    cl = db.get(InsuranceClaim, int(claim_id))
    if not cl:
        raise NotFoundError("Claim not found")

    inv = lock_invoice(db, cl.invoice_id)
    cl = reload_locked(db, InsuranceClaim, claim_id, "Claim")

    # transition guard
    if cl.status != ClaimStatus.SUBMITTED.value:
        raise ConflictError(f"Claim is already {cl.status}")

    events = []
    pay = None

    if st == ClaimStatus.APPROVED:
        remaining = remaining_balance(db, inv)
        if exceeds(approved_amount, remaining):
            raise ConflictError("approved amount exceeds remaining balance",
                                remaining)

        cl.status = ClaimStatus.APPROVED.value
        cl.approved_amount = approved_amount

        pay = Payment(
            invoice_id=inv.id,
            claim_id=cl.id,
            payment_date=date.today(),
            amount=approved_amount,
            method=PaymentMethod.INSURANCE.value,
            reference_no=cl.claim_number or f"Claim ID: {cl.id}",
            notes=f"Insurance payment for approved claim ({cl.provider})",
            created_by=user_id,
        )
        db.add(pay)
    else:
        cl.status = ClaimStatus.DENIED.value
        cl.denial_reason = (denial_reason or "").strip() or None

    if notes:
        cl.notes = notes
    cl.resolved_at = datetime.utcnow()
    db.flush()
    logger.info("claim %s %s for invoice %s", cl.id, cl.status,
                inv.invoice_number)

    refresh_status(db, inv)

    events.append(
        AuditEvent("insurance_claims", cl.id, "update", {
            "invoice_id": inv.id,
            "status": cl.status,
            "approved_amount":
            str(approved_amount) if pay is not None else None,
        }))
    if pay is not None:
        events.append(
            AuditEvent("payments", pay.id, "create", {
                "invoice_id": inv.id,
                "amount": str(approved_amount),
                "method": PaymentMethod.INSURANCE.value,
                "claim_id": cl.id,
            }))

    return Outcome(data=cl, events=events, affected=invoice_paths(inv))
