# FILE: clinic_billing/services/billing_service.py
"""
Billing orchestrator.

Each public method is one unit of work: the component runs, the session
commits, and only then are audit events and cache invalidations sent. Any
failure rolls the whole unit back and comes back as a BillingResult with
ok=False; typed billing errors never cross this boundary as exceptions.

Two calls on the same invoice serialize on the invoice row lock taken by
the components. A PersistenceError means the outcome is unknown: re-read
the invoice before retrying (record_payment is not idempotent).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_billing.schemas.billing import (
    BillingItemCreate,
    BillingItemUpdate,
    ClaimCreate,
    ClaimResolve,
    InvoiceCreate,
    PaymentCreate,
)
from clinic_billing.services import (
    billing_claims_service as claims,
    billing_invoices as invoices,
    billing_item_service as catalog,
    billing_payment_service as ledger,
)
from clinic_billing.services.audit_logger import DbAuditSink
from clinic_billing.services.billing_errors import (
    BillingError,
    InternalError,
    PersistenceError,
)
from clinic_billing.services.billing_hooks import (
    AuditEvent,
    AuditSink,
    Invalidator,
    Outcome,
    log_invalidation,
)

logger = logging.getLogger(__name__)


@dataclass
class BillingResult:
    ok: bool
    data: Any = None
    error: Optional[BillingError] = None
    affected: List[str] = field(default_factory=list)


class BillingOrchestrator:

    def __init__(
        self,
        db: Session,
        *,
        user_id: Optional[int] = None,
        audit: Optional[AuditSink] = None,
        invalidate: Optional[Invalidator] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.audit = audit if audit is not None else DbAuditSink(db)
        self.invalidate = invalidate if invalidate is not None else log_invalidation

    # ------------------------------------------------------------
    # unit of work
    # ------------------------------------------------------------
    def _run(self, op: str, fn: Callable[[], Outcome], *,
             write: bool = True) -> BillingResult:
        try:
            outcome = fn()
            if write:
                self.db.commit()
        except BillingError as e:
            self.db.rollback()
            logger.info("%s rejected (%s): %s", op, e.code, e.msg)
            return BillingResult(ok=False, error=e)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("%s failed in storage", op)
            return BillingResult(
                ok=False,
                error=PersistenceError(
                    f"{op} failed in storage; re-check state before retrying"),
            )
        except Exception:
            self.db.rollback()
            logger.exception("%s failed unexpectedly", op)
            return BillingResult(
                ok=False,
                error=InternalError(f"{op} failed; nothing was saved"),
            )

        if write:
            self._emit(op, outcome.events)
            if outcome.affected:
                self._invalidate(op, outcome.affected)

        return BillingResult(ok=True,
                             data=outcome.data,
                             affected=list(outcome.affected))

    def _emit(self, op: str, events: List[AuditEvent]) -> None:
        for ev in events:
            try:
                self.audit(ev.entity_type, ev.entity_id, self.user_id, {
                    "action": ev.action,
                    **ev.payload
                })
            except Exception:
                logger.exception("%s: audit sink failed for %s %s", op,
                                 ev.entity_type, ev.entity_id)

    def _invalidate(self, op: str, paths: List[str]) -> None:
        try:
            self.invalidate(list(paths))
        except Exception:
            logger.exception("%s: cache invalidation failed", op)

    # ------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------
    def create_invoice(self, inp: InvoiceCreate) -> BillingResult:
        return self._run(
            "create_invoice",
            lambda: invoices.create_invoice(self.db,
                                            inp=inp,
                                            user_id=self.user_id),
        )

    def issue_invoice(self, invoice_id: int) -> BillingResult:
        return self._run(
            "issue_invoice",
            lambda: invoices.issue_invoice(self.db, invoice_id=invoice_id),
        )

    def cancel_invoice(self,
                       invoice_id: int,
                       notes: Optional[str] = None) -> BillingResult:
        return self._run(
            "cancel_invoice",
            lambda: invoices.cancel_invoice(
                self.db, invoice_id=invoice_id, notes=notes),
        )

    def refund_invoice(self,
                       invoice_id: int,
                       notes: Optional[str] = None) -> BillingResult:
        return self._run(
            "refund_invoice",
            lambda: invoices.refund_invoice(
                self.db, invoice_id=invoice_id, notes=notes),
        )

    def delete_invoice(self, invoice_id: int) -> BillingResult:
        return self._run(
            "delete_invoice",
            lambda: invoices.delete_invoice(self.db, invoice_id=invoice_id),
        )

    def mark_overdue(self, as_of: Optional[date] = None) -> BillingResult:
        return self._run(
            "mark_overdue",
            lambda: invoices.mark_overdue(self.db, as_of=as_of),
        )

    def get_invoice(self, invoice_id: int) -> BillingResult:
        return self._run(
            "get_invoice",
            lambda: invoices.get_invoice(self.db, invoice_id=invoice_id),
            write=False,
        )

    def list_invoices(self, **filters) -> BillingResult:
        return self._run(
            "list_invoices",
            lambda: invoices.list_invoices(self.db, **filters),
            write=False,
        )

    # ------------------------------------------------------------
    # payments
    # ------------------------------------------------------------
    def record_payment(self, invoice_id: int,
                       inp: PaymentCreate) -> BillingResult:
        return self._run(
            "record_payment",
            lambda: ledger.record_payment(
                self.db,
                invoice_id=invoice_id,
                amount=inp.amount,
                method=inp.method,
                payment_date=inp.payment_date,
                reference_no=inp.reference_no,
                notes=inp.notes,
                user_id=self.user_id,
            ),
        )

    def reverse_payment(self, payment_id: int) -> BillingResult:
        return self._run(
            "reverse_payment",
            lambda: ledger.reverse_payment(self.db, payment_id=payment_id),
        )

    # ------------------------------------------------------------
    # insurance claims
    # ------------------------------------------------------------
    def submit_claim(self, invoice_id: int, inp: ClaimCreate) -> BillingResult:
        return self._run(
            "submit_claim",
            lambda: claims.submit_claim(
                self.db,
                invoice_id=invoice_id,
                provider=inp.provider,
                policy_number=inp.policy_number,
                claim_amount=inp.claim_amount,
                claim_date=inp.claim_date,
                claim_number=inp.claim_number,
                notes=inp.notes,
                user_id=self.user_id,
            ),
        )

    def resolve_claim(self, claim_id: int, inp: ClaimResolve) -> BillingResult:
        return self._run(
            "resolve_claim",
            lambda: claims.resolve_claim(
                self.db,
                claim_id=claim_id,
                outcome=inp.outcome,
                approved_amount=inp.approved_amount,
                denial_reason=inp.denial_reason,
                notes=inp.notes,
                user_id=self.user_id,
            ),
        )

    # ------------------------------------------------------------
    # catalog
    # ------------------------------------------------------------
    def create_item(self, inp: BillingItemCreate) -> BillingResult:
        return self._run("create_item",
                         lambda: catalog.create_item(self.db, inp=inp))

    def get_item(self, item_id: int) -> BillingResult:
        return self._run("get_item",
                         lambda: catalog.get_item(self.db, item_id=item_id),
                         write=False)

    def update_item(self, item_id: int,
                    inp: BillingItemUpdate) -> BillingResult:
        return self._run(
            "update_item",
            lambda: catalog.update_item(self.db, item_id=item_id, inp=inp),
        )

    def delete_item(self, item_id: int) -> BillingResult:
        return self._run("delete_item",
                         lambda: catalog.delete_item(self.db, item_id=item_id))

    def list_items(self, **filters) -> BillingResult:
        return self._run(
            "list_items",
            lambda: catalog.list_items(self.db, **filters),
            write=False,
        )
