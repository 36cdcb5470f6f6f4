# FILE: clinic_billing/api/routes_billing.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from clinic_billing.api.deps import get_billing
from clinic_billing.api.response import from_result
from clinic_billing.schemas.billing import (
    BillingItemCreate,
    BillingItemListOut,
    BillingItemOut,
    BillingItemUpdate,
    ClaimCreate,
    ClaimOut,
    ClaimResolve,
    InvoiceCancel,
    InvoiceCreate,
    InvoiceDetailOut,
    InvoiceListOut,
    InvoiceOut,
    InvoiceRefund,
    OverdueRun,
    PaymentCreate,
    PaymentOut,
)
from clinic_billing.services.billing_invoices import InvoiceDetail, InvoicePage
from clinic_billing.services.billing_item_service import BillingItemPage
from clinic_billing.services.billing_service import BillingOrchestrator

router = APIRouter(prefix="/billing", tags=["Billing"])


def _invoice_out(inv) -> InvoiceOut:
    return InvoiceOut.model_validate(inv)


def _detail_out(d: InvoiceDetail) -> InvoiceDetailOut:
    inv = d.invoice
    return InvoiceDetailOut(
        **InvoiceOut.model_validate(inv).model_dump(),
        payments=[PaymentOut.model_validate(p) for p in inv.payments],
        claims=[ClaimOut.model_validate(c) for c in inv.claims],
        total_paid=d.total_paid,
        remaining=d.remaining,
    )


def _invoice_page_out(p: InvoicePage) -> InvoiceListOut:
    return InvoiceListOut(
        invoices=[InvoiceOut.model_validate(i) for i in p.invoices],
        total_count=p.total_count,
        page=p.page,
        limit=p.limit,
    )


def _item_page_out(p: BillingItemPage) -> BillingItemListOut:
    return BillingItemListOut(
        items=[BillingItemOut.model_validate(i) for i in p.items],
        total_count=p.total_count,
        page=p.page,
        limit=p.limit,
    )


def _passthrough(data: Dict[str, Any]) -> Dict[str, Any]:
    return data


# =========================================================
# Catalog
# =========================================================
@router.get("/items")
def list_items(
        category: Optional[str] = Query(default=None),
        is_active: Optional[bool] = Query(default=None),
        search: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=50, ge=1, le=500),
        billing: BillingOrchestrator = Depends(get_billing),
):
    res = billing.list_items(category=category,
                             is_active=is_active,
                             search=search,
                             page=page,
                             limit=limit)
    return from_result(res, _item_page_out)


@router.post("/items")
def create_item(
        inp: BillingItemCreate,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.create_item(inp),
                       BillingItemOut.model_validate,
                       status_code=201)


@router.get("/items/{item_id}")
def get_item(
        item_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.get_item(item_id), BillingItemOut.model_validate)


@router.patch("/items/{item_id}")
def update_item(
        item_id: int,
        inp: BillingItemUpdate,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.update_item(item_id, inp),
                       BillingItemOut.model_validate)


@router.delete("/items/{item_id}")
def delete_item(
        item_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.delete_item(item_id), _passthrough)


# =========================================================
# Invoices
# =========================================================
@router.get("/invoices")
def list_invoices(
        patient_id: Optional[int] = Query(default=None),
        medical_record_id: Optional[int] = Query(default=None),
        appointment_id: Optional[int] = Query(default=None),
        status: Optional[str] = Query(default=None),
        start_date: Optional[date] = Query(default=None),
        end_date: Optional[date] = Query(default=None),
        search: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=200),
        billing: BillingOrchestrator = Depends(get_billing),
):
    res = billing.list_invoices(
        patient_id=patient_id,
        medical_record_id=medical_record_id,
        appointment_id=appointment_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    return from_result(res, _invoice_page_out)


@router.post("/invoices")
def create_invoice(
        inp: InvoiceCreate,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.create_invoice(inp),
                       _invoice_out,
                       status_code=201)


@router.post("/invoices/mark-overdue")
def mark_overdue(
        inp: Optional[OverdueRun] = Body(default=None),
        billing: BillingOrchestrator = Depends(get_billing),
):
    as_of = inp.as_of if inp else None
    return from_result(billing.mark_overdue(as_of),
                       lambda ids: {"invoice_ids": ids})


@router.get("/invoices/{invoice_id}")
def get_invoice(
        invoice_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.get_invoice(invoice_id), _detail_out)


@router.post("/invoices/{invoice_id}/issue")
def issue_invoice(
        invoice_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.issue_invoice(invoice_id), _invoice_out)


@router.post("/invoices/{invoice_id}/cancel")
def cancel_invoice(
        invoice_id: int,
        inp: Optional[InvoiceCancel] = Body(default=None),
        billing: BillingOrchestrator = Depends(get_billing),
):
    notes = inp.notes if inp else None
    return from_result(billing.cancel_invoice(invoice_id, notes),
                       _invoice_out)


@router.post("/invoices/{invoice_id}/refund")
def refund_invoice(
        invoice_id: int,
        inp: Optional[InvoiceRefund] = Body(default=None),
        billing: BillingOrchestrator = Depends(get_billing),
):
    notes = inp.notes if inp else None
    return from_result(billing.refund_invoice(invoice_id, notes),
                       _invoice_out)


@router.delete("/invoices/{invoice_id}")
def delete_invoice(
        invoice_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.delete_invoice(invoice_id), _passthrough)


# =========================================================
# Payments
# =========================================================
@router.post("/invoices/{invoice_id}/payments")
def record_payment(
        invoice_id: int,
        inp: PaymentCreate,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.record_payment(invoice_id, inp),
                       PaymentOut.model_validate,
                       status_code=201)


@router.delete("/payments/{payment_id}")
def reverse_payment(
        payment_id: int,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.reverse_payment(payment_id), _passthrough)


# =========================================================
# Insurance claims
# =========================================================
@router.post("/invoices/{invoice_id}/claims")
def submit_claim(
        invoice_id: int,
        inp: ClaimCreate,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.submit_claim(invoice_id, inp),
                       ClaimOut.model_validate,
                       status_code=201)


@router.post("/claims/{claim_id}/resolve")
def resolve_claim(
        claim_id: int,
        inp: ClaimResolve,
        billing: BillingOrchestrator = Depends(get_billing),
):
    return from_result(billing.resolve_claim(claim_id, inp),
                       ClaimOut.model_validate)
