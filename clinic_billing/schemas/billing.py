# FILE: clinic_billing/schemas/billing.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

Money = Decimal


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------
class BillingItemCreate(BaseModel):
    code: str
    name: str
    category: str
    default_price: Money = Decimal("0")
    description: Optional[str] = None
    is_active: bool = True


class BillingItemUpdate(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    default_price: Optional[Money] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class BillingItemOut(BaseModel):
    id: int
    code: str
    name: str
    category: str
    description: Optional[str] = None
    default_price: Money
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class BillingItemListOut(BaseModel):
    items: List[BillingItemOut]
    total_count: int
    page: int
    limit: int


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class InvoiceLineIn(BaseModel):
    # ranges are checked by the totals calculator so the error can name the line
    billing_item_id: Optional[int] = None
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Money] = None
    discount_percent: Optional[Decimal] = None
    tax_percent: Optional[Decimal] = None
    discount_amount: Optional[Money] = None
    tax_amount: Optional[Money] = None


class InvoiceCreate(BaseModel):
    patient_id: int
    medical_record_id: Optional[int] = None
    appointment_id: Optional[int] = None
    issued_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[InvoiceLineIn] = Field(default_factory=list)


class InvoiceCancel(BaseModel):
    notes: Optional[str] = None


class InvoiceRefund(BaseModel):
    notes: Optional[str] = None


class OverdueRun(BaseModel):
    as_of: Optional[date] = None


class InvoiceItemOut(BaseModel):
    id: int
    seq: int
    billing_item_id: Optional[int] = None
    description: str
    quantity: int
    unit_price: Money
    discount_percent: Decimal
    discount_amount: Money
    tax_percent: Decimal
    tax_amount: Money
    line_total: Money

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    invoice_id: int
    claim_id: Optional[int] = None
    payment_date: date
    amount: Money
    method: str
    reference_no: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ClaimOut(BaseModel):
    id: int
    invoice_id: int
    provider: str
    policy_number: str
    claim_number: Optional[str] = None
    claim_date: date
    claim_amount: Money
    status: str
    approved_amount: Optional[Money] = None
    denial_reason: Optional[str] = None
    notes: Optional[str] = None
    resolved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(BaseModel):
    id: int
    invoice_number: str
    patient_id: int
    medical_record_id: Optional[int] = None
    appointment_id: Optional[int] = None
    issued_date: date
    due_date: date
    subtotal: Money
    tax_amount: Money
    discount_amount: Money
    total_amount: Money
    status: str
    notes: Optional[str] = None
    items: List[InvoiceItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class InvoiceDetailOut(InvoiceOut):
    payments: List[PaymentOut] = Field(default_factory=list)
    claims: List[ClaimOut] = Field(default_factory=list)
    total_paid: Money
    remaining: Money


class InvoiceListOut(BaseModel):
    invoices: List[InvoiceOut]
    total_count: int
    page: int
    limit: int


# ---------------------------------------------------------------------
# Payments / claims
# ---------------------------------------------------------------------
class PaymentCreate(BaseModel):
    amount: Money
    method: str = "cash"
    payment_date: Optional[date] = None
    reference_no: Optional[str] = None
    notes: Optional[str] = None


class ClaimCreate(BaseModel):
    provider: str
    policy_number: str
    claim_amount: Money
    claim_date: Optional[date] = None
    claim_number: Optional[str] = None
    notes: Optional[str] = None


class ClaimResolve(BaseModel):
    outcome: str  # approved | denied
    approved_amount: Optional[Money] = None
    denial_reason: Optional[str] = None
    notes: Optional[str] = None
