# FILE: clinic_billing/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    Date,
    DateTime,
    Index,
    ForeignKey,
    UniqueConstraint,
    Text,
)
from sqlalchemy.orm import relationship

from clinic_billing.db.base import Base


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    INSURANCE_PENDING = "insurance_pending"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    INSURANCE = "insurance"
    OTHER = "other"


class ClaimStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DENIED = "denied"


class NumberResetPeriod(str, enum.Enum):
    NONE = "none"
    YEAR = "year"
    MONTH = "month"
    DAY = "day"


class BillingItem(Base):
    """
    Reusable priced service/product (consultation, lab test, dressing ...).
    Once an invoice line references it, only is_active may change.
    """
    __tablename__ = "billing_items"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, index=True)
    default_price = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )


class Invoice(Base):
    """
    Billable aggregate for one visit / encounter.

    Totals:
      subtotal = sum(qty * unit_price)
      total_amount = subtotal + tax_amount - discount_amount

    Status is never written directly by callers; see
    services/invoice_status.py.
    """

    __tablename__ = "invoices"
    __table_args__ = (Index("ix_invoices_patient_status", "patient_id",
                            "status"), )

    id = Column(Integer, primary_key=True, index=True)

    # INV-20260101-0001 etc.
    invoice_number = Column(String(32), unique=True, index=True,
                            nullable=False)

    patient_id = Column(Integer, nullable=False, index=True)
    medical_record_id = Column(Integer, nullable=True)
    appointment_id = Column(Integer, nullable=True)

    issued_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False,
                    default=InvoiceStatus.DRAFT.value, index=True)
    notes = Column(Text, nullable=True)

    issued_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.seq",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )
    claims = relationship(
        "InsuranceClaim",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InsuranceClaim.id",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        Index("ix_invoice_items_invoice", "invoice_id"),
        Index("ix_invoice_items_billing_item", "billing_item_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # S.no order for print
    seq = Column(Integer, nullable=False, default=1)

    billing_item_id = Column(Integer,
                             ForeignKey("billing_items.id"),
                             nullable=True)
    description = Column(String(300), nullable=False)

    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)

    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # qty * unit_price + tax_amount - discount_amount
    line_total = Column(Numeric(12, 2), nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")
    billing_item = relationship("BillingItem")


class Payment(Base):
    """
    Money received against an invoice. Append / delete only.
    An approved insurance claim produces exactly one row with
    method=insurance and claim_id set.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_invoice", "invoice_id"),
        UniqueConstraint("claim_id", name="uq_payments_claim"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    claim_id = Column(Integer,
                      ForeignKey("insurance_claims.id"),
                      nullable=True)

    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(32), nullable=False)
    reference_no = Column(String(100), nullable=True)
    notes = Column(String(255), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")


class InsuranceClaim(Base):
    __tablename__ = "insurance_claims"
    __table_args__ = (Index("ix_insurance_claims_invoice_status",
                            "invoice_id", "status"), )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    provider = Column(String(200), nullable=False)
    policy_number = Column(String(100), nullable=False)
    claim_number = Column(String(100), nullable=True)
    claim_date = Column(Date, nullable=False)
    claim_amount = Column(Numeric(12, 2), nullable=False)

    status = Column(String(16), nullable=False,
                    default=ClaimStatus.SUBMITTED.value)
    # set only on approval / denial respectively
    approved_amount = Column(Numeric(12, 2), nullable=True)
    denial_reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    resolved_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    invoice = relationship("Invoice", back_populates="claims")


class NumberSeries(Base):
    """
    Locked counter rows for human-readable document numbers, one row per
    prefix and period so numbers drawn for a past date keep that date's
    own sequence.
    """

    __tablename__ = "number_series"
    __table_args__ = (UniqueConstraint("prefix",
                                       "reset_period",
                                       "period_key",
                                       name="uq_number_series_period"), )

    id = Column(Integer, primary_key=True)
    prefix = Column(String(20), nullable=False)
    reset_period = Column(String(10), nullable=False,
                          default=NumberResetPeriod.DAY.value)
    # "" for series that never reset
    period_key = Column(String(10), nullable=False, default="")
    padding = Column(Integer, nullable=False, default=4)
    next_number = Column(Integer, nullable=False, default=1)
