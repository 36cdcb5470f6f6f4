# clinic_billing/models/__init__.py
from .audit import AuditLog
from .billing import (
    BillingItem,
    ClaimStatus,
    InsuranceClaim,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    NumberResetPeriod,
    NumberSeries,
    Payment,
    PaymentMethod,
)

__all__ = [
    "AuditLog",
    "BillingItem",
    "ClaimStatus",
    "InsuranceClaim",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "NumberResetPeriod",
    "NumberSeries",
    "Payment",
    "PaymentMethod",
]
