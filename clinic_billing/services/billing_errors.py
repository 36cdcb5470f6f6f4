# FILE: clinic_billing/services/billing_errors.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional


class BillingError(RuntimeError):
    code = "billing_error"

    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def details(self) -> Optional[Dict[str, Any]]:
        return None


class ValidationError(BillingError):
    """Malformed or out-of-range input. Never worth retrying."""
    code = "validation_error"

    def __init__(self,
                 msg: str,
                 *,
                 index: Optional[int] = None,
                 field: Optional[str] = None):
        super().__init__(msg)
        self.index = index
        self.field = field

    def details(self) -> Optional[Dict[str, Any]]:
        if self.index is None and self.field is None:
            return None
        return {"index": self.index, "field": self.field}


class ConflictError(BillingError):
    """Valid input that violates the current state; re-fetch before retrying."""
    code = "conflict"

    def __init__(self, msg: str, remaining: Optional[Decimal] = None):
        super().__init__(msg)
        self.remaining = remaining

    def details(self) -> Optional[Dict[str, Any]]:
        if self.remaining is None:
            return None
        return {"remaining": str(self.remaining)}


class NotFoundError(BillingError):
    code = "not_found"


class PersistenceError(BillingError):
    """Storage failure. Outcome of the write is unknown; re-check state."""
    code = "persistence_error"


class InternalError(BillingError):
    """Unexpected failure; the unit of work was rolled back."""
    code = "internal_error"
