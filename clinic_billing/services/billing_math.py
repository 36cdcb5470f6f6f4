# clinic_billing/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

from clinic_billing.core.config import settings

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def D(x) -> Decimal:
    """Strict conversion; raises on anything that is not a number."""
    if isinstance(x, Decimal):
        d = x
    elif isinstance(x, bool) or x is None:
        raise InvalidOperation(f"not a number: {x!r}")
    else:
        d = Decimal(str(x))
    if not d.is_finite():
        raise InvalidOperation(f"not a finite number: {x!r}")
    return d


def money2(x) -> Decimal:
    # banker's rounding, applied per line
    return D(x).quantize(Q2, rounding=ROUND_HALF_EVEN)


# largest value a Numeric(12, 2) column holds
MONEY_MAX = Decimal("9999999999.99")


def money_exact(x) -> Decimal:
    """
    Money as given by a caller: at most 2 decimal places and within
    MONEY_MAX. Raises ValueError instead of rounding.
    """
    d = D(x)
    if abs(d) > MONEY_MAX:
        raise ValueError(f"must not exceed {MONEY_MAX}")
    q = d.quantize(Q2)
    if q != d:
        raise ValueError("must have at most 2 decimal places")
    return q


def epsilon() -> Decimal:
    return settings.BILLING_MONEY_EPSILON


def covers(paid, total) -> bool:
    """paid >= total within the currency epsilon."""
    return D(paid) >= D(total) - epsilon()


def exceeds(amount, limit) -> bool:
    """amount > limit beyond the currency epsilon."""
    return D(amount) > D(limit) + epsilon()
