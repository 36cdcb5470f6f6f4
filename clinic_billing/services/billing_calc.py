# FILE: clinic_billing/services/billing_calc.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from clinic_billing.services.billing_errors import ValidationError
from clinic_billing.services.billing_math import (
    D,
    HUNDRED,
    MONEY_MAX,
    Q2,
    ZERO,
    money2,
    money_exact,
)

# invoice_items.quantity is a 32-bit INT
MAX_QUANTITY = 2_147_483_647


@dataclass(frozen=True)
class LineItemDraft:
    """
    A validated invoice line, built once at the boundary.
    Downstream code trusts these values and never re-checks them.
    """
    description: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = ZERO
    tax_percent: Decimal = ZERO
    # pre-supplied amounts win over the percentages
    discount_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    billing_item_id: Optional[int] = None


@dataclass(frozen=True)
class LineAmounts:
    draft: LineItemDraft
    gross: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    lines: List[LineAmounts]
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def _get(raw: Any, name: str, default=None):
    if isinstance(raw, dict):
        return raw.get(name, default)
    return getattr(raw, name, default)


def _number(raw: Any, name: str, index: int, *, default=None) -> Optional[Decimal]:
    v = _get(raw, name, default)
    if v is None:
        return None
    try:
        return D(v)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Line {index}: {name} must be a number",
                              index=index,
                              field=name)


def _percent(raw: Any, name: str, index: int) -> Decimal:
    v = _number(raw, name, index)
    if v is None:
        return ZERO
    if v < 0 or v > HUNDRED:
        raise ValidationError(
            f"Line {index}: {name} must be between 0 and 100",
            index=index,
            field=name)
    # stored as Numeric(5, 2)
    if v != v.quantize(Q2):
        raise ValidationError(
            f"Line {index}: {name} must have at most 2 decimal places",
            index=index,
            field=name)
    return v


def _amount(raw: Any, name: str, index: int) -> Optional[Decimal]:
    v = _number(raw, name, index)
    if v is None:
        return None
    if v < 0:
        raise ValidationError(f"Line {index}: {name} must be >= 0",
                              index=index,
                              field=name)
    try:
        return money_exact(v)
    except ValueError as e:
        raise ValidationError(f"Line {index}: {name} {e}",
                              index=index,
                              field=name)


def build_line_draft(raw: Any, index: int) -> LineItemDraft:
    """Validate one raw line (dict or schema object) into a LineItemDraft."""
    description = (_get(raw, "description") or "").strip()
    if not description:
        raise ValidationError(f"Line {index}: description is required",
                              index=index,
                              field="description")

    qty = _number(raw, "quantity", index)
    if (qty is None or qty <= 0 or qty > MAX_QUANTITY
            or qty != qty.to_integral_value()):
        raise ValidationError(
            f"Line {index}: quantity must be a positive integer "
            f"up to {MAX_QUANTITY}",
            index=index,
            field="quantity")

    unit_price = _amount(raw, "unit_price", index)
    if unit_price is None:
        raise ValidationError(f"Line {index}: unit_price is required",
                              index=index,
                              field="unit_price")

    draft = LineItemDraft(
        description=description,
        quantity=int(qty),
        unit_price=unit_price,
        discount_percent=_percent(raw, "discount_percent", index),
        tax_percent=_percent(raw, "tax_percent", index),
        discount_amount=_amount(raw, "discount_amount", index),
        tax_amount=_amount(raw, "tax_amount", index),
        billing_item_id=_get(raw, "billing_item_id"),
    )

    amounts = compute_line(draft)
    if draft.discount_amount is not None and draft.discount_amount > amounts.gross:
        raise ValidationError(
            f"Line {index}: discount_amount exceeds the line amount",
            index=index,
            field="discount_amount")
    if max(amounts.gross, amounts.line_total) > MONEY_MAX:
        raise ValidationError(
            f"Line {index}: line amount exceeds {MONEY_MAX}",
            index=index,
            field="line_total")
    return draft


def build_line_drafts(raw_lines: Iterable[Any]) -> List[LineItemDraft]:
    return [build_line_draft(raw, i) for i, raw in enumerate(raw_lines or [])]


def compute_line(draft: LineItemDraft) -> LineAmounts:
    gross = money2(draft.quantity * draft.unit_price)

    if draft.discount_amount is not None:
        discount = draft.discount_amount
    else:
        discount = money2(gross * draft.discount_percent / HUNDRED)

    if draft.tax_amount is not None:
        tax = draft.tax_amount
    else:
        tax = money2(gross * draft.tax_percent / HUNDRED)

    return LineAmounts(
        draft=draft,
        gross=gross,
        discount_amount=discount,
        tax_amount=tax,
        line_total=gross + tax - discount,
    )


def compute_invoice_totals(drafts: Iterable[LineItemDraft]) -> InvoiceTotals:
    """
    Round each line to cents first, then sum the rounded figures, so the
    printed lines always add up to the printed totals.
    """
    lines = [compute_line(d) for d in drafts]

    subtotal = sum((ln.gross for ln in lines), ZERO)
    tax = sum((ln.tax_amount for ln in lines), ZERO)
    discount = sum((ln.discount_amount for ln in lines), ZERO)

    return InvoiceTotals(
        lines=lines,
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        total_amount=subtotal + tax - discount,
    )
