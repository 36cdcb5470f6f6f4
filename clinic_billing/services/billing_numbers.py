from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from clinic_billing.models.billing import NumberResetPeriod, NumberSeries


def _period_key(on: Union[date, datetime], reset: NumberResetPeriod) -> str:
    if reset == NumberResetPeriod.NONE:
        return ""
    if reset == NumberResetPeriod.YEAR:
        return on.strftime("%Y")
    if reset == NumberResetPeriod.MONTH:
        return on.strftime("%Y%m")
    return on.strftime("%Y%m%d")


def next_number(
    db: Session,
    *,
    prefix: str,
    reset_period: NumberResetPeriod = NumberResetPeriod.DAY,
    padding: int = 4,
    on: Optional[Union[date, datetime]] = None,
) -> str:
    """
    INV-20260101-0001 style numbers, dated by `on` (default: today). The
    series row for that period is locked for the rest of the caller's
    transaction.
    """
    on = on or datetime.now()
    prefix = prefix or ""
    key = _period_key(on, reset_period)

    row = (db.query(NumberSeries).filter(
        NumberSeries.prefix == prefix).filter(
            NumberSeries.reset_period == reset_period.value).filter(
                NumberSeries.period_key == key).with_for_update().first())

    if not row:
        row = NumberSeries(
            prefix=prefix,
            reset_period=reset_period.value,
            period_key=key,
            padding=padding,
            next_number=1,
        )
        db.add(row)
        db.flush()

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    seq = str(n).zfill(int(row.padding or padding))
    if not key:
        return f"{row.prefix}{seq}"
    return f"{row.prefix}{key}-{seq}"
