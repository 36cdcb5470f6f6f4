# clinic_billing/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from clinic_billing.db.session import SessionLocal
from clinic_billing.services.billing_service import BillingOrchestrator


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[int]:
    # authentication lives in front of this service; we only record who acted
    if x_user_id is None or x_user_id == "":
        return None
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-User-Id header")


def get_billing(
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(current_user_id),
) -> BillingOrchestrator:
    return BillingOrchestrator(db, user_id=user_id)
