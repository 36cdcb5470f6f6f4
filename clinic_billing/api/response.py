# FILE: clinic_billing/api/response.py
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from clinic_billing.services.billing_errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from clinic_billing.services.billing_service import BillingResult

ERROR_STATUS = {
    ValidationError: 422,
    ConflictError: 409,
    NotFoundError: 404,
    PersistenceError: 503,
    InternalError: 500,
}


def ok(
    data: Any = None,
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Standard success wrapper:
    {
      "ok": true,
      "data": ...,
      "meta": {...} (optional)
    }
    """
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = meta

    # jsonable_encoder converts date/Decimal/Enum etc. to JSON-safe types
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    """
    Standard error wrapper:
    {
      "ok": false,
      "error": {
        "msg": "...",
        "code": "...",
        "details": ...
      }
    }
    """
    payload: Dict[str, Any] = {
        "ok": False,
        "error": {
            "msg": msg,
            "code": code,
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def from_result(
    result: BillingResult,
    to_out: Optional[Callable[[Any], Any]] = None,
    *,
    status_code: int = 200,
) -> JSONResponse:
    if not result.ok:
        e = result.error
        return err(
            e.msg,
            status_code=ERROR_STATUS.get(type(e), 400),
            code=e.code,
            details=e.details(),
        )
    data = to_out(result.data) if to_out else result.data
    return ok(data, status_code=status_code)
