from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status as http
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

API_VERSION = "1.0.0"


class ApiError(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ResponseMeta(BaseModel):
    """What the response was computed for; `params` holds the non-null extras."""

    budget_code: Optional[str] = None
    classification_type: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    generated_at: str
    version: str = API_VERSION


class Envelope(BaseModel):
    ok: bool
    data: Any | None = None
    error: ApiError | None = None
    meta: ResponseMeta


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _respond(envelope: Envelope, status_code: int) -> JSONResponse:
    # numpy/datetime values from the stats layer go through jsonable_encoder
    return JSONResponse(content=jsonable_encoder(envelope.model_dump()), status_code=status_code)


def meta_now(*, budget_code: Optional[str] = None, classification_type: Optional[str] = None, **params) -> ResponseMeta:
    extras = {k: v for k, v in params.items() if v is not None}
    return ResponseMeta(
        budget_code=budget_code,
        classification_type=classification_type,
        params=extras or None,
        generated_at=_utc_iso(),
    )


def ok(data: Any = None, meta: Optional[ResponseMeta] = None, status_code: int = http.HTTP_200_OK) -> JSONResponse:
    return _respond(Envelope(ok=True, data=data, meta=meta or meta_now()), status_code)


def fail(
    code: str,
    message: str,
    status_code: int = http.HTTP_400_BAD_REQUEST,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[ResponseMeta] = None,
) -> JSONResponse:
    error = ApiError(code=code, message=message, details=details)
    return _respond(Envelope(ok=False, error=error, meta=meta or meta_now()), status_code)
