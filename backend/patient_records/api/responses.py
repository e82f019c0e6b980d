"""Uniform JSON envelope: ``{success, data?, error?, timestamp}``."""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..models.patient import ApiResponse


def envelope(status_code: int, data: Any = None, error: Optional[str] = None, **extra: Any) -> JSONResponse:
    body = ApiResponse(success=error is None, data=jsonable_encoder(data), error=error)
    content = body.model_dump(exclude_none=True)
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def ok(data: Any, status_code: int = 200) -> JSONResponse:
    return envelope(status_code, data=data)


def fail(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return envelope(status_code, error=error, **extra)
