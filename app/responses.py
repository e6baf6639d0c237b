"""JSON response envelope shared by all routes."""

from __future__ import annotations

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.errors import EntityError


def error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def entity_error_response(exc: EntityError, extra: dict | None = None) -> JSONResponse:
    detail = dict(exc.detail or {})
    if extra:
        detail.update(extra)
    return error_response(exc.code, exc.message, path=exc.path, detail=detail or None, status=exc.status)
