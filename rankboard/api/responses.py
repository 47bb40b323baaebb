"""
rankboard.api.responses — Response envelope & exception handlers
=================================================================

Every response body is one of::

    {"success": true,  "data": ..., "cached": true?}
    {"success": false, "error": {"code": ..., "message": ..., "details": ...?}}
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from rankboard.errors import DatabaseError, RankboardError, ValidationError

logger = logging.getLogger(__name__)

# Request sections FastAPI prefixes onto validation error locations
_LOCATION_ROOTS = {"body", "query", "path", "header"}


def ok(data: Any, *, cached: bool = False) -> dict:
    body: dict[str, Any] = {"success": True, "data": data}
    if cached:
        body["cached"] = True
    return body


def error_response(exc: RankboardError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


def _field_path(loc: tuple | list) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in _LOCATION_ROOTS:
        parts = parts[1:]
    return ".".join(parts) or "request"


async def _rankboard_error_handler(request: Request, exc: RankboardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = {_field_path(err.get("loc", ())): err.get("msg", "Invalid value") for err in exc.errors()}
    return error_response(ValidationError("Invalid request parameters", details=details))


async def _sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    return error_response(DatabaseError())


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RankboardError, _rankboard_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)
