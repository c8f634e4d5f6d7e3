from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from reconciliation.kernel.errors import ReconciliationError, StoreError

logger = structlog.get_logger()


def _get_request_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def register_exception_handlers(app: FastAPI) -> None:
    """Register service-wide exception handlers on a FastAPI app.

    We keep FastAPI-compatible `detail` while adding stable `code` + `request_id`.
    """

    @app.exception_handler(ReconciliationError)
    async def _reconciliation_error_handler(request: Request, exc: ReconciliationError) -> Response:
        request_id = _get_request_id(request)
        if isinstance(exc, StoreError):
            logger.error(
                "Contact store failure",
                request_id=request_id,
                error=str(exc.__cause__ or exc),
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict(request_id=request_id))

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException) -> Response:
        request_id = _get_request_id(request)

        payload: dict[str, Any] = {
            "detail": exc.detail,
            "code": f"http.{exc.status_code}",
        }
        if request_id:
            payload["request_id"] = request_id

        headers = dict(exc.headers or {})
        return JSONResponse(status_code=int(exc.status_code), content=payload, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        request_id = _get_request_id(request)
        payload: dict[str, Any] = {
            "detail": jsonable_errors(exc),
            "code": "http.validation_error",
        }
        if request_id:
            payload["request_id"] = request_id
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        request_id = _get_request_id(request)
        logger.exception("Unhandled exception", request_id=request_id, error=str(exc))

        payload: dict[str, Any] = {
            "detail": "Internal Server Error",
            "code": "internal.unhandled",
        }
        headers: dict[str, str] = {}
        if request_id:
            payload["request_id"] = request_id
            # Served outside the middleware stack, so RequestIDMiddleware never sees it.
            headers["X-Request-ID"] = request_id
        return JSONResponse(status_code=500, content=payload, headers=headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Strip non-serializable `ctx`/`input` members from pydantic error entries."""
    errors = []
    for error in exc.errors():
        errors.append({key: error[key] for key in ("type", "loc", "msg") if key in error})
    return errors
