from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.core.errors import ConfigurationError, IncompletePayload, OrderLinkError

logger = logging.getLogger("orderlink")

INTERNAL_ERROR_MESSAGE = "Internt fel vid behandling av beställningen."


def error_body(message: str, **extra: Any) -> Dict[str, Any]:
    """Gemensamt felkuvert: {ok: false, error, ...detaljer}."""
    body: Dict[str, Any] = {"ok": False, "error": message}
    body.update(extra)
    return body


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=error_body(INTERNAL_ERROR_MESSAGE, reason="internal_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderLinkError)
    async def _order_link_exc(req: Request, exc: OrderLinkError):
        if isinstance(exc, ConfigurationError):
            # Detaljer stannar i serverloggen
            logger.error("CONFIG_ERROR %s %s: %s", req.method, req.url.path, exc.message)
            return _internal_error()

        extra: Dict[str, Any] = {"reason": exc.reason}
        if isinstance(exc, IncompletePayload):
            extra["missing"] = exc.missing
        logger.info("Avvisad begäran %s %s: %s", req.method, req.url.path, exc.reason)
        return JSONResponse(status_code=400, content=error_body(exc.message, **extra))

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(_req: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), reason="http_error"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(_req: Request, exc: RequestValidationError):
        details = [
            {"loc": list(e.get("loc") or ()), "msg": str(e.get("msg") or "invalid")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("Ogiltig begäran.", reason="request_validation_error", details=details),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        logger.exception("UNHANDLED_EXC %s %s: %s", req.method, req.url.path, exc)
        return _internal_error()
