from __future__ import annotations

import logging
import traceback
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _trace_id(request: Request) -> str:
    return str(getattr(getattr(request, "state", object()), "trace_id", "") or "")


def _request_fields(request: Request, status_code: int, event: str) -> Dict[str, Any]:
    url = getattr(request, "url", None)
    return {
        "trace_id": _trace_id(request),
        "path": str(getattr(url, "path", url) or ""),
        "method": getattr(request, "method", ""),
        "status": status_code,
        "event": event,
    }


def error_payload(reason: str, detail: str, trace_id: str) -> Dict[str, Any]:
    return {"reason": reason, "detail": detail, "trace_id": trace_id}


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def _unhandled_exception(request: Request, exc: Exception):  # type: ignore[override]
        status_code = 500
        # read by the trace middleware for the access line
        request.scope["access_mcp.status"] = status_code
        fields = _request_fields(request, status_code, "unhandled_exception")
        fields["exception"] = traceback.format_exc()
        logger.error("Unhandled exception", extra=fields)
        return JSONResponse(
            status_code=status_code,
            content=error_payload("internal_error", str(exc) or "internal_error", fields["trace_id"]),
        )

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException):  # type: ignore[override]
        status_code = int(getattr(exc, "status_code", 500))
        request.scope["access_mcp.status"] = status_code
        fields = _request_fields(request, status_code, "http_exception")
        if status_code in (401, 403, 404):
            logger.info("HTTPException", extra=fields)
        else:
            logger.error("HTTPException", extra=fields)
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(
            status_code=status_code,
            content=error_payload(detail or "error", detail or "error", fields["trace_id"]),
        )


__all__ = ["error_payload", "install_exception_handlers"]
