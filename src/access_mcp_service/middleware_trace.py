from __future__ import annotations

import logging
import time
import uuid

TRACE_HEADER = "X-Trace-Id"

logger = logging.getLogger(__name__)


class TraceIdMiddleware:
    """Propagate or mint an ``X-Trace-Id`` and log one access line per request."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):  # type: ignore[override]
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        incoming = ""
        for key, value in scope.get("headers") or []:
            if key.lower() == TRACE_HEADER.lower().encode("latin-1"):
                incoming = value.decode("latin-1").strip()
                break
        trace_id = incoming or str(uuid.uuid4())
        # request.state reads from scope["state"]
        scope.setdefault("state", {})["trace_id"] = trace_id

        async def send_wrapper(message):
            if message.get("type") == "http.response.start":
                scope["access_mcp.status"] = message.get("status")
                headers = list(message.get("headers") or [])
                headers.append((TRACE_HEADER.lower().encode("latin-1"), trace_id.encode("utf-8")))
                message["headers"] = headers
            await send(message)

        start = time.perf_counter()
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "access",
                extra={
                    "event": "access",
                    "method": scope.get("method", ""),
                    "path": scope.get("path", ""),
                    "status": scope.get("access_mcp.status"),
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                    "trace_id": trace_id,
                },
            )


__all__ = ["TRACE_HEADER", "TraceIdMiddleware"]
