from __future__ import annotations

import asyncio
import logging
import secrets
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from access_mcp import __version__
from access_mcp.config.loader import AppConfig
from access_mcp.session.manager import AccessSession
from access_mcp.tools import call_tool, get_tool, list_tools

from .exceptions import install_exception_handlers
from .logging_setup import configure_logging
from .middleware_trace import TraceIdMiddleware
from .models import StateResponse, ToolCallRequest, ToolListResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_app(
    *,
    session: Optional[AccessSession] = None,
    config: Optional[AppConfig] = None,
    auth_token: str | None = None,
    host: str | None = None,
    port: int | None = None,
) -> FastAPI:
    """Return a FastAPI application serving the Access tools of ``session``.

    Every session call runs on one dedicated worker thread.  That serializes
    calls and keeps the COM object on the thread that created it.
    """

    log_file = configure_logging()
    access_session = session or AccessSession(config)
    token = (auth_token or "").strip()
    auth_mode = "enabled" if token else "disabled"
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="access-session")

    app = FastAPI(title="Access MCP", version=__version__)
    app.state.session = access_session
    app.state.host = host or ""
    app.state.port = int(port) if port is not None else 0
    app.state.auth_required = bool(token)
    app.state.log_file_path = str(log_file) if isinstance(log_file, Path) else ""

    install_exception_handlers(app)
    app.add_middleware(TraceIdMiddleware)

    def _require_auth(request: Request) -> None:
        if not token:
            return
        header = request.headers.get("Authorization", "").strip()
        if not header or not header.lower().startswith("bearer "):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
            )
        candidate = header.split(" ", 1)[1].strip()
        if not candidate:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
            )
        if not secrets.compare_digest(candidate, token):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid bearer token",
            )

    async def _in_session_thread(func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, partial(func, *args))

    @app.on_event("startup")
    async def _on_app_startup() -> None:
        logger.info(
            "Access MCP listening host=%s port=%s auth=%s",
            app.state.host or "",
            app.state.port or 0,
            auth_mode,
        )
        if app.state.log_file_path:
            logger.debug("Log file %s", app.state.log_file_path)

    @app.on_event("shutdown")
    async def _on_app_shutdown() -> None:
        try:
            await _in_session_thread(access_session.close)
        finally:
            executor.shutdown(wait=True)
        logger.info("Access session closed", extra={"event": "shutdown"})

    @app.get("/health")
    async def health(_: None = Depends(_require_auth)) -> dict[str, object]:
        return {"ok": True, "version": __version__}

    @app.get("/state", response_model=StateResponse)
    async def state(_: None = Depends(_require_auth)) -> StateResponse:
        snapshot = await _in_session_thread(access_session.snapshot)
        return StateResponse(
            version=__version__,
            host=str(app.state.host or ""),
            port=int(app.state.port or 0),
            auth_required=bool(token),
            tool_count=len(list_tools()),
            session=snapshot,
        )

    @app.get("/tools", response_model=ToolListResponse)
    async def tools(_: None = Depends(_require_auth)) -> ToolListResponse:
        return ToolListResponse(tools=list_tools())

    @app.post("/tools/{name}")
    async def run_tool(
        name: str,
        body: Optional[ToolCallRequest] = Body(default=None),
        _: None = Depends(_require_auth),
    ) -> JSONResponse:
        if get_tool(name) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown tool: {name}")
        arguments = body.arguments if body is not None else {}
        result = await _in_session_thread(call_tool, access_session, name, arguments)
        return JSONResponse(status_code=status.HTTP_200_OK, content=result)

    return app


__all__ = ["create_app"]
