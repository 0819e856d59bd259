from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import uvicorn

from access_mcp.config.loader import CONFIG_ENV_VAR, ConfigError, load_config
from access_mcp.session.manager import AccessSession

from .app import create_app
from .logging_setup import configure_logging
from .mcp_server import serve_stdio

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Access MCP tool server")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to access_mcp.yml (defaults to ~/.access_mcp/access_mcp.yml or <app root>/config).",
    )
    parser.add_argument("--host", type=str, default=None, help="Override HTTP host")
    parser.add_argument("--port", type=int, default=None, help="Override HTTP port")
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Override bearer token (warning: prints in plain text)",
    )
    parser.add_argument(
        "--stdio",
        action="store_true",
        help="Serve MCP on stdin/stdout instead of HTTP.",
    )
    return parser.parse_args(argv)


def _set_config_path(path: Path | None) -> None:
    if path is not None:
        os.environ[CONFIG_ENV_VAR] = str(Path(path).expanduser())


def _run_stdio(cfg) -> int:
    configure_logging()
    session = AccessSession(cfg)
    logger.info("Serving MCP on stdio", extra={"event": "stdio_start"})
    asyncio.run(serve_stdio(session))
    return 0


def _run_server(cfg) -> int:
    service_cfg = cfg.service
    app = create_app(
        config=cfg,
        auth_token=service_cfg.auth_token or None,
        host=service_cfg.host,
        port=int(service_cfg.port),
    )
    auth_mode = "enabled" if service_cfg.auth_token else "disabled"
    print(
        f"[access-mcp] listening on http://{service_cfg.host}:{service_cfg.port} (auth: {auth_mode})",
        file=sys.stderr,
        flush=True,
    )
    config = uvicorn.Config(
        app,
        host=service_cfg.host,
        port=int(service_cfg.port),
        log_level="info",
        timeout_graceful_shutdown=1,
    )
    server = uvicorn.Server(config)
    try:
        server.run()
    except KeyboardInterrupt:  # pragma: no cover - CLI convenience
        pass
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.port is not None and (args.port <= 0 or args.port > 65535):
        raise SystemExit("Port must be between 1 and 65535")

    _set_config_path(args.config)
    try:
        cfg = load_config()
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    if args.host:
        cfg.service.host = args.host
    if args.port is not None:
        cfg.service.port = int(args.port)
    if args.token is not None:
        cfg.service.auth_token = args.token

    if args.stdio:
        return _run_stdio(cfg)
    return _run_server(cfg)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
