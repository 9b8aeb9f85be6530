"""Launch the chat server with repository-relative imports."""

from __future__ import annotations

import argparse
import asyncio
import errno
import logging
import os
import socket
import sys
from pathlib import Path
from typing import Any, Final

ADDRESS_IN_USE_ERRNOS: Final[frozenset[int]] = frozenset({errno.EADDRINUSE, 10013, 10048})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the line chat server.")
    parser.add_argument("--host", default=None, help="Bind address (overrides settings/env).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (overrides settings/env).")
    parser.add_argument(
        "--max-sessions",
        type=int,
        default=None,
        help="Maximum concurrent sessions, 0 for unlimited (overrides settings/env).",
    )
    parser.add_argument("--config", default=None, help="Path to a YAML/JSON config file.")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default=None,
        help="Log level (overrides settings/env).",
    )
    return parser.parse_args()


def check_bind_address(host: str, port: int) -> None:
    """Exit early with a readable message when the chat port cannot be bound."""

    try:
        candidates = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise SystemExit(f"Chat server cannot resolve bind host {host!r}: {exc}") from exc

    failure: OSError | None = None
    for family, socktype, proto, _, sockaddr in candidates:
        with socket.socket(family, socktype, proto) as trial_socket:
            trial_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                trial_socket.bind(sockaddr)
            except OSError as exc:
                code = getattr(exc, "winerror", None) or exc.errno
                if code in ADDRESS_IN_USE_ERRNOS:
                    raise SystemExit(
                        f"Chat server port {host}:{port} is taken; pass --port or set LINECHAT_PORT."
                    ) from exc
                failure = exc
                continue
        return
    raise SystemExit(f"Chat server cannot bind {host}:{port}: {failure or 'no usable address'}")


def main() -> None:
    args = parse_args()

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))
    if args.config:
        os.environ["LINECHAT_CONFIG_FILE"] = str(Path(args.config).expanduser())

    # Import after sys.path is adjusted
    from chat_server.bootstrap import serve_forever
    from chat_server.config import ServerSettings

    overrides: dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.max_sessions is not None:
        overrides["max_sessions"] = args.max_sessions
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = ServerSettings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if settings.port:
        check_bind_address(settings.host, settings.port)

    try:
        asyncio.run(serve_forever(settings))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted; exiting")


if __name__ == "__main__":
    main()
