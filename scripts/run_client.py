"""Launch the interactive chat client with repository-relative imports."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with a line chat server from the terminal.")
    parser.add_argument("--host", default=None, help="Server address (overrides settings/env).")
    parser.add_argument("--port", type=int, default=None, help="Server port (overrides settings/env).")
    parser.add_argument("--config", default=None, help="Path to a YAML/JSON config file.")
    parser.add_argument("--no-retry", action="store_true", help="Give up after the first failed connect.")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default="warning",
        help="Log level; defaults to warning so logs do not clutter the prompt.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))
    if args.config:
        os.environ["LINECHAT_CONFIG_FILE"] = str(Path(args.config).expanduser())

    # Import after sys.path is adjusted
    from chat_client.console import run_console
    from chat_shared.config import ChatSettings

    overrides: dict[str, Any] = {"log_level": args.log_level}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    settings = ChatSettings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(run_console(settings, retry=not args.no_retry))
    except KeyboardInterrupt:
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    main()
