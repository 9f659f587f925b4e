"""dynamic-chat command line entry point."""

from __future__ import annotations

import argparse
import sys

import anyio

from . import __version__
from .app import bootstrap, run_matrix
from .config import ConfigError
from .console import run_console
from .logging import get_logger, setup_logging

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynamic-chat",
        description="Edit a live settings file from chat commands.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        default="~/.dynamic-chat/dynamic_chat.toml",
        help="Path to dynamic_chat.toml (default: %(default)s)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        default=False,
        help="Read commands from the console instead of chat.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Include debug-level log messages.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        app = bootstrap(args.config)
        if args.debug:
            run_console(app.processor, monitor=app.monitor)
            return
        anyio.run(run_matrix, app)
    except ConfigError as exc:
        logger.error("startup.config_error", error=str(exc))
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        raise SystemExit(130) from None


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
