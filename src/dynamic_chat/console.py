"""Interactive console gateway: every line typed is a privileged command."""

from __future__ import annotations

from collections.abc import Callable

from rich.console import Console

from .logging import get_logger
from .processor import CommandProcessor
from .settings import SettingsMonitor

logger = get_logger(__name__)


def run_console(
    processor: CommandProcessor,
    *,
    monitor: SettingsMonitor | None = None,
    console: Console | None = None,
    read_line: Callable[[], str] | None = None,
) -> None:
    """Read commands until an empty line (or end of input)."""
    console = console or Console()
    read_line = read_line or (lambda: console.input("[bold cyan]>[/] "))
    console.print("Running in debug mode. Commands will be read from console.")
    console.print("Enter an empty line to end application.")
    while True:
        try:
            line = read_line()
        except EOFError:
            break
        if not line:
            break
        if monitor is not None:
            monitor.check()
        try:
            reply = processor.process_command(line, True)
        except Exception as exc:
            logger.exception(
                "command.failed",
                command=line,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            console.print(f"error: {exc}", style="red", markup=False)
            continue
        logger.debug("console.command", command=line, reply=reply)
        if reply is not None:
            console.print(reply, markup=False, highlight=False)
