"""Terminal output for blobcache.

Results (fetched blob summaries, stats, entry listings) go to stdout.
Everything else goes to stderr: cache hits and misses, retry attempts,
storage failures that were swallowed, and errors.

The cache and client modules never print directly.  They call the
module-level :func:`debug` and :func:`warning`, which route through the
process-wide :class:`OutputManager`.  Debug lines only show up in verbose
mode, so embedding blobcache as a library is silent unless something is
actually wrong.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """How results are rendered on stdout.  ``AUTO`` picks rich or plain."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Renders results to stdout and diagnostics to stderr.

    Args:
        format: Result format; ``AUTO`` means rich on a colour TTY, else plain.
        no_color: Drop colour and markup.  ``NO_COLOR`` and ``TERM=dumb``
            imply it.
        quiet: Hide info and success lines.  Warnings and errors still show.
        verbose: Show debug lines (cache decisions, retries).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format
        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # -- results ------------------------------------------------------- #

    def format_response(self, data: Any) -> None:
        """Write a dict, list or scalar result to stdout."""
        if self._format == OutputFormat.PLAIN:
            if isinstance(data, dict):
                lines = [f"{key}\t{value}" for key, value in data.items()]
            elif isinstance(data, list):
                lines = [str(item) for item in data]
            else:
                lines = [str(data)]
            self._emit(*lines)
            return
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.JSON:
            self._emit(text)
        else:
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows as a rich table, a JSON array of objects, or TSV."""
        if self._format == OutputFormat.JSON:
            self._emit(json.dumps([dict(zip(headers, row)) for row in rows], indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.PLAIN:
            self._emit("\t".join(headers), *("\t".join(row) for row in rows))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # -- diagnostics --------------------------------------------------- #

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diagnose(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diagnose(message, style="green")

    def warning(self, message: str) -> None:
        self._diagnose(message, label="Warning:", style="yellow")

    def error(self, message: str) -> None:
        self._diagnose(message, label="Error:", style="bold red")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diagnose(f"[debug] {message}", style="dim")

    def _diagnose(self, message: str, label: str = "", style: str = "") -> None:
        if self._no_color:
            text = f"{label} {message}" if label else message
            print(text, file=sys.stderr, flush=True)
        elif label:
            self._stderr.print(f"[{style}]{label}[/{style}] {message}", highlight=False)
        elif style:
            self._stderr.print(message, style=style, markup=False, highlight=False)
        else:
            self._stderr.print(message)

    @staticmethod
    def _emit(*lines: str) -> None:
        for line in lines:
            print(line, file=sys.stdout, flush=True)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` set to anything, or a dumb terminal."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# -- process-wide manager ---------------------------------------------- #

_output: Optional[OutputManager] = None


def current_output() -> OutputManager:
    """The installed manager, or a default one created on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def format_response(data: Any) -> None:
    current_output().format_response(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    current_output().print_table(headers, rows, title)


def info(message: str) -> None:
    current_output().info(message)


def success(message: str) -> None:
    current_output().success(message)


def warning(message: str) -> None:
    current_output().warning(message)


def error(message: str) -> None:
    current_output().error(message)


def debug(message: str) -> None:
    current_output().debug(message)
