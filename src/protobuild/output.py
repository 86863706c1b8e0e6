"""Output formatting with strict stdout/stderr discipline and CI annotations.

* **stdout** -- primary data only (the ``targets`` listing). This is what
  downstream tools pipe and parse.
* **stderr** -- all diagnostics (progress, status, warnings, errors).
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.
* **GitHub Actions** -- when ``GITHUB_ACTIONS=true`` diagnostics are written
  as workflow commands (``::debug::``, ``::warning::``, ``::error::``,
  ``::group::``) so the runner can fold, hide, and annotate them.

The module exposes two layers:

1. :class:`OutputManager` -- a stateful object holding format preferences,
   Rich consoles, and quiet/verbose/annotate flags. Created once in
   :func:`~protobuild.app.main_callback` and installed via :func:`set_output`.
2. Module-level :func:`print_table` and :func:`set_failed`, which delegate
   to the global ``OutputManager``.
"""

from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormat(str, Enum):
    """Enumeration of supported data output formats.

    ``AUTO`` resolves to ``RICH`` when stdout is an interactive TTY and colour
    is not disabled, or to ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Central manager for all output with stdout/stderr discipline.

    Args:
        format: Desired data output format. ``AUTO`` resolves based on TTY
            detection.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential informational messages on stderr.
        verbose: Show debug-level messages on stderr.
        annotate: Emit GitHub Actions workflow commands. ``None`` detects
            it from the ``GITHUB_ACTIONS`` environment variable.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        annotate: Optional[bool] = None,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._annotate = _is_github_actions() if annotate is None else annotate

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
            soft_wrap=True,
        )

    @property
    def format(self) -> OutputFormat:
        """The resolved output format."""
        return self._format

    @property
    def annotates(self) -> bool:
        """Whether GitHub Actions workflow commands are emitted."""
        return self._annotate

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def print_data(self, text: str) -> None:
        """Print raw text to stdout."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print tabular data to stdout in the active format.

        * **Rich mode** -- styled :class:`~rich.table.Table`.
        * **JSON mode** -- array of objects keyed by header names.
        * **Plain mode** -- tab-separated values, one row per line.
        """
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))

        elif self._format == OutputFormat.PLAIN:
            self.print_data("\t".join(headers))
            for row in rows:
                self.print_data("\t".join(row))

        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for h in headers:
                table.add_column(h)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Print an informational message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._plain_or_markup(message, escape(message))

    def success(self, message: str) -> None:
        """Print a green success message to stderr. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._plain_or_markup(message, f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning to stderr. NOT suppressed by ``--quiet``."""
        if self._annotate:
            self._command("warning", message)
        else:
            self._plain_or_markup(
                f"Warning: {message}", f"[yellow]Warning:[/yellow] {escape(message)}"
            )

    def error(self, message: str) -> None:
        """Print an error to stderr. Never suppressed."""
        if self._annotate:
            self._command("error", message)
        else:
            self._plain_or_markup(
                f"Error: {message}", f"[bold red]Error:[/bold red] {escape(message)}"
            )

    def debug(self, message: str) -> None:
        """Print a debug message.

        Under GitHub Actions the message is always emitted as a ``::debug::``
        command; the runner only displays it when step debugging is on.
        Elsewhere it is shown only with ``--verbose``.
        """
        if self._annotate:
            self._command("debug", message)
        elif self._verbose:
            self._plain_or_markup(f"[debug] {message}", f"[dim]\\[debug] {escape(message)}[/dim]")

    def set_failed(self, message: str) -> None:
        """Report the run's single top-level failure."""
        self.error(message)

    @contextmanager
    def group(self, title: str) -> Iterator[None]:
        """Fold everything logged inside the block under *title*.

        Outside GitHub Actions the title is printed as a plain info line.
        """
        if self._annotate:
            self._command("group", title)
            try:
                yield
            finally:
                self._command("endgroup", "")
        else:
            self.info(title)
            yield

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _plain_or_markup(self, plain: str, markup: str) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)

    def _command(self, name: str, message: str) -> None:
        print(f"::{name}::{escape_data(message)}", file=sys.stderr, flush=True)


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def escape_data(message: str) -> str:
    """Escape *message* for use as workflow-command data."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _is_tty() -> bool:
    """Whether stdout is attached to a terminal."""
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _is_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def _should_disable_color() -> bool:
    """Check if color should be disabled per clig.dev.

    Returns True when NO_COLOR env var is set (any value) or TERM=dumb.
    """
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False


# ------------------------------------------------------------------ #
# Installed by the root CLI callback.
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the global :class:`OutputManager` instance."""
    global _output
    _output = output


def reset_output() -> None:
    """Reset the global :class:`OutputManager` to ``None``.

    Primarily useful in test suites to ensure a clean state between tests.
    """
    global _output
    _output = None


# ------------------------------------------------------------------ #
# Module-level shortcuts
# ------------------------------------------------------------------ #


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    """Print tabular data to stdout via the global OutputManager."""
    get_output().print_table(headers, rows, title)


def set_failed(message: str) -> None:
    """Report the run's failure via the global OutputManager."""
    get_output().set_failed(message)
