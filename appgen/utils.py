"""Shared utility functions for appgen.

Provides the Rich console used for all user-facing output, logging setup,
name validation, duration formatting, and the print helpers used by the
batch pipeline.
"""

from __future__ import annotations

import logging
import re

from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule
from rich.table import Table

console = Console()


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(verbose: bool = False) -> None:
    """Route ``logging`` records through a ``RichHandler`` on the shared console.

    Args:
        verbose: Emit DEBUG records when ``True``, INFO otherwise.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------

_MODULE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_safe_module_name(name: str) -> bool:
    """Return ``True`` if *name* can be used verbatim as a directory name.

    Only letters, digits, ``.``, ``_`` and ``-`` are allowed and the name must
    start with a letter or digit, which also rules out ``.`` and ``..``.

    Examples::

        is_safe_module_name("time-source")  -> True
        is_safe_module_name("../escape")    -> False
    """
    return bool(_MODULE_NAME_RE.match(name))


def to_pascal(name: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_.\s]+", name)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STATUS_COLORS: dict[str, str] = {
    "merged": "green",
    "no_destination": "yellow",
    "merge_failed": "red",
}


def print_app_header(index: int, total: int, key: str) -> None:
    """Print a rule announcing the app currently being generated."""
    console.print(
        Rule(f"[bold bright_cyan] [{index}/{total}] {key} [/bold bright_cyan]", style="cyan")
    )


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
