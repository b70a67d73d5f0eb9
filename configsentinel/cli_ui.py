"""Shared CLI UI primitives for Config Sentinel.

Wraps Rich to provide a consistent visual identity.
All CLI code should import from here, never from rich directly.
"""

from __future__ import annotations

from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

# ---------------------------------------------------------------------------
# Theme & singletons
# ---------------------------------------------------------------------------

THEME = Theme(
    {
        "info": "dim",
        "warning": "yellow",
        "error": "bold red",
        "success": "green",
        "accent": "cyan",
        "heading": "bold",
        "key": "bold",
        "dim": "dim",
    }
)

console = Console(theme=THEME, highlight=False)

# Markup per risk level (see RiskLevel)
RISK_MARKUP = {
    "none": "[green]none[/]",
    "low": "[cyan]low[/]",
    "medium": "[yellow]medium[/]",
    "high": "[red]high[/]",
    "critical": "[bold magenta]critical[/]",
}

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

_MAX_WIDTH = 100


def _panel_width() -> int:
    return min(console.width, _MAX_WIDTH)


def success(msg: str) -> None:
    """Green checkmark + message."""
    console.print(f"  [green]✓[/] {msg}")


def error(msg: str, hint: Optional[str] = None) -> None:
    """Red X + message, optional dim hint."""
    console.print(f"  [red]✗[/] {msg}", style="bold red")
    if hint:
        console.print(f"    [dim]{hint}[/]")


def warning(msg: str) -> None:
    """Yellow warning prefix + message."""
    console.print(f"  [yellow]![/] {msg}")


def dim(msg: str) -> None:
    """Print dim secondary text."""
    console.print(f"  [dim]{msg}[/]")


def key_value(key: str, value: str, indent: int = 2) -> None:
    """Print 'key: value' with bold key."""
    pad = " " * indent
    console.print(f"{pad}[bold]{key}:[/] {value}")


def config_panel(title: str, items: dict[str, str]) -> None:
    """Panel showing key-value summary."""
    body = "\n".join(f"[bold]{k}:[/] {v}" for k, v in items.items())

    console.print()
    console.print(
        Panel(
            body,
            title=title,
            title_align="left",
            border_style="dim",
            width=_panel_width(),
            padding=(0, 1),
        )
    )


def spinner(message: str) -> Any:
    """Context manager for a loading spinner. Use only during I/O."""
    return console.status(f"  {message}", spinner="dots")


def make_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    """Build and print a Rich table."""
    table = Table(
        title=title,
        title_style="bold",
        show_header=True,
        header_style="bold dim",
        border_style="dim",
        width=_panel_width(),
        show_lines=False,
        padding=(0, 1),
    )
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*row)
    console.print()
    console.print(table)


def status_markup(passed: bool) -> str:
    return "[green]PASS[/]" if passed else "[red]FAIL[/]"


def risk_markup(level: str) -> str:
    return RISK_MARKUP.get(level, level)


__all__ = [
    "console",
    "config_panel",
    "dim",
    "error",
    "escape",
    "key_value",
    "make_table",
    "risk_markup",
    "spinner",
    "status_markup",
    "success",
    "warning",
]
