#!/usr/bin/env python3
"""
Console rendering of usage records, used by the daemon's default listener.
"""

from datetime import datetime

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from usage_limits_parser import UsageRecord, UsageSection

SLOT_TITLES = {
    "session": "Current session",
    "week": "Current week (all models)",
    "week_model_variant": "Current week (model)",
    "extra": "Extra usage",
}

SLOT_COLORS = {
    "session": "cyan",
    "week": "magenta",
    "week_model_variant": "blue",
    "extra": "yellow",
}

BAR_LENGTH = 40


def bar_style(percent: int, default: str) -> str:
    if percent >= 90:
        return "bold red"
    if percent >= 75:
        return "yellow"
    return default


def render_bar(percent: int) -> str:
    filled = max(0, min(int((percent / 100) * BAR_LENGTH), BAR_LENGTH))  # Cap at 100%
    return "█" * filled + "░" * (BAR_LENGTH - filled)


def detail_line(section: UsageSection) -> str:
    """Reset text, with the spend figures in front when present."""
    if section.spent is not None and section.limit is not None:
        line = f"${section.spent:.2f} / ${section.limit:.2f} spent"
        if section.reset_time:
            line += f" · Resets {section.reset_time}"
        return line
    if section.reset_time:
        return f"Resets {section.reset_time}"
    return ""


def status_text(record: UsageRecord) -> str:
    if record.from_cache:
        return "Cached data"
    return f"Updated {datetime.now().strftime('%H:%M')}"


def render_record(record: UsageRecord) -> Panel:
    """Build a panel with one bar per populated section."""
    header = Table.grid(expand=True)
    header.add_column(justify="left")
    header.add_column(justify="right")
    header.add_row("[bold white]Claude usage[/bold white]", f"[dim]{status_text(record)}[/dim]")

    output = [header]
    for slot, section in record.sections():
        color = SLOT_COLORS[slot]
        style = bar_style(section.percent, color)
        output.append("")
        output.append(f"[bold {color}]{SLOT_TITLES[slot]}[/bold {color}]")
        output.append(f"[{style}]{render_bar(section.percent)}[/{style}] {section.percent}% used")
        detail = detail_line(section)
        if detail:
            output.append(f"[dim]{escape(detail)}[/dim]")

    return Panel(
        Group(*output),
        border_style="yellow" if record.from_cache else "white",
    )


class ConsoleListener:
    """Print status changes and records to the terminal."""

    STATUS_MESSAGES = {
        "fetching": "[dim]Fetching (~20s)...[/dim]",
        "error": "[red]Failed to fetch[/red]",
    }

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def on_status(self, status: str):
        self.console.print(self.STATUS_MESSAGES.get(status, status))

    def on_data(self, record: UsageRecord):
        self.console.print(render_record(record))
