from __future__ import annotations
from typing import List

from rich import box
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .app import KEYBINDINGS, App, KillAction, Mode
from .export import ExportFormat
from .models import PortState

# rows taken by title, search box, table borders/header and footer
CHROME_ROWS = 9


class Screen:
    """Draws App state into a rich Live display."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self.live = Live(console=self.console, screen=True, auto_refresh=False, transient=True)
        self.offset = 0

    def __enter__(self) -> "Screen":
        self.live.__enter__()
        return self

    def __exit__(self, *exc) -> None:
        self.live.__exit__(*exc)

    def draw(self, app: App) -> None:
        self.live.update(self.render(app), refresh=True)

    def visible_rows(self) -> int:
        return max(1, self.console.size.height - CHROME_ROWS)

    def render(self, app: App) -> RenderableType:
        rows = self.visible_rows()
        app.page_size = rows
        parts: List[RenderableType] = [self.title(app)]
        if app.search_display:
            parts.append(self.search_box(app))

        if app.mode is Mode.HELPING:
            parts.append(self.help_panel(app))
        elif app.mode is Mode.KILLING:
            parts.append(self.kill_panel(app))
        elif app.mode is Mode.EXPORTING:
            parts.append(self.export_panel(app))
        else:
            parts.append(self.table(app, rows))
        parts.append(self.footer(app))
        return Group(*parts)

    def title(self, app: App) -> Text:
        t = Text()
        t.append(" portsweep ", style="bold black on cyan")
        t.append(f"  {len(app.filtered)}/{len(app.processes)} ports", style="cyan")
        t.append(f"  every {app.interval:g}s", style="dim")
        if app.tracker.is_active:
            t.append(f"  ● tracking ({len(app.tracker.events)} events)", style="bold red")
        return t

    def search_box(self, app: App) -> Panel:
        text = Text(app.search)
        if app.mode is Mode.EDITING:
            text.stylize("reverse", app.cursor, app.cursor + 1)
            if app.cursor >= len(app.search):
                text.append(" ", style="reverse")
        style = "yellow" if app.mode is Mode.EDITING else "dim"
        return Panel(text, title="Search", border_style=style, box=box.ROUNDED)

    def table(self, app: App, rows: int) -> Table:
        sel = app.selected
        if sel is not None:
            if sel < self.offset:
                self.offset = sel
            elif sel >= self.offset + rows:
                self.offset = sel - rows + 1
        self.offset = max(0, min(self.offset, max(0, len(app.filtered) - rows)))

        table = Table(box=box.SIMPLE_HEAD, expand=True, header_style="bold cyan", row_styles=["", "dim"])
        for col in ("Port", "PID", "Process Name", "Process Path", "State"):
            label = col
            if app.sort_column is not None and app.sort_column.value == col:
                label += " ▼" if app.sort_desc else " ▲"
            table.add_column(label, no_wrap=True, overflow="ellipsis", ratio=4 if col == "Process Path" else 1)

        for i, rec in enumerate(app.filtered[self.offset:self.offset + rows], start=self.offset):
            state_style = "green" if rec.port_state is PortState.HOSTING else "blue"
            row = rec.ref_array()
            table.add_row(
                *row[:4],
                Text(row[4], style=state_style),
                style="reverse" if i == sel else None,
            )
        return table

    def help_panel(self, app: App) -> Panel:
        table = Table(box=box.SIMPLE, expand=True, show_header=True, header_style="bold cyan")
        table.add_column("Section", style="dim")
        table.add_column("Keys", style="bold")
        table.add_column("Action")
        for i, (section, combo, desc) in enumerate(KEYBINDINGS):
            table.add_row(section, combo, desc, style="reverse" if i == app.help_selected else None)
        return Panel(table, title="Keybindings", border_style="cyan")

    def kill_panel(self, app: App) -> Panel:
        rec = app.kill_item
        body = Text()
        if rec is not None:
            body.append(f"Kill {rec.process_name} (PID {rec.pid}) on port {rec.port}?\n", style="bold")
            body.append(f"{rec.process_path}\n", style="dim")
            body.append(f"{app.kill_owner}\n\n")
        for action in KillAction:
            style = "bold reverse red" if action is app.kill_action else "dim"
            body.append(f"  {action.value}  ", style=style)
            body.append("   ")
        return Panel(body, title="Kill process", border_style="red")

    def export_panel(self, app: App) -> Panel:
        body = Text("Takes a snapshot of all active ports and their processes "
                    "for later comparison, auditing, or diagnostics.\n\n")
        body.append("Export Format:\n")
        for fmt in ExportFormat:
            mark = "[x]" if fmt is app.export_format else "[ ]"
            body.append(f"  {mark} {fmt.label}\n", style="bold yellow" if fmt is app.export_format else "")
        body.append("\nEnter to export, Esc to cancel", style="dim")
        return Panel(body, title="Snapshotting", border_style="yellow")

    def footer(self, app: App) -> Text:
        t = Text()
        if app.last_error:
            t.append(f"{app.last_error}  ", style="bold red")
        elif app.status:
            t.append(f"{app.status}  ", style="yellow")
        t.append("(q) quit | (?) help | (k) kill | (s) export | (t) track | (Ctrl+F) search", style="dim")
        return t
