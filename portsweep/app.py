from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
import logging

from . import keys
from .collector import Collector
from .config import MAX_INTERVAL, MIN_INTERVAL
from .errors import CollectorError
from .export import ExportFormat, export_snapshot
from .keys import Key
from .models import PortRecord, PortState
from .scheduler import ControlFlow, KeyInput, Message, PollTick
from .tracker import ChangeTracker

logger = logging.getLogger(__name__)


class Mode(Enum):
    NORMAL = "normal"
    EDITING = "editing"
    HELPING = "helping"
    KILLING = "killing"
    EXPORTING = "exporting"


class SortColumn(Enum):
    PORT = "Port"
    PID = "PID"
    NAME = "Process Name"
    PATH = "Process Path"

    def sort_key(self, rec: PortRecord):
        if self is SortColumn.PORT:
            return rec.port
        if self is SortColumn.PID:
            return rec.pid
        if self is SortColumn.NAME:
            return rec.process_name.lower()
        return rec.process_path.lower()


SORT_KEYS = {"1": SortColumn.PORT, "2": SortColumn.PID, "3": SortColumn.NAME, "4": SortColumn.PATH}


class KillAction(Enum):
    KILL = "Kill"
    CANCEL = "Cancel"


KEYBINDINGS = [
    ("General", "Esc, q, Ctrl+C", "Quit the application"),
    ("General", "F1, ?", "Toggle keybindings help"),
    ("Table", "Up, Down", "Move selection in table"),
    ("Table", "Pg Up, Pg Down", "Scroll one page in table"),
    ("Table", "Home/End, Shift+Pg Up/Down", "Jump to start/end of table"),
    ("Table", "1 2 3 4", "Sort by Port, PID, Process Name, Process Path (again to reverse)"),
    ("Table", "k", "Open kill-process confirmation for selected row"),
    ("Table", "s", "Export a snapshot of all ports"),
    ("Table", "t", "Start/stop change tracking (stopping exports the log)"),
    ("Table", "+, -", "Change poll interval"),
    ("Search", "Ctrl+F", "Toggle search input display"),
    ("Search", "e", "Edit the search filter"),
    ("Search", "Char keys", "Insert character into search field"),
    ("Search", "Backspace", "Delete character from search field"),
    ("Search", "Left, Right", "Move cursor in search input"),
    ("Search", "Enter, Up, Down", "Leave the search field"),
    ("Search", "Esc", "Exit search editing (hide input)"),
    ("Kill", "Left, Right", "Select 'Kill' or 'Cancel'"),
    ("Kill", "Enter", "Confirm selected action"),
    ("Export", "Left, Right, Tab", "Choose JSON, CSV or YAML"),
    ("Export", "Enter", "Write the snapshot"),
]


class App:
    def __init__(
        self,
        collector: Collector,
        tracker: ChangeTracker | None = None,
        export_format: ExportFormat = ExportFormat.JSON,
        output_dir: Path | str | None = None,
        interval: float = 2,
        set_interval: Callable[[float], None] | None = None,
    ):
        self.collector = collector
        self.tracker = tracker or ChangeTracker(export_format, output_dir)
        self.output_dir = output_dir
        self.export_format = ExportFormat(export_format)
        self.interval = interval
        self._set_interval = set_interval

        self.mode = Mode.NORMAL
        self.processes: List[PortRecord] = []
        self.filtered: List[PortRecord] = []
        self.selected: Optional[int] = None
        self.page_size = 20

        self.search = ""
        self.cursor = 0
        self.search_display = False

        self.sort_column: Optional[SortColumn] = None
        self.sort_desc = False

        self.help_selected = 0

        self.kill_item: Optional[PortRecord] = None
        self.kill_owner: str = ""
        self.kill_action = KillAction.KILL

        self.status = ""
        self.last_error: Optional[str] = None
        self.ticks = 0

    # control loop entry

    def handle(self, msg: Message) -> ControlFlow:
        if isinstance(msg, PollTick):
            self.on_tick()
            return ControlFlow.CONTINUE
        if isinstance(msg, KeyInput):
            return self.handle_key(msg.key)
        return ControlFlow.CONTINUE

    def on_tick(self) -> None:
        self.ticks += 1
        try:
            ports = self.collector.fetch_ports()
        except CollectorError as e:
            # keep showing the previous snapshot
            self.last_error = str(e)
            logger.warning("Error fetching ports: %s", e)
            return
        self.last_error = None
        self.processes = ports
        self.refresh_view()
        events = self.tracker.track_once(ports)
        if events:
            opened = sum(1 for ev in events if ev.event == "port_opened")
            self.status = f"{opened} opened, {len(events) - opened} closed"

    # view state

    def refresh_view(self) -> None:
        selected = self.selected_record
        q = self.search.lower()
        rows = [
            p for p in self.processes
            if q in str(p.pid) or q in str(p.port) or q in p.process_name.lower()
        ]
        if self.sort_column is not None:
            rows.sort(key=self.sort_column.sort_key, reverse=self.sort_desc)
        self.filtered = rows

        if not rows:
            self.selected = None
        elif selected is not None and selected in rows:
            self.selected = rows.index(selected)
        elif self.selected is not None:
            self.selected = min(self.selected, len(rows) - 1)

    @property
    def selected_record(self) -> Optional[PortRecord]:
        if self.selected is None or self.selected >= len(self.filtered):
            return None
        return self.filtered[self.selected]

    def select(self, index: int) -> None:
        if not self.filtered:
            self.selected = None
            return
        self.selected = max(0, min(index, len(self.filtered) - 1))

    def next_row(self) -> None:
        if self.selected is None:
            self.select(0)
        elif self.selected >= len(self.filtered) - 1:
            self.select(0)
        else:
            self.select(self.selected + 1)

    def previous_row(self) -> None:
        if self.selected is None or self.selected == 0:
            self.select(len(self.filtered) - 1)
        else:
            self.select(self.selected - 1)

    def page_down(self) -> None:
        self.select((self.selected or 0) + self.page_size)

    def page_up(self) -> None:
        self.select((self.selected or 0) - self.page_size)

    def sort_by(self, column: SortColumn) -> None:
        if self.sort_column is column:
            self.sort_desc = not self.sort_desc
        else:
            self.sort_column = column
            self.sort_desc = False
        self.refresh_view()

    def change_interval(self, delta: int) -> None:
        new = max(MIN_INTERVAL, min(MAX_INTERVAL, self.interval + delta))
        if new == self.interval:
            return
        if self._set_interval is not None:
            self._set_interval(new)
        self.interval = new
        self.status = f"Poll interval {new:g}s"

    # search input

    def enter_char(self, ch: str) -> None:
        self.search = self.search[: self.cursor] + ch + self.search[self.cursor:]
        self.cursor += 1
        self.refresh_view()

    def delete_char(self) -> None:
        if self.cursor == 0:
            return
        self.search = self.search[: self.cursor - 1] + self.search[self.cursor:]
        self.cursor -= 1
        self.refresh_view()

    def clear_input(self) -> None:
        self.search = ""
        self.cursor = 0
        self.refresh_view()

    # actions

    def toggle_tracking(self) -> None:
        if self.tracker.is_active:
            self.tracker.stop()
            if self.tracker.last_export:
                self.status = f"Tracking stopped, changes written to {self.tracker.last_export}"
            else:
                self.status = "Tracking stopped, export failed (see log)"
        else:
            self.tracker.export_format = self.export_format
            self.tracker.start(self.processes)
            self.status = f"Tracking {len(self.processes)} port(s)"

    def open_kill(self) -> None:
        rec = self.selected_record
        if rec is None:
            return
        self.kill_item = rec
        self.kill_action = KillAction.KILL
        self.kill_owner = self.describe_owner(rec)
        self.mode = Mode.KILLING

    def describe_owner(self, rec: PortRecord) -> str:
        if rec.port_state is PortState.HOSTING:
            return f"{rec.process_name} is hosting port {rec.port}"
        try:
            owner = self.collector.find_owner(rec.port, rec.pid)
        except CollectorError as e:
            return str(e)
        if owner.data is None:
            return f"{rec.process_name} is hosting port {rec.port}"
        d = owner.data
        return f"Port {rec.port} is hosted by {d.process_name} (PID {d.pid}, {d.process_path})"

    def confirm_kill(self) -> None:
        if self.kill_item is not None and self.kill_action is KillAction.KILL:
            result = self.collector.kill_process(self.kill_item.pid)
            self.status = result.message
            if not result.success:
                logger.warning(result.message)
        self.close_popup()

    def export_current(self) -> None:
        try:
            path = export_snapshot(self.processes, self.export_format, self.output_dir)
        except (OSError, ValueError) as e:
            self.status = f"Export failed: {e}"
            logger.error("Export failed: %s", e)
        else:
            self.status = f"Exported {len(self.processes)} port(s) to {path}"
        self.close_popup()

    def close_popup(self) -> None:
        self.kill_item = None
        self.kill_owner = ""
        self.mode = Mode.NORMAL

    # key handling

    def handle_key(self, key: Key) -> ControlFlow:
        if self.mode is Mode.EDITING:
            self._editing_key(key)
        elif self.mode is Mode.HELPING:
            self._helping_key(key)
        elif self.mode is Mode.KILLING:
            self._killing_key(key)
        elif self.mode is Mode.EXPORTING:
            self._exporting_key(key)
        else:
            return self._normal_key(key)
        return ControlFlow.CONTINUE

    def _normal_key(self, key: Key) -> ControlFlow:
        if key in (keys.ESC, Key("q"), Key("Q"), Key("c", ctrl=True)):
            return ControlFlow.EXIT
        if key == Key("f", ctrl=True):
            self.search_display = not self.search_display
            self.clear_input()
            if self.search_display:
                self.mode = Mode.EDITING
        elif key in (keys.F1, Key("?")):
            self.mode = Mode.HELPING
        elif key == Key("e"):
            self.search_display = True
            self.cursor = len(self.search)
            self.mode = Mode.EDITING
        elif key == keys.DOWN:
            self.next_row()
        elif key == keys.UP:
            self.previous_row()
        elif key == keys.PAGE_DOWN:
            self.page_down()
        elif key == keys.PAGE_UP:
            self.page_up()
        elif key in (keys.HOME, Key("pageup", shift=True)):
            self.select(0)
        elif key in (keys.END, Key("pagedown", shift=True)):
            self.select(len(self.filtered) - 1)
        elif key.char in SORT_KEYS:
            self.sort_by(SORT_KEYS[key.char])
        elif key == Key("k"):
            self.open_kill()
        elif key == Key("s"):
            self.mode = Mode.EXPORTING
        elif key == Key("t"):
            self.toggle_tracking()
        elif key == Key("+"):
            self.change_interval(1)
        elif key == Key("-"):
            self.change_interval(-1)
        return ControlFlow.CONTINUE

    def _editing_key(self, key: Key) -> None:
        if key == keys.ESC:
            self.search_display = False
            self.clear_input()
            self.mode = Mode.NORMAL
        elif key == keys.BACKSPACE:
            self.delete_char()
        elif key == keys.LEFT:
            self.cursor = max(0, self.cursor - 1)
        elif key == keys.RIGHT:
            self.cursor = min(len(self.search), self.cursor + 1)
        elif key == keys.ENTER:
            self.mode = Mode.NORMAL
        elif key == keys.DOWN:
            self.mode = Mode.NORMAL
            self.next_row()
        elif key == keys.UP:
            self.mode = Mode.NORMAL
            self.previous_row()
        elif key.char and not key.ctrl and key.char.isprintable():
            self.enter_char(key.char)

    def _helping_key(self, key: Key) -> None:
        if key in (keys.ESC, keys.F1, Key("?")):
            self.mode = Mode.NORMAL
        elif key == keys.DOWN:
            self.help_selected = (self.help_selected + 1) % len(KEYBINDINGS)
        elif key == keys.UP:
            self.help_selected = (self.help_selected - 1) % len(KEYBINDINGS)
        elif key in (keys.HOME, Key("pageup", shift=True)):
            self.help_selected = 0
        elif key in (keys.END, Key("pagedown", shift=True)):
            self.help_selected = len(KEYBINDINGS) - 1

    def _killing_key(self, key: Key) -> None:
        if key == keys.ESC:
            self.close_popup()
        elif key == keys.LEFT:
            self.kill_action = KillAction.KILL
        elif key == keys.RIGHT:
            self.kill_action = KillAction.CANCEL
        elif key == keys.ENTER:
            self.confirm_kill()

    def _exporting_key(self, key: Key) -> None:
        if key == keys.ESC:
            self.close_popup()
        elif key in (keys.RIGHT, keys.TAB):
            self.export_format = self.export_format.next()
        elif key == keys.LEFT:
            self.export_format = self.export_format.prev()
        elif key == keys.ENTER:
            self.export_current()
