from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence
import datetime as dt
import logging

from .export import ExportFormat, export_events
from .models import InitialState, PortClosed, PortEvent, PortOpened, PortRecord, now_utc

logger = logging.getLogger(__name__)


def diff_ports(
    old: Sequence[PortRecord], new: Sequence[PortRecord]
) -> tuple[List[PortRecord], List[PortRecord]]:
    """Return (added, removed) using whole-record equality."""
    old_set = set(old)
    new_set = set(new)
    added = [p for p in new if p not in old_set]
    removed = [p for p in old if p not in new_set]
    return added, removed


class ChangeTracker:
    def __init__(self, export_format: ExportFormat = ExportFormat.JSON, output_dir: Path | str | None = None):
        self.events: List[PortEvent] = []
        self.baseline: List[PortRecord] = []
        self.started_at: Optional[dt.datetime] = None
        self.is_active = False
        self.export_format = ExportFormat(export_format)
        self.output_dir = output_dir
        self.last_export: Optional[Path] = None

    def start(self, snapshot: Sequence[PortRecord]) -> None:
        self.started_at = now_utc()
        self.is_active = True
        self.events.clear()
        self.baseline = list(snapshot)
        self.events.append(InitialState(now_utc(), tuple(snapshot)))
        logger.info("Tracking started with %d port(s) in baseline", len(self.baseline))

    def track_once(self, snapshot: Sequence[PortRecord]) -> List[PortEvent]:
        if not self.is_active:
            return []

        added, removed = diff_ports(self.baseline, snapshot)
        new_events: List[PortEvent] = []
        for rec in added:
            new_events.append(PortOpened(now_utc(), rec))
        for rec in removed:
            new_events.append(PortClosed(now_utc(), rec))
        self.events.extend(new_events)

        self.baseline = list(snapshot)
        if new_events:
            logger.info("Tracked %d opened, %d closed", len(added), len(removed))
        return new_events

    def stop(self) -> None:
        self.is_active = False
        try:
            self.last_export = self.export()
        except (OSError, ValueError) as e:
            logger.warning("Export on stop failed: %s", e)

    def export(self, output_dir: Path | str | None = None) -> Path:
        return export_events(self.events, self.export_format, output_dir or self.output_dir)
