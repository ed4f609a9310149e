"""
Writers for port snapshots and tracker event logs.

Every export lands in ``<output_dir>/snapshots/<prefix>-<YYYYMMDD-HHMMSS>.<ext>``.
JSON and YAML are structural dumps of each item's ``to_dict()``. CSV needs a
writer that knows how to flatten the items into fixed columns.
"""
from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import Any, Callable, IO, Optional, Sequence
import csv
import datetime as dt
import json
import logging

import yaml

from .models import PortEvent, PortRecord

logger = logging.getLogger(__name__)

SNAPSHOTS_DIR = "snapshots"
SNAPSHOT_HEADER = ["Port", "PID", "Process Name", "Process Path", "State"]
EVENTS_HEADER = ["timestamp", "event", "port", "pid", "process_name", "process_path"]

CsvWriter = Callable[[IO[str], Sequence[Any]], None]


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    YAML = "yaml"

    @property
    def ext(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.value.upper()

    def next(self) -> "ExportFormat":
        members = list(ExportFormat)
        return members[(members.index(self) + 1) % len(members)]

    def prev(self) -> "ExportFormat":
        members = list(ExportFormat)
        return members[(members.index(self) - 1) % len(members)]


def _plain(item: Any) -> Any:
    return item.to_dict() if hasattr(item, "to_dict") else item


def _open_exclusive(directory: Path, stem: str, ext: str) -> tuple[Path, IO[str]]:
    # second-resolution names can collide; never overwrite an earlier export
    n = 0
    while True:
        name = f"{stem}.{ext}" if n == 0 else f"{stem}-{n}.{ext}"
        path = directory / name
        try:
            return path, open(path, "x", encoding="utf-8", newline="")
        except FileExistsError:
            n += 1


def export_to_file(
    data: Sequence[Any],
    fmt: ExportFormat,
    file_prefix: str,
    output_dir: Optional[Path | str] = None,
    write_csv: Optional[CsvWriter] = None,
) -> Path:
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.CSV and write_csv is None:
        raise ValueError("CSV writer not provided")

    snapshots_dir = Path(output_dir or ".") / SNAPSHOTS_DIR
    snapshots_dir.mkdir(parents=True, exist_ok=True)

    ts = dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    path, f = _open_exclusive(snapshots_dir, f"{file_prefix}-{ts}", fmt.ext)
    with f:
        if fmt is ExportFormat.CSV:
            write_csv(f, data)
        elif fmt is ExportFormat.JSON:
            f.write(json.dumps([_plain(d) for d in data], indent=2, ensure_ascii=False))
        else:
            yaml.safe_dump([_plain(d) for d in data], f, sort_keys=False, allow_unicode=True)
    logger.info("Exported %d item(s) to %s", len(data), path)
    return path


def write_snapshot_csv(f: IO[str], records: Sequence[PortRecord]) -> None:
    w = csv.writer(f)
    w.writerow(SNAPSHOT_HEADER)
    for rec in records:
        w.writerow(rec.ref_array())


def write_events_csv(f: IO[str], events: Sequence[PortEvent]) -> None:
    w = csv.writer(f)
    w.writerow(EVENTS_HEADER)
    for ev in events:
        # InitialState expands into one row per port
        for rec in ev.records():
            w.writerow([
                ev.timestamp.isoformat(),
                ev.event,
                rec.port,
                rec.pid,
                rec.process_name,
                rec.process_path,
            ])


def export_snapshot(records: Sequence[PortRecord], fmt: ExportFormat, output_dir=None) -> Path:
    return export_to_file(records, fmt, "ports", output_dir, write_snapshot_csv)


def export_events(events: Sequence[PortEvent], fmt: ExportFormat, output_dir=None) -> Path:
    return export_to_file(events, fmt, "changes", output_dir, write_events_csv)


def load_snapshot(path: Path | str) -> list[PortRecord]:
    """Read back a JSON or YAML snapshot written by export_snapshot."""
    return [PortRecord.from_dict(d) for d in _load_structured(Path(path))]


def load_events(path: Path | str) -> list[PortEvent]:
    return [PortEvent.from_dict(d) for d in _load_structured(Path(path))]


def _load_structured(path: Path) -> list:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return json.loads(text)
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text) or []
    raise ValueError(f"Cannot read back {path.suffix or path.name} exports")

