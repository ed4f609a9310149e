"""
portsweep: which process owns which port, and what changed since.

Polls the OS socket tables, tracks opened/closed ports against a baseline
and exports snapshots or change logs as JSON, YAML or CSV.

CLI entry: portsweep (see pyproject.toml)
"""

from .models import PortRecord, PortState, PortEvent, InitialState, PortOpened, PortClosed
from .collector import Collector, get_collector
from .tracker import ChangeTracker
from .export import ExportFormat, export_snapshot, export_events

__all__ = [
    "PortRecord",
    "PortState",
    "PortEvent",
    "InitialState",
    "PortOpened",
    "PortClosed",
    "Collector",
    "get_collector",
    "ChangeTracker",
    "ExportFormat",
    "export_snapshot",
    "export_events",
]

__version__ = "1.0.0"
