from __future__ import annotations
from typing import Any, Dict, Iterable, List
import logging
import sys

import psutil

from .errors import OwnerNotFound
from .models import KillResult, OwnerInfo, PortRecord, PortState, ProcessInfo

logger = logging.getLogger(__name__)


def dedupe(records: Iterable[PortRecord]) -> List[PortRecord]:
    """Keep the first record seen for each (pid, port)."""
    seen = set()
    out: List[PortRecord] = []
    for rec in records:
        if rec.key in seen:
            continue
        seen.add(rec.key)
        out.append(rec)
    return out


class Collector:
    """Lists port/process bindings for the running platform."""

    def fetch_ports(self) -> List[PortRecord]:
        raise NotImplementedError

    def find_owner(self, port: int, exclude_pid: int) -> OwnerInfo:
        for rec in self.fetch_ports():
            if rec.port != port or rec.port_state is not PortState.HOSTING:
                continue
            if rec.pid == exclude_pid:
                return OwnerInfo(PortState.HOSTING)
            return OwnerInfo(
                PortState.USING,
                ProcessInfo(rec.pid, port, rec.process_name, rec.process_path),
            )
        raise OwnerNotFound(port)

    def kill_process(self, pid: int) -> KillResult:
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            return KillResult(False, f"Failed to kill process {pid}: no such process")
        except psutil.AccessDenied:
            return KillResult(False, f"Failed to kill process {pid}: access denied")
        except (psutil.Error, OSError) as e:
            return KillResult(False, f"Failed to kill process {pid}: {e}")
        logger.info("Sent terminate to PID %d", pid)
        return KillResult(True, f"Successfully killed process with PID {pid}")


def get_collector(cfg: Dict[str, Any] | None = None) -> Collector:
    cfg = cfg or {}
    if sys.platform == "win32":
        from .windows import WindowsCollector
        return WindowsCollector()
    from .unix import UnixCollector
    return UnixCollector(
        lsof_path=cfg.get("lsof_path", "lsof"),
        timeout=cfg.get("command_timeout"),
    )
