from __future__ import annotations
from typing import List, Optional
import logging
import subprocess

from .collector import Collector, dedupe
from .errors import CollectorError, CommandExecutionFailed, CommandNonZeroExit, OwnerNotFound
from .models import OwnerInfo, PortRecord, PortState, ProcessInfo, make_record_id
from .utils import process_path_or_sentinel, read_comm, read_exe_path

logger = logging.getLogger(__name__)

# COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME [STATE]
MIN_COLUMNS = 9
NAME_COL = 8
STATE_COL = 9


def parse_port(name: str) -> Optional[int]:
    port_str = name.rsplit(":", 1)[-1]
    if not port_str.isdigit():
        return None
    port = int(port_str)
    return port if 0 <= port <= 0xFFFF else None


def parse_lsof_output(output: str) -> List[PortRecord]:
    records: List[PortRecord] = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < MIN_COLUMNS:
            continue
        if not parts[1].isdigit():
            continue
        pid = int(parts[1])
        port = parse_port(parts[NAME_COL])
        if port is None:
            logger.debug("Skipping lsof row without a numeric port: %r", line)
            continue
        state = parts[STATE_COL] if len(parts) > STATE_COL else ""
        name = parts[0]
        records.append(PortRecord(
            id=make_record_id(pid, port, name),
            port=port,
            pid=pid,
            process_name=name,
            process_path="",
            port_state=PortState.from_lsof(state),
        ))
    # resolve paths only for survivors of the dedup
    return [
        PortRecord(r.id, r.port, r.pid, r.process_name, process_path_or_sentinel(r.pid), r.port_state)
        for r in dedupe(records)
    ]


class UnixCollector(Collector):
    def __init__(self, lsof_path: str = "lsof", timeout: float | None = 10.0):
        self.lsof_path = lsof_path
        self.timeout = timeout

    def _run_lsof(self, *args: str) -> str:
        cmd = [self.lsof_path, *args]
        try:
            res = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandExecutionFailed("lsof", f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise CommandExecutionFailed("lsof", str(e)) from e

        # lsof exits 1 without output when nothing matched
        if res.returncode == 1 and not res.stdout.strip() and not res.stderr.strip():
            return ""
        if res.returncode != 0:
            raise CommandNonZeroExit("lsof", res.returncode, res.stderr)
        return res.stdout

    def fetch_ports(self) -> List[PortRecord]:
        return parse_lsof_output(self._run_lsof("-i", "-P", "-n"))

    def find_owner(self, port: int, exclude_pid: int) -> OwnerInfo:
        output = self._run_lsof("-i", f":{port}", "-P", "-n")
        for line in output.splitlines():
            fields = line.split()
            if len(fields) <= STATE_COL or not fields[1].isdigit():
                continue
            if "LISTEN" not in fields[STATE_COL]:
                continue
            if parse_port(fields[NAME_COL]) != port:
                continue
            pid = int(fields[1])
            if pid == exclude_pid:
                return OwnerInfo(PortState.HOSTING)
            info = self._process_info(pid, port)
            if info:
                return OwnerInfo(PortState.USING, info)
        raise OwnerNotFound(port)

    def _process_info(self, pid: int, port: int) -> ProcessInfo | None:
        name = read_comm(pid)
        if not name:
            return None
        try:
            path = read_exe_path(pid)
        except (CollectorError, OSError):
            return None
        return ProcessInfo(pid, port, name, path)
