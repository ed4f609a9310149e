"""Shared fixtures: record factory and an in-memory collector."""
import logging
from typing import List

import pytest

from portsweep.collector import Collector
from portsweep.models import KillResult, PortRecord, PortState, make_record_id


def rec(port, pid, state=PortState.HOSTING, name=None, path=None) -> PortRecord:
    name = name or f"proc{pid}"
    return PortRecord(
        id=make_record_id(pid, port, name),
        port=port,
        pid=pid,
        process_name=name,
        process_path=path or f"/usr/bin/{name}",
        port_state=state,
    )


class FakeCollector(Collector):
    def __init__(self, *snapshots: List[PortRecord]):
        self.snapshots = list(snapshots) or [[]]
        self.error = None
        self.killed: List[int] = []
        self.kill_ok = True

    def fetch_ports(self) -> List[PortRecord]:
        if self.error is not None:
            raise self.error
        if len(self.snapshots) > 1:
            return list(self.snapshots.pop(0))
        return list(self.snapshots[0])

    def kill_process(self, pid: int) -> KillResult:
        self.killed.append(pid)
        if self.kill_ok:
            return KillResult(True, f"Successfully killed process with PID {pid}")
        return KillResult(False, f"Failed to kill process {pid}: access denied")


@pytest.fixture
def make_rec():
    return rec


@pytest.fixture
def fake_collector():
    return FakeCollector


@pytest.fixture(autouse=True)
def reset_portsweep_logger():
    # cli.setup_logging detaches the package logger from root; undo it so caplog keeps working
    yield
    logger = logging.getLogger("portsweep")
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = []
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
