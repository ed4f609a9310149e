from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import datetime as dt
import hashlib

UNKNOWN = "Unknown"
PERMISSION_DENIED = "Permission Denied"
PROCESS_NOT_FOUND = "Process not found"
UNKNOWN_ERROR = "Unknown error"


class PortState(str, Enum):
    HOSTING = "Hosting"
    USING = "Using"

    @classmethod
    def from_lsof(cls, state: str) -> "PortState":
        return cls.HOSTING if "LISTEN" in state else cls.USING


def make_record_id(pid: int, port: int, process_name: str | None = None) -> str:
    h = hashlib.blake2b(digest_size=8)
    h.update(f"{pid}:{port}".encode())
    if process_name is not None:
        h.update(b"\x00" + process_name.encode("utf-8", errors="replace"))
    return h.hexdigest()


@dataclass(frozen=True)
class PortRecord:
    id: str
    port: int
    pid: int
    process_name: str
    process_path: str
    port_state: PortState

    @property
    def key(self) -> tuple[int, int]:
        return (self.pid, self.port)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "port": self.port,
            "pid": self.pid,
            "process_name": self.process_name,
            "process_path": self.process_path,
            "port_state": self.port_state.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortRecord":
        return cls(
            id=str(data["id"]),
            port=int(data["port"]),
            pid=int(data["pid"]),
            process_name=str(data["process_name"]),
            process_path=str(data["process_path"]),
            port_state=PortState(data["port_state"]),
        )

    def ref_array(self) -> List[str]:
        return [
            str(self.port),
            str(self.pid),
            self.process_name,
            self.process_path,
            self.port_state.value,
        ]


@dataclass
class ProcessInfo:
    pid: int
    port: int
    process_name: str
    process_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "port": self.port,
            "process_name": self.process_name,
            "process_path": self.process_path,
        }


@dataclass
class OwnerInfo:
    port_state: PortState
    data: Optional[ProcessInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "port_state": self.port_state.value,
            "data": self.data.to_dict() if self.data else None,
        }


@dataclass
class KillResult:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


def now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def parse_ts(value: Any) -> dt.datetime:
    # PyYAML hands back datetimes for unquoted timestamps, json gives strings
    if isinstance(value, dt.datetime):
        return value if value.tzinfo else value.replace(tzinfo=dt.timezone.utc)
    return dt.datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class PortEvent:
    timestamp: dt.datetime

    event = ""

    def records(self) -> List[PortRecord]:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PortEvent":
        kind = data.get("event")
        ts = parse_ts(data["timestamp"])
        if kind == InitialState.event:
            return InitialState(ts, tuple(PortRecord.from_dict(p) for p in data.get("ports") or []))
        if kind in (PortOpened.event, PortClosed.event) and not isinstance(data.get("port"), dict):
            raise ValueError(f"{kind} event without a port record")
        if kind == PortOpened.event:
            return PortOpened(ts, PortRecord.from_dict(data["port"]))
        if kind == PortClosed.event:
            return PortClosed(ts, PortRecord.from_dict(data["port"]))
        raise ValueError(f"Unknown event type: {kind!r}")


@dataclass(frozen=True)
class InitialState(PortEvent):
    ports: tuple[PortRecord, ...] = field(default_factory=tuple)

    event = "initial_state"

    def records(self) -> List[PortRecord]:
        return list(self.ports)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat(),
            "ports": [p.to_dict() for p in self.ports],
        }


@dataclass(frozen=True)
class PortOpened(PortEvent):
    port: PortRecord

    event = "port_opened"

    def records(self) -> List[PortRecord]:
        return [self.port]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat(),
            "port": self.port.to_dict(),
        }


@dataclass(frozen=True)
class PortClosed(PortEvent):
    port: PortRecord

    event = "port_closed"

    def records(self) -> List[PortRecord]:
        return [self.port]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat(),
            "port": self.port.to_dict(),
        }
