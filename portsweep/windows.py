"""
IP Helper based collector for Windows.

The owner-pid tables come back from GetExtendedTcpTable/GetExtendedUdpTable
as a DWORD row count followed by fixed-size rows. Everything that reads that
buffer goes through decode_table(), which checks the declared row count
against the buffer length before touching a row.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple
import ctypes
import logging
import struct

import psutil

from .collector import Collector
from .errors import BufferFetchFailed, BufferQueryFailed
from .models import UNKNOWN, PortRecord, PortState, make_record_id

logger = logging.getLogger(__name__)

NO_ERROR = 0
ERROR_INSUFFICIENT_BUFFER = 122
AF_INET = 2
AF_INET6 = 23
TCP_TABLE_OWNER_PID_ALL = 5
UDP_TABLE_OWNER_PID = 1
MIB_TCP_STATE_LISTEN = 2

HEADER = struct.Struct("<I")  # dwNumEntries


@dataclass(frozen=True)
class TableLayout:
    name: str
    row_size: int
    port_offset: int
    pid_offset: int
    state_offset: Optional[int] = None


# Offsets are relative to the start of each row.
TCP4_LAYOUT = TableLayout("MIB_TCPTABLE_OWNER_PID", 24, port_offset=8, pid_offset=20, state_offset=0)
TCP6_LAYOUT = TableLayout("MIB_TCP6TABLE_OWNER_PID", 56, port_offset=20, pid_offset=52, state_offset=48)
UDP4_LAYOUT = TableLayout("MIB_UDPTABLE_OWNER_PID", 12, port_offset=4, pid_offset=8)
UDP6_LAYOUT = TableLayout("MIB_UDP6TABLE_OWNER_PID", 28, port_offset=20, pid_offset=24)


class Protocol(Enum):
    TCP_IPV4 = ("tcp", AF_INET, TCP_TABLE_OWNER_PID_ALL, TCP4_LAYOUT)
    TCP_IPV6 = ("tcp", AF_INET6, TCP_TABLE_OWNER_PID_ALL, TCP6_LAYOUT)
    UDP_IPV4 = ("udp", AF_INET, UDP_TABLE_OWNER_PID, UDP4_LAYOUT)
    UDP_IPV6 = ("udp", AF_INET6, UDP_TABLE_OWNER_PID, UDP6_LAYOUT)

    def __init__(self, transport: str, family: int, table_class: int, layout: TableLayout):
        self.transport = transport
        self.family = family
        self.table_class = table_class
        self.layout = layout


class RawRow(NamedTuple):
    state: Optional[int]
    port: int
    pid: int


def decode_table(buffer: bytes, layout: TableLayout) -> List[RawRow]:
    if len(buffer) < HEADER.size:
        raise ValueError(f"{layout.name}: buffer of {len(buffer)} bytes has no header")
    (count,) = HEADER.unpack_from(buffer, 0)
    needed = HEADER.size + count * layout.row_size
    if len(buffer) < needed:
        raise ValueError(
            f"{layout.name}: {count} rows need {needed} bytes, buffer has {len(buffer)}"
        )

    rows: List[RawRow] = []
    for i in range(count):
        base = HEADER.size + i * layout.row_size
        # the low word of dwLocalPort is in network byte order
        (port,) = struct.unpack_from(">H", buffer, base + layout.port_offset)
        (pid,) = struct.unpack_from("<I", buffer, base + layout.pid_offset)
        state = None
        if layout.state_offset is not None:
            (state,) = struct.unpack_from("<I", buffer, base + layout.state_offset)
        rows.append(RawRow(state, port, pid))
    return rows


class IpHelper:
    """Thin ctypes binding over the two iphlpapi table functions."""

    def __init__(self) -> None:
        lib = ctypes.WinDLL("iphlpapi.dll")  # type: ignore[attr-defined]
        self._tcp = lib.GetExtendedTcpTable
        self._udp = lib.GetExtendedUdpTable
        for fn in (self._tcp, self._udp):
            fn.restype = ctypes.c_ulong
            fn.argtypes = [
                ctypes.c_void_p,
                ctypes.POINTER(ctypes.c_ulong),
                ctypes.c_int,
                ctypes.c_ulong,
                ctypes.c_int,
                ctypes.c_ulong,
            ]

    def get_table(self, protocol: Protocol, buffer, size: ctypes.c_ulong) -> int:
        fn = self._tcp if protocol.transport == "tcp" else self._udp
        return fn(buffer, ctypes.byref(size), False, protocol.family, protocol.table_class, 0)


def read_table(api, protocol: Protocol) -> bytes:
    size = ctypes.c_ulong(0)
    rc = api.get_table(protocol, None, size)
    if rc != ERROR_INSUFFICIENT_BUFFER:
        raise BufferQueryFailed(protocol.name, rc)

    buffer = ctypes.create_string_buffer(size.value)
    rc = api.get_table(protocol, buffer, size)
    if rc != NO_ERROR:
        raise BufferFetchFailed(protocol.name, rc)
    return buffer.raw[: size.value]


def process_identity(pid: int) -> Tuple[str, str]:
    try:
        proc = psutil.Process(pid)
        return proc.name() or UNKNOWN, proc.exe() or UNKNOWN
    except (psutil.Error, OSError):
        return UNKNOWN, UNKNOWN


def to_record(row: RawRow, protocol: Protocol) -> PortRecord:
    # UDP has no connection state
    if protocol.transport == "tcp" and row.state == MIB_TCP_STATE_LISTEN:
        state = PortState.HOSTING
    else:
        state = PortState.USING
    name, path = process_identity(row.pid)
    return PortRecord(
        id=make_record_id(row.pid, row.port),
        port=row.port,
        pid=row.pid,
        process_name=name,
        process_path=path,
        port_state=state,
    )


class WindowsCollector(Collector):
    def __init__(self, api=None):
        self.api = api if api is not None else IpHelper()

    def fetch_ports(self) -> List[PortRecord]:
        rows: List[Tuple[RawRow, Protocol]] = []
        for protocol in Protocol:
            buffer = read_table(self.api, protocol)
            try:
                decoded = decode_table(buffer, protocol.layout)
            except ValueError as e:
                raise BufferFetchFailed(protocol.name, NO_ERROR, f"malformed table ({e})") from e
            logger.debug("%s: %d rows", protocol.name, len(decoded))
            rows.extend((row, protocol) for row in decoded)

        # first (pid, port) wins across all four tables
        seen = set()
        records: List[PortRecord] = []
        for row, protocol in rows:
            if (row.pid, row.port) in seen:
                continue
            seen.add((row.pid, row.port))
            records.append(to_record(row, protocol))
        return records
