from __future__ import annotations

from .models import PERMISSION_DENIED, PROCESS_NOT_FOUND


class CollectorError(Exception):
    """Base class for everything a collector can raise."""


class CommandExecutionFailed(CollectorError):
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to execute {command}: {reason}")


class CommandNonZeroExit(CollectorError):
    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(f"{command} command failed (exit code {returncode}): {self.stderr}")


class BufferQueryFailed(CollectorError):
    def __init__(self, protocol: str, code: int):
        self.protocol = protocol
        self.code = code
        super().__init__(f"Failed to get buffer size for protocol {protocol} (result {code})")


class BufferFetchFailed(CollectorError):
    def __init__(self, protocol: str, code: int, detail: str | None = None):
        self.protocol = protocol
        self.code = code
        self.detail = detail
        if detail:
            super().__init__(f"Failed to fetch table for protocol {protocol}: {detail}")
        else:
            super().__init__(f"Failed to fetch table for protocol {protocol} (result {code})")


class PermissionDenied(CollectorError):
    sentinel = PERMISSION_DENIED

    def __init__(self, pid: int):
        self.pid = pid
        super().__init__(f"Permission denied for PID {pid}")


class ProcessNotFound(CollectorError):
    sentinel = PROCESS_NOT_FOUND

    def __init__(self, pid: int):
        self.pid = pid
        super().__init__(f"Process {pid} not found")


class OwnerNotFound(CollectorError):
    def __init__(self, port: int):
        self.port = port
        super().__init__(f"No processes found listening on port {port}")
