import errno
import os
from pathlib import Path

from .errors import PermissionDenied, ProcessNotFound
from .models import UNKNOWN_ERROR


class C:
    RESET = '\033[0m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    GRAY = '\033[90m'


def proc_dir(pid: int) -> Path:
    return Path(f"/proc/{pid}")


def read_text(path: Path, limit: int = 1_000_000) -> str:
    try:
        with open(path, "r", errors="ignore") as f:
            return f.read(limit)
    except (IOError, OSError):
        return ""


def read_exe_path(pid: int) -> str:
    """Resolve /proc/<pid>/exe, raising PermissionDenied or ProcessNotFound."""
    try:
        return os.readlink(proc_dir(pid) / "exe")
    except PermissionError as e:
        raise PermissionDenied(pid) from e
    except FileNotFoundError as e:
        raise ProcessNotFound(pid) from e
    except OSError as e:
        if e.errno in (errno.EACCES, errno.EPERM):
            raise PermissionDenied(pid) from e
        if e.errno in (errno.ENOENT, errno.ESRCH):
            raise ProcessNotFound(pid) from e
        raise


def process_path_or_sentinel(pid: int) -> str:
    try:
        return read_exe_path(pid)
    except (PermissionDenied, ProcessNotFound) as e:
        return e.sentinel
    except OSError:
        return UNKNOWN_ERROR


def read_comm(pid: int) -> str:
    return read_text(proc_dir(pid) / "comm").strip()
