import errno
import subprocess

import pytest

from portsweep import unix, utils
from portsweep.errors import CommandExecutionFailed, CommandNonZeroExit, OwnerNotFound
from portsweep.models import PERMISSION_DENIED, PROCESS_NOT_FOUND, PortState, make_record_id
from portsweep.unix import UnixCollector, parse_lsof_output, parse_port

LSOF_OUTPUT = """\
COMMAND     PID   USER   FD   TYPE DEVICE SIZE/OFF NODE NAME
nginx      1234   root    6u  IPv4  12345      0t0  TCP *:80 (LISTEN)
nginx      1234   root    7u  IPv6  12346      0t0  TCP [::]:80 (LISTEN)
curl       2222    bob    5u  IPv4  22222      0t0  TCP 10.0.0.2:51000->93.184.216.34:443 (ESTABLISHED)
dnsmasq     333   root    4u  IPv4  33333      0t0  UDP 127.0.0.1:53
chronyd     444   root    5u  IPv4  44444      0t0  UDP *:*
garbage line
weird      notapid root   3u  IPv4  55555      0t0  TCP *:9000 (LISTEN)
"""


@pytest.fixture
def fake_paths(monkeypatch):
    monkeypatch.setattr(unix, "process_path_or_sentinel", lambda pid: f"/opt/bin/{pid}")


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(["lsof"], returncode, stdout, stderr)


def test_parse_port():
    assert parse_port("*:80") == 80
    assert parse_port("[::1]:8080") == 8080
    assert parse_port("10.0.0.2:51000->93.184.216.34:443") == 443
    assert parse_port("*:*") is None
    assert parse_port("127.0.0.1:99999") is None


def test_parse_lsof_output(fake_paths):
    records = parse_lsof_output(LSOF_OUTPUT)
    assert [(r.port, r.pid, r.process_name, r.port_state) for r in records] == [
        (80, 1234, "nginx", PortState.HOSTING),
        (443, 2222, "curl", PortState.USING),
        (53, 333, "dnsmasq", PortState.USING),
    ]
    assert records[0].process_path == "/opt/bin/1234"
    assert records[0].id == make_record_id(1234, 80, "nginx")


def test_parse_lsof_output_skips_header_only(fake_paths):
    assert parse_lsof_output(LSOF_OUTPUT.splitlines()[0]) == []
    assert parse_lsof_output("") == []


def test_path_sentinel_on_permission_denied(monkeypatch):
    def denied(path):
        raise PermissionError(errno.EACCES, "Permission denied", str(path))

    monkeypatch.setattr(utils.os, "readlink", denied)
    records = parse_lsof_output(LSOF_OUTPUT)
    assert {r.process_path for r in records} == {PERMISSION_DENIED}


def test_path_sentinel_on_vanished_process(monkeypatch):
    def gone(path):
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(path))

    monkeypatch.setattr(utils.os, "readlink", gone)
    assert parse_lsof_output(LSOF_OUTPUT)[0].process_path == PROCESS_NOT_FOUND


def test_fetch_ports_runs_lsof(monkeypatch, fake_paths):
    calls = []

    def run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return completed(LSOF_OUTPUT)

    monkeypatch.setattr(unix.subprocess, "run", run)
    records = UnixCollector(lsof_path="/usr/sbin/lsof", timeout=3).fetch_ports()
    assert len(records) == 3
    assert calls[0][0] == ["/usr/sbin/lsof", "-i", "-P", "-n"]
    assert calls[0][1]["timeout"] == 3


def test_lsof_missing(monkeypatch):
    def run(cmd, **kwargs):
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", cmd[0])

    monkeypatch.setattr(unix.subprocess, "run", run)
    with pytest.raises(CommandExecutionFailed):
        UnixCollector().fetch_ports()


def test_lsof_timeout(monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(unix.subprocess, "run", run)
    with pytest.raises(CommandExecutionFailed, match="timed out"):
        UnixCollector(timeout=1).fetch_ports()


def test_lsof_nonzero_exit(monkeypatch):
    monkeypatch.setattr(unix.subprocess, "run", lambda cmd, **kw: completed(stderr="lsof: bad option", returncode=2))
    with pytest.raises(CommandNonZeroExit) as exc:
        UnixCollector().fetch_ports()
    assert exc.value.returncode == 2
    assert "bad option" in str(exc.value)


def test_lsof_no_matches_is_empty(monkeypatch):
    monkeypatch.setattr(unix.subprocess, "run", lambda cmd, **kw: completed(returncode=1))
    assert UnixCollector().fetch_ports() == []


OWNER_OUTPUT = """\
COMMAND  PID USER   FD   TYPE DEVICE SIZE/OFF NODE NAME
curl    2222  bob    5u  IPv4  22222      0t0  TCP 127.0.0.1:51000->127.0.0.1:8080 (ESTABLISHED)
python  4321  bob    3u  IPv4  43210      0t0  TCP *:8080 (LISTEN)
"""


def test_find_owner(monkeypatch):
    monkeypatch.setattr(unix.subprocess, "run", lambda cmd, **kw: completed(OWNER_OUTPUT))
    monkeypatch.setattr(unix, "read_comm", lambda pid: "python")
    monkeypatch.setattr(unix, "read_exe_path", lambda pid: "/usr/bin/python3")
    owner = UnixCollector().find_owner(8080, exclude_pid=-1)
    assert owner.port_state is PortState.USING
    assert owner.data.pid == 4321
    assert owner.data.process_path == "/usr/bin/python3"


def test_find_owner_excluded_pid_is_hosting(monkeypatch):
    monkeypatch.setattr(unix.subprocess, "run", lambda cmd, **kw: completed(OWNER_OUTPUT))
    owner = UnixCollector().find_owner(8080, exclude_pid=4321)
    assert owner.port_state is PortState.HOSTING
    assert owner.data is None


def test_find_owner_without_listener(monkeypatch):
    monkeypatch.setattr(unix.subprocess, "run", lambda cmd, **kw: completed(OWNER_OUTPUT))
    with pytest.raises(OwnerNotFound, match="port 9090"):
        UnixCollector().find_owner(9090, exclude_pid=-1)
