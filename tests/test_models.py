import datetime as dt

import pytest

from portsweep.models import (
    InitialState,
    PortClosed,
    PortEvent,
    PortOpened,
    PortRecord,
    PortState,
    make_record_id,
)

from conftest import rec


def test_record_id_is_deterministic():
    assert make_record_id(100, 80, "nginx") == make_record_id(100, 80, "nginx")
    assert make_record_id(100, 80, "nginx") != make_record_id(100, 81, "nginx")


def test_record_id_with_and_without_name_differ():
    assert make_record_id(100, 80) != make_record_id(100, 80, "nginx")
    assert len(make_record_id(100, 80)) == 16


def test_port_state_from_lsof():
    assert PortState.from_lsof("(LISTEN)") is PortState.HOSTING
    assert PortState.from_lsof("(ESTABLISHED)") is PortState.USING
    assert PortState.from_lsof("(CLOSE_WAIT)") is PortState.USING
    assert PortState.from_lsof("") is PortState.USING


def test_record_dict_round_trip():
    r = rec(80, 100, name="nginx", path="/usr/sbin/nginx")
    d = r.to_dict()
    assert d["port_state"] == "Hosting"
    assert list(d) == ["id", "port", "pid", "process_name", "process_path", "port_state"]
    assert PortRecord.from_dict(d) == r


def test_records_are_immutable():
    r = rec(80, 100)
    with pytest.raises(AttributeError):
        r.port = 81


def test_records_compare_on_every_field():
    a = rec(80, 100, path="/a")
    b = rec(80, 100, path="/b")
    assert a != b
    assert len({a, b, rec(80, 100, path="/a")}) == 2


def test_event_dicts_are_tagged():
    ts = dt.datetime(2026, 10, 18, 12, 0, 0, tzinfo=dt.timezone.utc)
    r = rec(443, 200, state=PortState.USING)
    assert InitialState(ts, (r,)).to_dict()["event"] == "initial_state"
    assert PortOpened(ts, r).to_dict() == {
        "event": "port_opened",
        "timestamp": "2026-10-18T12:00:00+00:00",
        "port": r.to_dict(),
    }
    assert PortClosed(ts, r).to_dict()["event"] == "port_closed"


def test_event_from_dict():
    ts = dt.datetime(2026, 10, 18, 12, 0, 0, tzinfo=dt.timezone.utc)
    events = [InitialState(ts, (rec(80, 1), rec(81, 2))), PortOpened(ts, rec(90, 3)), PortClosed(ts, rec(80, 1))]
    assert [PortEvent.from_dict(e.to_dict()) for e in events] == events


def test_event_from_dict_rejects_unknown_type():
    with pytest.raises(ValueError):
        PortEvent.from_dict({"event": "port_moved", "timestamp": "2026-10-18T12:00:00+00:00"})


def test_event_records():
    ts = dt.datetime.now(dt.timezone.utc)
    assert InitialState(ts, (rec(80, 1), rec(81, 2))).records() == [rec(80, 1), rec(81, 2)]
    assert PortOpened(ts, rec(80, 1)).records() == [rec(80, 1)]


def test_open_and_close_events_require_a_record():
    ts = dt.datetime.now(dt.timezone.utc)
    with pytest.raises(TypeError):
        PortOpened(ts)
    with pytest.raises(TypeError):
        PortClosed(ts)


def test_event_from_dict_without_port_record():
    with pytest.raises(ValueError, match="without a port record"):
        PortEvent.from_dict({"event": "port_closed", "timestamp": "2026-10-18T12:00:00+00:00", "port": None})
