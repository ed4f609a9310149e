import queue
import time

import pytest

from portsweep.keys import Key
from portsweep.scheduler import (
    ControlFlow,
    InputReader,
    KeyInput,
    PollTick,
    Poller,
    check_interval,
    dispatch_loop,
)


def test_check_interval_bounds():
    assert check_interval(1) == 1.0
    assert check_interval(60) == 60.0
    for bad in (0, 0.5, 61):
        with pytest.raises(ValueError):
            check_interval(bad)


def test_poller_ticks_immediately():
    channel = queue.Queue()
    poller = Poller(channel, 60)
    poller.start()
    try:
        assert isinstance(channel.get(timeout=2), PollTick)
    finally:
        poller.stop()
        poller.join(timeout=2)
    assert not poller.is_alive()


def test_poller_rejects_bad_interval():
    poller = Poller(queue.Queue(), 5)
    with pytest.raises(ValueError):
        poller.set_interval(0)
    with pytest.raises(ValueError):
        Poller(queue.Queue(), 120)


def test_poller_applies_new_interval():
    channel = queue.Queue()
    poller = Poller(channel, 60)
    poller.start()
    try:
        channel.get(timeout=2)
        poller.set_interval(1)
        started = time.monotonic()
        assert isinstance(channel.get(timeout=3), PollTick)
        assert time.monotonic() - started < 3
        assert poller.interval == 1
    finally:
        poller.stop()
        poller.join(timeout=2)


def test_input_reader_forwards_keys_until_eof():
    keys = iter([Key("a"), Key("q")])

    def read_key():
        try:
            return next(keys)
        except StopIteration:
            raise EOFError("stdin closed")

    channel = queue.Queue()
    reader = InputReader(channel, read_key)
    reader.start()
    reader.join(timeout=2)
    assert not reader.is_alive()
    assert [channel.get_nowait().key.name for _ in range(2)] == ["a", "q"]
    assert channel.empty()


def test_dispatch_loop_redraws_once_per_message():
    channel = queue.Queue()
    for name in ("a", "b", "q"):
        channel.put(KeyInput(Key(name)))
    channel.put(KeyInput(Key("never")))
    handled, redraws = [], []

    def handle(msg):
        handled.append(msg.key.name)
        return ControlFlow.EXIT if msg.key.name == "q" else ControlFlow.CONTINUE

    dispatch_loop(channel, handle, lambda: redraws.append(1))
    assert handled == ["a", "b", "q"]
    assert len(redraws) == 2
    assert channel.qsize() == 1
