"""
Threads that feed the control loop.

Two producers put messages on one FIFO queue: the InputReader forwards key
presses and the Poller sends a PollTick every interval. The control loop is
the only consumer and owns all application state; the poller never collects
ports itself.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union
import logging
import queue
import threading
import time

from .config import MAX_INTERVAL, MIN_INTERVAL
from .keys import Key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollTick:
    at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class KeyInput:
    key: Key


Message = Union[PollTick, KeyInput]


class ControlFlow(Enum):
    CONTINUE = "continue"
    EXIT = "exit"


def check_interval(seconds: float) -> float:
    if not MIN_INTERVAL <= seconds <= MAX_INTERVAL:
        raise ValueError(f"Interval must be between {MIN_INTERVAL} and {MAX_INTERVAL} seconds")
    return float(seconds)


class Poller(threading.Thread):
    def __init__(self, channel: "queue.Queue[Message]", interval: float):
        super().__init__(name="portsweep-poller", daemon=True)
        self.channel = channel
        self.interval = check_interval(interval)
        # reconfiguration is only ever read by the poller thread
        self._control: "queue.Queue[float | None]" = queue.Queue()

    def set_interval(self, seconds: float) -> None:
        self._control.put(check_interval(seconds))

    def stop(self) -> None:
        self._control.put(None)

    def run(self) -> None:
        while True:
            self.channel.put(PollTick())
            deadline = time.monotonic() + self.interval
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    msg = self._control.get(timeout=remaining)
                except queue.Empty:
                    break
                if msg is None:
                    return
                logger.debug("Poll interval changed to %.1fs", msg)
                self.interval = msg
                deadline = time.monotonic() + msg


class InputReader(threading.Thread):
    def __init__(self, channel: "queue.Queue[Message]", read_key: Callable[[], Key]):
        super().__init__(name="portsweep-input", daemon=True)
        self.channel = channel
        self.read_key = read_key

    def run(self) -> None:
        while True:
            try:
                key = self.read_key()
            except (OSError, EOFError) as e:
                logger.error("Error reading terminal input: %s", e)
                return
            self.channel.put(KeyInput(key))


def dispatch_loop(
    channel: "queue.Queue[Message]",
    handle: Callable[[Message], ControlFlow],
    redraw: Callable[[], None],
) -> None:
    while True:
        msg = channel.get()
        if handle(msg) is ControlFlow.EXIT:
            return
        redraw()
