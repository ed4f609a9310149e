from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator
import codecs
import os
import sys


@dataclass(frozen=True)
class Key:
    name: str
    ctrl: bool = False
    shift: bool = False

    @property
    def char(self) -> str | None:
        return self.name if len(self.name) == 1 else None


ESC = Key("esc")
ENTER = Key("enter")
BACKSPACE = Key("backspace")
UP = Key("up")
DOWN = Key("down")
LEFT = Key("left")
RIGHT = Key("right")
PAGE_UP = Key("pageup")
PAGE_DOWN = Key("pagedown")
HOME = Key("home")
END = Key("end")
F1 = Key("f1")
TAB = Key("tab")


# xterm/vt100 sequences after ESC
ESCAPE_SEQUENCES = {
    "[A": UP,
    "[B": DOWN,
    "[C": RIGHT,
    "[D": LEFT,
    "[H": HOME,
    "[F": END,
    "OH": HOME,
    "OF": END,
    "[1~": HOME,
    "[4~": END,
    "[5~": PAGE_UP,
    "[6~": PAGE_DOWN,
    "[5;2~": Key("pageup", shift=True),
    "[6;2~": Key("pagedown", shift=True),
    "[1;2C": Key("right", shift=True),
    "[1;2D": Key("left", shift=True),
    "OP": F1,
    "[11~": F1,
}


# msvcrt.getwch() codes following a '\x00' or '\xe0' prefix
WINDOWS_SCAN_CODES = {
    "H": UP,
    "P": DOWN,
    "K": LEFT,
    "M": RIGHT,
    "G": HOME,
    "O": END,
    "I": PAGE_UP,
    "Q": PAGE_DOWN,
    ";": F1,
}


def decode_key(data: str) -> Key:
    """Turn one raw terminal read into a Key."""
    if not data:
        return Key("")
    if data == "\x1b":
        return ESC
    if data.startswith("\x1b"):
        return ESCAPE_SEQUENCES.get(data[1:], Key(data))
    if data in ("\r", "\n"):
        return ENTER
    if data in ("\x7f", "\x08"):
        return BACKSPACE
    if data == "\t":
        return TAB
    code = ord(data[0])
    if len(data) == 1 and 1 <= code <= 26:
        return Key(chr(code + 96), ctrl=True)
    return Key(data[0])


def decode_windows_key(first: str, read_next: Callable[[], str]) -> Key:
    if first in ("\x00", "\xe0"):
        return WINDOWS_SCAN_CODES.get(read_next(), Key(""))
    return decode_key(first)


def _is_final(ch: str) -> bool:
    # CSI sequences end with a byte in 0x40-0x7E
    return "\x40" <= ch <= "\x7e"


class KeyReader:
    """
    Turns a byte stream into Keys, one per call.

    ``read(n)`` returns up to n bytes (b"" at end of input) and ``ready()``
    says whether more bytes are already waiting. Multi-byte UTF-8 characters
    are assembled across reads, and bytes following a complete escape
    sequence are kept for the next call.
    """

    def __init__(self, read: Callable[[int], bytes], ready: Callable[[], bool]):
        self.read = read
        self.ready = ready
        self.pending = b""
        self.text = ""
        self.decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _byte(self) -> bytes:
        if self.pending:
            b, self.pending = self.pending[:1], self.pending[1:]
            return b
        b = self.read(1)
        if not b:
            raise EOFError("stdin closed")
        return b

    def _has_more(self) -> bool:
        return bool(self.pending) or self.ready()

    def _escape_tail(self) -> str:
        if not self._has_more():
            return ""
        b = self._byte()
        if b not in (b"[", b"O"):
            # a separate key pressed right after Esc
            self.pending = b + self.pending
            return ""
        seq = b.decode("ascii")
        if b == b"O":
            if self._has_more():
                seq += self._byte().decode("latin-1")
            return seq
        while self._has_more():
            ch = self._byte().decode("latin-1")
            seq += ch
            if _is_final(ch):
                break
        return seq

    def __call__(self) -> Key:
        if self.text:
            ch, self.text = self.text[0], self.text[1:]
            return decode_key(ch)
        b = self._byte()
        if b == b"\x1b":
            self.decoder.reset()
            return decode_key("\x1b" + self._escape_tail())
        while True:
            text = self.decoder.decode(b)
            if text:
                self.text = text[1:]
                return decode_key(text[0])
            b = self._byte()


if sys.platform == "win32":
    import msvcrt

    @contextmanager
    def raw_terminal() -> Iterator[None]:
        yield

    def read_key() -> Key:
        return decode_windows_key(msvcrt.getwch(), msvcrt.getwch)

else:
    import select
    import termios
    import tty

    @contextmanager
    def raw_terminal() -> Iterator[None]:
        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)
            # let Ctrl+C arrive as a key instead of SIGINT
            attrs = termios.tcgetattr(fd)
            attrs[3] &= ~termios.ISIG
            termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
            yield
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)

    def _stdin_ready() -> bool:
        return bool(select.select([sys.stdin.fileno()], [], [], 0.01)[0])

    read_key = KeyReader(lambda n: os.read(sys.stdin.fileno(), n), _stdin_ready)
