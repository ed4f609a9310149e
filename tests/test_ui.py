import io

import pytest
from rich.console import Console

from portsweep import keys
from portsweep.app import App
from portsweep.keys import Key
from portsweep.scheduler import KeyInput, PollTick
from portsweep.ui import CHROME_ROWS, Screen

from conftest import FakeCollector, rec


@pytest.fixture
def screen():
    console = Console(file=io.StringIO(), width=120, height=30, color_system=None)
    return Screen(console)


@pytest.fixture
def app(tmp_path):
    a = App(FakeCollector([rec(port, 1000 + port, name=f"svc{port}") for port in range(1, 41)]), output_dir=tmp_path)
    a.handle(PollTick())
    return a


def rendered(screen, app):
    screen.console.file = io.StringIO()
    screen.console.print(screen.render(app))
    return screen.console.file.getvalue()


def test_visible_rows(screen):
    assert screen.visible_rows() == 30 - CHROME_ROWS


def test_table_shows_first_page(screen, app):
    out = rendered(screen, app)
    assert "Process Path" in out
    assert "svc1 " in out
    assert "svc40" not in out
    assert app.page_size == screen.visible_rows()


def test_table_scrolls_to_selection(screen, app):
    app.handle(KeyInput(keys.END))
    out = rendered(screen, app)
    assert "svc40" in out
    assert "svc1 " not in out


def test_sort_arrow(screen, app):
    app.handle(KeyInput(Key("1")))
    app.handle(KeyInput(Key("1")))
    assert "Port ▼" in rendered(screen, app)


def test_popups(screen, app):
    app.handle(KeyInput(Key("?")))
    assert "Keybindings" in rendered(screen, app)
    app.handle(KeyInput(keys.ESC))
    app.handle(KeyInput(Key("s")))
    out = rendered(screen, app)
    assert "[x] JSON" in out
    app.handle(KeyInput(keys.ESC))
    app.handle(KeyInput(keys.DOWN))
    app.handle(KeyInput(Key("k")))
    assert "Kill svc1 (PID 1001) on port 1?" in rendered(screen, app)


def test_footer_shows_error(screen, app):
    app.last_error = "Failed to execute lsof: gone"
    assert "Failed to execute lsof: gone" in rendered(screen, app)
