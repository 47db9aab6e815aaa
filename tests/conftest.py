"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest

from yake.loader import load_string, load_yakefile
from yake.ui.console import Console, set_console

EXAMPLE_YAKEFILE = Path(__file__).resolve().parent.parent / "Yakefile"


@pytest.fixture(autouse=True)
def quiet_console():
    """Fresh console per test (no leaked debug flag)."""
    console = Console(color=False)
    set_console(console)
    return console


@pytest.fixture
def example_tree():
    """The Yakefile shipped at the repository root."""
    return load_yakefile(EXAMPLE_YAKEFILE)


@pytest.fixture
def base_env():
    """Minimal ambient environment: enough to find bash and coreutils."""
    return {"PATH": os.environ.get("PATH", "/usr/bin:/bin")}


@pytest.fixture
def make_tree():
    """Build a Tree from YAML text."""
    def _make(text):
        return load_string(text)
    return _make


@pytest.fixture
def write_yakefile(tmp_path):
    """Write YAML text to tmp_path/Yakefile and return the path."""
    def _write(text, directory=None):
        target_dir = Path(directory) if directory else tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / "Yakefile"
        path.write_text(text)
        return path
    return _write
