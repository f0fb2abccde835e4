"""Unit tests configuration file."""

import pytest


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def out_dir(tmp_path):
    """An empty output root for a generation run."""
    path = tmp_path / "out"
    path.mkdir()
    return path
