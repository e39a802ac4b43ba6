"""Shared fixtures for the configuration engine tests."""

import tempfile
from pathlib import Path

import pytest

from layerconf.manager import Configuration
from layerconf.providers.base import SnapshotProvider


class StubProvider(SnapshotProvider):
    """Provider whose next snapshot is staged by the test."""

    def __init__(self, name, values=None, reloadable=True):
        super().__init__(name, reloadable=reloadable)
        self.pending = dict(values or {})
        self.fail_next = False
        self.close_error = None
        self.reload_calls = 0
        self._publish(self.pending)

    def stage(self, values):
        self.pending = dict(values)

    def _load(self):
        self.reload_calls += 1
        if self.fail_next:
            raise OSError("backend unavailable")
        return dict(self.pending)

    def _release(self):
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture()
def stub_provider():
    """The StubProvider class."""
    return StubProvider


@pytest.fixture()
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture()
def make_config():
    """Build engines that are shut down after the test."""
    created = []

    def factory(*args, **kwargs):
        config = Configuration(*args, **kwargs)
        created.append(config)
        return config

    yield factory

    for config in created:
        config.shutdown(timeout=1.0)
