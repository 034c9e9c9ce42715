"""Shared fixtures: settings isolated from the host environment and a fake du collector."""

from datetime import datetime

import pytest

from systoolkit.config import Settings, get_settings
from systoolkit.diskreport import ReportGenerator, UsageEntry

FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0)


class FakeCollector:
    """Stands in for du/find; records the options it was asked to collect."""

    def __init__(self, entries):
        self.entries = list(entries)
        self.calls = []

    def collect(self, options):
        self.calls.append(options)
        return list(self.entries)


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in ("SYSTOOLKIT_USE_SUDO", "SYSTOOLKIT_LOG_FILE", "SYSTOOLKIT_EXCLUDED_DIRS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def make_generator(settings):
    def _make(entries):
        collector = FakeCollector(
            entry if isinstance(entry, UsageEntry) else UsageEntry(size=entry[0], path=entry[1])
            for entry in entries
        )
        return ReportGenerator(settings, collector=collector, clock=lambda: FIXED_NOW)

    return _make
