import pytest

from keyedstate import Directory, ManualScheduler
from keyedstate import store as _store


@pytest.fixture
def sched():
    return ManualScheduler()


@pytest.fixture
def fresh_directory(monkeypatch, sched):
    """Replace the module-level directory so free functions start empty."""
    d = Directory(scheduler=sched)
    monkeypatch.setattr(_store, "directory", d)
    return d
