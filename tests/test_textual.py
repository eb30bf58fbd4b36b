"""Tests for keyedstate.textual — Textual integration layer."""

import logging
import threading

import pytest
from textual.css.query import NoMatches

from keyedstate import UNSET, ManualScheduler, ValueCell
from keyedstate import textual as stx


class _MockApp:
    """Minimal mock matching the Textual App interface stx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class _BlockingApp(_MockApp):
    """call_from_thread waits for the UI thread, like Textual's does."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.ui_idle = threading.Event()

    def call_from_thread(self, fn, *args):
        self.entered.set()
        self.ui_idle.wait(timeout=5)
        super().call_from_thread(fn, *args)


def _cell(value=1):
    return ValueCell(value, scheduler=ManualScheduler())


class TestBind:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        c = _cell()
        effects = []
        stx.bind(app, c, effects.append)
        c.set(2)
        assert effects == []

    def test_fires_when_safe(self):
        app = _MockApp()
        c = _cell()
        effects = []
        stx.bind(app, c, effects.append)
        c.set(2)
        assert effects == [2]

    def test_fire_immediately(self):
        app = _MockApp()
        c = _cell({"a": 1})
        effects = []
        stx.bind(app, c, effects.append, fire_immediately=True)
        assert effects == [{"a": 1}]

    def test_fire_immediately_skips_unset_cell(self):
        app = _MockApp()
        c = _cell(UNSET)
        effects = []
        stx.bind(app, c, effects.append, fire_immediately=True)
        assert effects == []
        c.set(None)
        assert effects == [None]

    def test_catches_nomatch(self, caplog):
        """NoMatches from widget queries are swallowed and logged."""
        app = _MockApp()
        c = _cell()

        def _raise_nomatch(v):
            raise NoMatches("StatusFooter")

        with caplog.at_level(logging.DEBUG, logger="keyedstate.textual"):
            binding = stx.bind(app, c, _raise_nomatch, fire_immediately=True)
            c.set(2)
        binding.dispose()
        assert "Widget gone" in caplog.text

    def test_fire_immediately_propagates_real_errors(self):
        app = _MockApp()

        def _raise_value_error(v):
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            stx.bind(app, _cell(), _raise_value_error, fire_immediately=True)

    def test_other_errors_do_not_break_fan_out(self):
        app = _MockApp()
        c = _cell()
        effects = []

        def _raise_value_error(v):
            raise ValueError("boom")

        stx.bind(app, c, _raise_value_error)
        stx.bind(app, c, effects.append)
        c.set(2)
        assert effects == [2]

    def test_dispose_stops_updates(self):
        app = _MockApp()
        c = _cell()
        effects = []
        binding = stx.bind(app, c, effects.append)
        c.set(2)
        binding.unmount()
        c.set(3)
        assert effects == [2]
        assert binding.disposed
        assert not c.active

    def test_dispose_is_idempotent(self):
        app = _MockApp()
        binding = stx.bind(app, _cell(), lambda v: None)
        binding.dispose()
        binding.dispose()
        assert "disposed" in repr(binding)


class TestThreads:
    def test_thread_marshal(self):
        """Writes from a background thread go through call_from_thread."""
        app = _MockApp()
        c = _cell()
        effects = []
        stx.bind(app, c, effects.append)

        t = threading.Thread(target=lambda: c.set(2))
        t.start()
        t.join()

        assert effects == [2]
        assert len(app._call_from_thread_log) == 1

    def test_unmount_not_blocked_by_waiting_worker(self):
        """A worker waiting on the UI thread must not hold the cell lock."""
        app = _BlockingApp()
        c = _cell()
        effects = []
        binding = stx.bind(app, c, effects.append)

        worker = threading.Thread(target=lambda: c.set(2))
        worker.start()
        assert app.entered.wait(timeout=2)

        unmounter = threading.Thread(target=binding.dispose)
        unmounter.start()
        unmounter.join(timeout=2)
        blocked = unmounter.is_alive()

        app.ui_idle.set()
        worker.join(timeout=2)
        assert not blocked
        assert not worker.is_alive()
        # The queued delivery arrived after unmount, so it is dropped.
        assert effects == []
        assert c.get() == 2


class TestPause:
    def test_defers_during_pause(self):
        app = _MockApp()
        c = _cell()
        effects = []
        stx.bind(app, c, effects.append)
        with stx.pause(app):
            c.set(2)
            c.set(3)
            assert effects == []
        assert effects == [3]

    def test_nested_pause_flushes_once_at_outermost(self):
        app = _MockApp()
        c = _cell()
        effects = []
        stx.bind(app, c, effects.append)
        with stx.pause(app):
            with stx.pause(app):
                c.set(2)
            assert not stx.is_safe(app)
            assert effects == []
        assert effects == [2]

    def test_resume_skips_untouched_bindings(self):
        app = _MockApp()
        effects = []
        stx.bind(app, _cell(), effects.append)
        with stx.pause(app):
            pass
        assert effects == []

    def test_disposed_during_pause_not_refreshed(self):
        app = _MockApp()
        c = _cell()
        effects = []
        binding = stx.bind(app, c, effects.append)
        with stx.pause(app):
            c.set(2)
            binding.dispose()
        assert effects == []

    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert stx.is_safe(app)

        with pytest.raises(RuntimeError):
            with stx.pause(app):
                assert not stx.is_safe(app)
                raise RuntimeError("oops")

        assert stx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        app = _MockApp()
        attrs_before = set(vars(app))
        with stx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        app_a = _MockApp()
        app_b = _MockApp()
        with stx.pause(app_a):
            assert not stx.is_safe(app_a)
            assert stx.is_safe(app_b)
