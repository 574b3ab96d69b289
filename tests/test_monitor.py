import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from wurdump.core.clipboard import ClipboardMonitor, MonitorState
from wurdump.core.errors import ClipboardReadError, StorageError

INTERVAL_MS = 20


@pytest.fixture
def make_monitor(repository, clipboard):
    monitors = []

    def _make_monitor(repo=None, reader=None, interval=INTERVAL_MS):
        monitor = ClipboardMonitor(repo or repository, reader=reader or clipboard, check_interval=interval)
        monitors.append(monitor)
        return monitor

    yield _make_monitor

    for monitor in monitors:
        monitor.stop()
        if monitor._thread is not None:
            monitor._thread.join(timeout=2)


def stop_and_join(monitor):
    monitor.stop()
    monitor._thread.join(timeout=2)
    assert not monitor._thread.is_alive()


class TestMonitorState:
    def test_record_change(self):
        state = MonitorState()
        assert state.record_change("A") is True
        assert state.record_change("A") is False
        assert state.record_change("B") is True
        assert state.last_content == "B"

    def test_blank_content_is_not_a_change(self):
        state = MonitorState()
        assert state.record_change("") is False
        assert state.record_change(" \n\t") is False
        assert state.last_content == ""

    def test_start_and_stop_flags(self):
        state = MonitorState()
        generation = state.try_start()
        assert generation is not None
        assert state.try_start() is None
        assert state.is_current(generation)

        assert state.request_stop() is True
        assert state.request_stop() is False
        assert not state.is_current(generation)

        newer = state.try_start()
        assert newer != generation
        assert not state.is_current(generation)

    def test_change_resets_timer(self):
        state = MonitorState()
        time.sleep(0.02)
        before = state.time_since_last_change()
        state.record_change("A")
        assert state.time_since_last_change() < before


class TestStartStop:
    def test_start_is_idempotent(self, make_monitor):
        monitor = make_monitor()
        assert monitor.start() is True
        thread = monitor._thread
        assert monitor.start() is True
        assert monitor._thread is thread
        assert monitor.is_monitoring()

    def test_stop_is_non_blocking(self, make_monitor, clipboard, wait_until):
        clipboard.push("A")
        monitor = make_monitor(interval=5000)
        monitor.start()
        assert wait_until(lambda: clipboard.reads >= 1)

        monitor.stop()
        assert not monitor.is_monitoring()
        # The wait is interrupted, the loop does not sleep out its 5s interval
        monitor._thread.join(timeout=1)
        assert not monitor._thread.is_alive()

    def test_double_stop_is_safe(self, make_monitor):
        monitor = make_monitor()
        monitor.stop()
        monitor.start()
        monitor.stop()
        monitor.stop()
        assert not monitor.is_monitoring()

    def test_restart_leaves_one_loop(self, make_monitor):
        monitor = make_monitor()
        monitor.start()
        first = monitor._thread
        monitor.stop()
        monitor.start()
        second = monitor._thread

        assert second is not first
        first.join(timeout=2)
        assert not first.is_alive()
        assert second.is_alive()
        assert monitor.is_monitoring()

    def test_start_with_interval(self, make_monitor):
        monitor = make_monitor()
        monitor.start(interval_ms=50)
        assert monitor.check_interval == pytest.approx(0.05)

    def test_status_alias(self, make_monitor):
        monitor = make_monitor()
        monitor.start()
        assert monitor.status() is True
        assert monitor.is_running is True


class TestCapture:
    def test_repeated_value_is_stored_once(self, make_monitor, repository, clipboard, wait_until):
        clipboard.push("A", "A", "B")
        monitor = make_monitor()
        monitor.start()

        assert wait_until(lambda: repository.count() == 2)
        assert wait_until(lambda: clipboard.reads >= 5)
        assert [item.content for item in repository.list()] == ["B", "A"]

    def test_returning_value_within_window_is_not_stored(self, make_monitor, repository, clipboard,
                                                          wait_until):
        clipboard.push("A", "B", "A")
        monitor = make_monitor()
        monitor.start()

        assert wait_until(lambda: clipboard.reads >= 5)
        assert [item.content for item in repository.list()] == ["B", "A"]
        assert monitor.handle.last_content() == "A"

    def test_blank_content_is_ignored(self, make_monitor, repository, clipboard, wait_until):
        clipboard.push("   ", "\n", "A")
        monitor = make_monitor()
        monitor.start()

        assert wait_until(lambda: repository.count() == 1)
        assert repository.list()[0].content == "A"

    def test_no_stores_after_stop(self, make_monitor, repository, clipboard, wait_until):
        clipboard.push("A")
        monitor = make_monitor()
        monitor.start()
        assert wait_until(lambda: repository.count() == 1)

        stop_and_join(monitor)
        clipboard.push("B", "C")
        time.sleep(INTERVAL_MS * 5 / 1000)
        assert repository.count() == 1

    def test_read_errors_are_skipped(self, make_monitor, repository, clipboard, wait_until):
        clipboard.push(ClipboardReadError("busy"), "A")
        monitor = make_monitor()
        monitor.start()

        assert wait_until(lambda: repository.count() == 1)
        assert monitor.is_monitoring()

    def test_store_errors_do_not_stop_the_loop(self, make_monitor, clipboard, wait_until):
        repo = MagicMock()
        repo.insert_if_new.side_effect = [StorageError("database is locked"), MagicMock()]
        clipboard.push("A", "B")
        monitor = make_monitor(repo=repo)
        monitor.start()

        assert wait_until(lambda: repo.insert_if_new.call_count == 2)
        assert monitor.is_monitoring()
        repo.insert_if_new.assert_any_call("B")

    def test_callbacks_receive_stored_items(self, make_monitor, clipboard, wait_until):
        received = []

        def broken(item):
            raise RuntimeError("callback failure")

        clipboard.push("A", "B")
        monitor = make_monitor()
        monitor.add_callback(broken)
        monitor.add_callback(received.append)
        monitor.start()

        assert wait_until(lambda: len(received) == 2)
        assert [item.content for item in received] == ["A", "B"]

    def test_removed_callback_is_not_called(self, make_monitor, clipboard):
        callback = MagicMock()
        clipboard.push("A")
        monitor = make_monitor()
        monitor.add_callback(callback)
        monitor.remove_callback(callback)
        monitor.force_check()
        callback.assert_not_called()


class TestForceCheck:
    def test_stores_new_content(self, make_monitor, repository, clipboard):
        clipboard.push("A")
        monitor = make_monitor()
        assert monitor.force_check() == "A"
        assert repository.count() == 1

    def test_unchanged_content_is_returned_but_not_stored(self, make_monitor, repository, clipboard):
        clipboard.push("A", "A")
        monitor = make_monitor()
        monitor.force_check()
        assert monitor.force_check() == "A"
        assert repository.count() == 1

    def test_blank_content(self, make_monitor, repository, clipboard):
        clipboard.push("  ")
        monitor = make_monitor()
        assert monitor.force_check() is None
        assert repository.count() == 0

    def test_read_error_propagates(self, make_monitor):
        monitor = make_monitor()
        with pytest.raises(ClipboardReadError):
            monitor.force_check()

    def test_works_without_running_monitor(self, make_monitor, clipboard):
        clipboard.push("A")
        monitor = make_monitor()
        monitor.force_check()
        assert not monitor.is_monitoring()
        assert monitor.handle.last_content() == "A"


class TestHandle:
    def test_handle_reflects_state(self, make_monitor, clipboard):
        clipboard.push("A")
        monitor = make_monitor()
        handle = monitor.handle
        assert handle.is_monitoring() is False
        assert handle.last_content() == ""

        monitor.start()
        assert handle.is_monitoring() is True
        monitor.force_check()
        assert handle.last_content() == "A"
        assert isinstance(handle.time_since_last_change(), timedelta)
        assert handle.time_since_last_change() >= timedelta(0)

        monitor.stop()
        assert handle.is_monitoring() is False
