"""
Brief: Tests for wpsync.config.watcher.ConfigWatcher debouncing and error reporting.

Inputs:
  - tmp_path: pytest fixture for temp directory
  - waiter: polling helper from conftest

Outputs:
  - None
"""

import os
import threading
import time
from types import SimpleNamespace

import pytest
from watchdog.events import DirModifiedEvent, FileModifiedEvent, FileMovedEvent

from wpsync.config import ConfigParseError, ManagerConfig, WatchError
from wpsync.config.watcher import ConfigWatcher, same_file, watch

GOOD = "sites:\n  - domain_name: a.example\nproxy:\n  type: apache\n"


class FakeObserver:
    """Brief: Minimal stand-in for a watchdog observer.

    Inputs:
      - fail_schedule: raise from schedule() when True

    Outputs:
      - Object exposing schedule/start/stop/join/is_alive
    """

    instances = []

    def __init__(self, fail_schedule=False):
        self.fail_schedule = fail_schedule
        self.scheduled = []
        self.alive = False
        self.stopped = False
        self.daemon = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        if self.fail_schedule:
            raise OSError("no such directory")
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.alive = True

    def stop(self):
        self.alive = False
        self.stopped = True

    def join(self, timeout=None):
        return None

    def is_alive(self):
        return self.alive


@pytest.fixture(autouse=True)
def reset_fake_observers():
    FakeObserver.instances = []
    yield


class Recorder:
    """Brief: Thread-safe collector of on_change invocations."""

    def __init__(self):
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, cfg, err):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.01)
        with self._lock:
            self.calls.append((cfg, err))
            self.active -= 1

    def errors(self):
        return [e for _, e in self.calls if e is not None]

    def configs(self):
        return [c for c, e in self.calls if e is None]


def _write(path, text):
    path.write_text(text, encoding="utf-8")


def test_same_file_ignores_case_and_normalization(tmp_path):
    """
    Brief: Path comparison tolerates case and redundant separators.

    Inputs:
      - tmp_path: base directory for path strings

    Outputs:
      - None
    """
    target = os.path.join(str(tmp_path), "Config.yaml")
    assert same_file(target, target)
    assert same_file(target, os.path.join(str(tmp_path), "config.YAML"))
    assert same_file(target, os.path.join(str(tmp_path), ".", "Config.yaml"))
    assert not same_file(target, os.path.join(str(tmp_path), "other.yaml"))


def test_handler_filters_events(tmp_path):
    """
    Brief: Only file events for the target path (source or destination) match.

    Inputs:
      - tmp_path: watched directory

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    watcher = ConfigWatcher(target, None, observer_factory=FakeObserver)
    handler = watcher.handler

    assert handler.matches(FileModifiedEvent(str(target)))
    assert handler.matches(FileMovedEvent(str(tmp_path / "tmp123"), str(target)))
    assert handler.matches(FileMovedEvent(str(target), str(tmp_path / "backup")))
    assert not handler.matches(FileModifiedEvent(str(tmp_path / "other.yaml")))
    assert not handler.matches(DirModifiedEvent(str(tmp_path)))
    opened = SimpleNamespace(
        event_type="opened", is_directory=False, src_path=str(target), dest_path=""
    )
    assert not handler.matches(opened)


def test_burst_of_events_reloads_once(tmp_path, waiter):
    """
    Brief: K matching events inside the debounce window produce one callback.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, GOOD)
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, debounce=0.2, poll_interval=0.05, observer_factory=FakeObserver
    ).start()
    try:
        for _ in range(10):
            watcher.handler.on_any_event(FileModifiedEvent(str(target)))
            time.sleep(0.01)
        time.sleep(0.05)
        assert rec.calls == []

        assert waiter(lambda: len(rec.calls) == 1, timeout=2.0)
        time.sleep(0.4)
        assert len(rec.calls) == 1
        cfg, err = rec.calls[0]
        assert err is None
        assert isinstance(cfg, ManagerConfig)
        assert cfg.domains() == ("a.example",)
    finally:
        watcher.stop()


def test_events_keep_restarting_the_timer(tmp_path, waiter):
    """
    Brief: Events spaced closer than the debounce delay postpone the reload.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, GOOD)
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, debounce=0.25, poll_interval=0.05, observer_factory=FakeObserver
    ).start()
    try:
        start = time.monotonic()
        for _ in range(5):
            watcher.handler.on_any_event(FileModifiedEvent(str(target)))
            time.sleep(0.1)
        assert rec.calls == []
        assert waiter(lambda: len(rec.calls) == 1, timeout=2.0)
        assert time.monotonic() - start >= 0.5
    finally:
        watcher.stop()


def test_reload_failure_reports_error_without_snapshot(tmp_path, waiter):
    """
    Brief: A malformed file reports (None, ConfigParseError) and watching continues.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, "sites: [\n")
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, debounce=0.05, poll_interval=0.05, observer_factory=FakeObserver
    ).start()
    try:
        watcher.handler.on_any_event(FileModifiedEvent(str(target)))
        assert waiter(lambda: len(rec.calls) == 1)
        cfg, err = rec.calls[0]
        assert cfg is None
        assert isinstance(err, ConfigParseError)

        _write(target, GOOD)
        watcher.handler.on_any_event(FileModifiedEvent(str(target)))
        assert waiter(lambda: len(rec.calls) == 2)
        assert rec.calls[1][1] is None
    finally:
        watcher.stop()


def test_dead_observer_reports_watch_error_and_restarts(tmp_path, waiter):
    """
    Brief: An observer that dies is reported as WatchError and replaced.

    Inputs:
      - tmp_path: watched directory
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, debounce=0.05, poll_interval=0.05, observer_factory=FakeObserver
    ).start()
    try:
        FakeObserver.instances[0].alive = False
        assert waiter(lambda: len(rec.errors()) == 1)
        cfg, err = rec.calls[0]
        assert cfg is None
        assert isinstance(err, WatchError)
        assert waiter(lambda: len(FakeObserver.instances) == 2)
        assert FakeObserver.instances[1].is_alive()
        assert watcher.running
    finally:
        watcher.stop()


def test_handler_failure_reported_as_watch_error(tmp_path, waiter, monkeypatch):
    """
    Brief: An exception while handling an event is delivered as WatchError.

    Inputs:
      - tmp_path: watched directory
      - waiter: polling helper
      - monkeypatch: makes matches() raise

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, poll_interval=0.05, observer_factory=FakeObserver
    ).start()
    try:

        def boom(event):
            raise RuntimeError("bad event")

        monkeypatch.setattr(watcher.handler, "matches", boom)
        watcher.handler.on_any_event(FileModifiedEvent(str(target)))
        assert waiter(lambda: len(rec.calls) == 1)
        assert rec.calls[0][0] is None
        assert isinstance(rec.calls[0][1], WatchError)
        assert watcher.running
    finally:
        watcher.stop()


def test_start_failure_raises_watch_error(tmp_path):
    """
    Brief: Failing to watch the directory raises WatchError from start().

    Inputs:
      - tmp_path: base directory

    Outputs:
      - None
    """
    watcher = ConfigWatcher(
        tmp_path / "config.yaml",
        None,
        observer_factory=lambda: FakeObserver(fail_schedule=True),
    )
    with pytest.raises(WatchError):
        watcher.start()
    assert not watcher.running


def test_stop_event_ends_loop(tmp_path, waiter):
    """
    Brief: Setting the shared stop event ends the loop and stops the observer.

    Inputs:
      - tmp_path: watched directory
      - waiter: polling helper

    Outputs:
      - None
    """
    stop = threading.Event()
    watcher = ConfigWatcher(
        tmp_path / "config.yaml",
        None,
        stop_event=stop,
        poll_interval=0.05,
        observer_factory=FakeObserver,
    ).start()
    assert watcher.running
    stop.set()
    assert waiter(lambda: not watcher.running, timeout=1.0)
    assert FakeObserver.instances[0].stopped
    watcher.stop()
    watcher.stop()


def test_callbacks_are_sequential(tmp_path, waiter):
    """
    Brief: on_change never runs concurrently with itself.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, GOOD)
    rec = Recorder()
    watcher = ConfigWatcher(
        target, rec, debounce=0.0, poll_interval=0.01, observer_factory=FakeObserver
    ).start()
    try:
        for _ in range(5):
            watcher.handler.on_any_event(FileModifiedEvent(str(target)))
            watcher._enqueue_error(WatchError("synthetic"))
            time.sleep(0.03)
        assert waiter(lambda: len(rec.calls) >= 6)
        assert rec.max_active == 1
    finally:
        watcher.stop()


def test_real_file_write_triggers_reload(tmp_path, waiter):
    """
    Brief: With a real watchdog observer, rewriting the file reloads it.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, GOOD)
    rec = Recorder()
    watcher = watch(target, rec, debounce=0.1)
    try:
        time.sleep(0.2)
        _write(target, "sites:\n  - domain_name: b.example\n")
        assert waiter(
            lambda: any(c.domains() == ("b.example",) for c in rec.configs()),
            timeout=5.0,
        )
    finally:
        watcher.stop()


def test_real_atomic_replace_triggers_reload(tmp_path, waiter):
    """
    Brief: Writing a temp file and renaming it over the target reloads it.

    Inputs:
      - tmp_path: directory holding config.yaml
      - waiter: polling helper

    Outputs:
      - None
    """
    target = tmp_path / "config.yaml"
    _write(target, GOOD)
    rec = Recorder()
    watcher = watch(target, rec, debounce=0.1)
    try:
        time.sleep(0.2)
        tmp = tmp_path / ".config.yaml.swp"
        _write(tmp, "sites:\n  - domain_name: c.example\n")
        os.replace(tmp, target)
        assert waiter(
            lambda: any(c.domains() == ("c.example",) for c in rec.configs()),
            timeout=5.0,
        )
    finally:
        watcher.stop()
