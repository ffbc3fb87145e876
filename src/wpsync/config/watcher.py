from __future__ import annotations

import logging
import os
import queue
import threading
import time
from typing import Callable, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config_parser import ConfigError, load_config
from .model import ManagerConfig

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.2
DEFAULT_POLL_INTERVAL = 0.25
_RESTART_BACKOFF = 1.0

# "opened" and "closed_no_write" are excluded: our own reloads produce them.
_RELOAD_EVENT_TYPES = frozenset({"modified", "created", "moved", "deleted", "closed"})

OnChange = Callable[[Optional[ManagerConfig], Optional[Exception]], None]


class WatchError(ConfigError):
    """The file watching machinery failed (as opposed to the file contents)."""


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.normpath(os.path.abspath(path))).casefold()


def same_file(a: str, b: str) -> bool:
    """Compare two paths, tolerating case differences some platforms report."""
    if a == b:
        return True
    return _normalize(a) == _normalize(b)


class _TargetFileHandler(FileSystemEventHandler):
    """Brief: Forwards events for one file in a watched directory to the watcher.

    Inputs:
      - watcher: ConfigWatcher receiving matching events.
      - target: Absolute path of the watched file.

    Outputs:
      - None (events are queued on the watcher, never processed here).
    """

    def __init__(self, watcher: "ConfigWatcher", target: str) -> None:
        super().__init__()
        self._watcher = watcher
        self._target = target

    def matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory or event.event_type not in _RELOAD_EVENT_TYPES:
            return False
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if raw and same_file(os.fsdecode(raw), self._target):
                return True
        return False

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            if self.matches(event):
                self._watcher._enqueue_event(event.event_type)
        except Exception as exc:  # keeps the observer thread alive
            self._watcher._enqueue_error(WatchError(f"watch error: {exc}"))


class ConfigWatcher:
    """
    Watch a configuration file and deliver debounced reload results.

    The directory containing the file is watched rather than the file itself,
    so editors that save by writing a temp file and renaming it over the
    target are still seen. Every matching event restarts one debounce timer;
    the file is reloaded only once the timer runs out with no further events.

    Inputs (constructor):
        path: Configuration file to watch.
        on_change: Called as on_change(snapshot, None) after a successful
            reload and on_change(None, error) otherwise. When error is not
            None it is authoritative and the snapshot must be ignored.
        debounce: Quiet period in seconds before a reload.
        stop_event: Shared shutdown event; the watcher stops when it is set.
        poll_interval: Upper bound on how long the loop sleeps between
            checks of stop_event and observer health.
        observer_factory: Callable returning a watchdog observer.

    Example:
        >>> watcher = ConfigWatcher("config.yaml", on_change)  # doctest: +SKIP
        >>> watcher.start()  # doctest: +SKIP
        >>> watcher.stop()  # doctest: +SKIP

    All on_change calls happen one at a time on the watcher's loop thread.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        on_change: Optional[OnChange],
        *,
        debounce: float = DEFAULT_DEBOUNCE,
        stop_event: Optional[threading.Event] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        observer_factory: Callable[[], object] = Observer,
    ) -> None:
        self.path = os.path.abspath(os.fspath(path))
        self.directory = os.path.dirname(self.path)
        self.debounce = max(0.0, float(debounce))
        self._on_change = on_change
        self._stop_event = stop_event
        self._poll_interval = max(0.01, float(poll_interval))
        self._observer_factory = observer_factory

        self.handler = _TargetFileHandler(self, self.path)
        self._queue: "queue.Queue[Tuple[str, object]]" = queue.Queue()
        self._stop = threading.Event()
        self._observer = None
        self._thread: Optional[threading.Thread] = None
        self._next_restart = 0.0

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> "ConfigWatcher":
        """Start watching.

        Raises:
            WatchError: when the directory cannot be watched.
        """
        if self._thread is not None:
            raise RuntimeError("watcher already started")
        self._observer = self._start_observer()
        self._thread = threading.Thread(
            target=self._loop, name="ConfigWatcher", daemon=True
        )
        self._thread.start()
        logger.info("Watching %s", self.directory)
        return self

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching and release the observer. Safe to call repeatedly."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._shutdown_observer()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _stopping(self) -> bool:
        if self._stop.is_set():
            return True
        return self._stop_event is not None and self._stop_event.is_set()

    # -- observer management ----------------------------------------------

    def _start_observer(self):
        observer = self._observer_factory()
        try:
            observer.schedule(self.handler, self.directory, recursive=False)
            observer.daemon = True
            observer.start()
        except Exception as exc:
            raise WatchError(f"watch dir {self.directory}: {exc}") from exc
        return observer

    def _shutdown_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        try:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=2.0)
        except RuntimeError:
            # join() on an observer that was never started
            pass

    def _check_observer(self) -> None:
        observer = self._observer
        if observer is None or observer.is_alive():
            return
        now = time.monotonic()
        if now < self._next_restart:
            return
        self._next_restart = now + _RESTART_BACKOFF
        self._emit(None, WatchError(f"observer for {self.directory} stopped unexpectedly"))
        self._shutdown_observer()
        try:
            self._observer = self._start_observer()
            logger.info("Restarted watcher for %s", self.directory)
        except WatchError as exc:
            self._emit(None, exc)

    # -- event loop ---------------------------------------------------------

    def _enqueue_event(self, event_type: str) -> None:
        self._queue.put(("event", event_type))

    def _enqueue_error(self, error: Exception) -> None:
        self._queue.put(("error", error))

    def _loop(self) -> None:
        deadline: Optional[float] = None
        try:
            while not self._stopping():
                timeout = self._poll_interval
                if deadline is not None:
                    timeout = max(0.0, min(timeout, deadline - time.monotonic()))
                try:
                    kind, payload = self._queue.get(timeout=timeout)
                except queue.Empty:
                    kind, payload = "", None

                if self._stopping():
                    break
                if kind == "event":
                    logger.debug("Change event %s for %s", payload, self.path)
                    deadline = time.monotonic() + self.debounce
                    continue
                if kind == "error":
                    self._emit(None, payload)
                    continue

                if deadline is not None and time.monotonic() >= deadline:
                    deadline = None
                    self._reload()
                self._check_observer()
        finally:
            self._shutdown_observer()

    def _reload(self) -> None:
        try:
            cfg = load_config(self.path)
        except ConfigError as exc:
            self._emit(None, exc)
            return
        self._emit(cfg, None)

    def _emit(self, cfg: Optional[ManagerConfig], err: Optional[Exception]) -> None:
        if self._on_change is None:
            if err is not None:
                logger.warning("Config watcher error: %s", err)
            return
        try:
            self._on_change(cfg, err)
        except Exception:
            logger.exception("Error in config change callback")


def watch(
    path: str | os.PathLike[str],
    on_change: Optional[OnChange],
    *,
    debounce: float = DEFAULT_DEBOUNCE,
    stop_event: Optional[threading.Event] = None,
) -> ConfigWatcher:
    """Brief: Start watching path and return the running watcher.

    Inputs:
      - path: Configuration file path.
      - on_change: Reload callback, see ConfigWatcher.
      - debounce: Quiet period in seconds.
      - stop_event: Shared shutdown event.

    Outputs:
      - ConfigWatcher: already started; call its stop() to stop watching.

    Raises:
      - WatchError: the containing directory cannot be watched.
    """
    return ConfigWatcher(
        path, on_change, debounce=debounce, stop_event=stop_event
    ).start()
