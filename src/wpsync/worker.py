from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .config.model import ManagerConfig

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 180.0
DEFAULT_POLL_INTERVAL = 0.25

WorkFunc = Callable[[threading.Event, Optional[ManagerConfig]], None]
GetConfig = Callable[[], Optional[ManagerConfig]]

IDLE = "idle"
PENDING = "pending"
RUNNING = "running"


class Worker:
    """
    Runs a unit of work on a fixed interval and on demand, one run at a time.

    Inputs (constructor):
        fn: Unit of work, called as fn(stop_event, snapshot). Exceptions are
            logged and do not stop the worker.
        get_config: Returns the current snapshot (or None); called when a run
            starts, not when it was requested.
        interval: Seconds between periodic runs (<= 0 selects the default of
            3 minutes).
        log: Logger for run errors (default: this module's logger).
        poll_interval: Longest the loop sleeps before re-checking for
            shutdown.

    Run requests share a single slot. trigger() fills it if empty and is a
    no-op otherwise, so any burst of requests made while a run is pending or
    in progress results in at most one further run. Timer ticks go through
    the same slot; ticks missed during a long run are dropped.

    Example:
        >>> worker = Worker(fn, holder.get, interval=30.0)  # doctest: +SKIP
        >>> thread = worker.start(stop_event)  # doctest: +SKIP
        >>> worker.trigger()  # doctest: +SKIP
        True
    """

    def __init__(
        self,
        fn: WorkFunc,
        get_config: GetConfig,
        interval: float = DEFAULT_INTERVAL,
        *,
        log: Optional[logging.Logger] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.fn = fn
        self.get_config = get_config
        self.interval = float(interval) if interval and interval > 0 else DEFAULT_INTERVAL
        self.logger = log or logger
        self.poll_interval = max(0.001, float(poll_interval))

        self._signal = threading.Event()
        self._signal_lock = threading.Lock()
        self._stop = threading.Event()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self.runs = 0
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> str:
        if self._running:
            return RUNNING
        return PENDING if self._signal.is_set() else IDLE

    def trigger(self) -> bool:
        """Request a run soon.

        Returns:
            True if the request was recorded, False if a run was already
            pending and this one was coalesced into it.
        """
        with self._signal_lock:
            if self._signal.is_set():
                return False
            self._signal.set()
            return True

    def _consume(self) -> bool:
        with self._signal_lock:
            if not self._signal.is_set():
                return False
            self._signal.clear()
            return True

    def stop(self, timeout: float = 5.0) -> None:
        """Ask the loop to exit and wait for it; an in-progress run finishes first."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def start(self, stop_event: Optional[threading.Event] = None) -> threading.Thread:
        """Run the loop on a daemon thread and return the thread."""
        if self._thread is not None:
            raise RuntimeError("worker already started")
        self._thread = threading.Thread(
            target=self.run, args=(stop_event,), name="Worker", daemon=True
        )
        self._thread.start()
        return self._thread

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Worker main loop. Returns once stop_event is set or stop() is called.

        An initial run is requested immediately; afterwards a run is requested
        every interval seconds. The loop never interrupts a run in progress.

        The unit of work always receives the worker's own stop event. A shared
        stop_event is forwarded to it, so work in flight sees either kind of
        shutdown request.
        """
        ctx = self._stop
        if stop_event is not None:
            self._forward_stop(stop_event)

        def stopping() -> bool:
            return ctx.is_set() or (stop_event is not None and stop_event.is_set())

        next_tick = time.monotonic() + self.interval
        self.trigger()

        while not stopping():
            now = time.monotonic()
            if now >= next_tick:
                self.trigger()
                while next_tick <= now:
                    next_tick += self.interval

            wait = min(self.poll_interval, max(0.0, next_tick - time.monotonic()))
            if not self._signal.wait(wait):
                continue
            if stopping():
                break
            if not self._consume():
                continue
            self._run_once(ctx)

    def _forward_stop(self, stop_event: threading.Event) -> None:
        def forward() -> None:
            while not self._stop.is_set():
                if stop_event.wait(self.poll_interval):
                    self._stop.set()
                    return

        threading.Thread(target=forward, name="Worker-stop", daemon=True).start()

    def _run_once(self, ctx: threading.Event) -> None:
        self._running = True
        try:
            cfg = self.get_config()
            self.fn(ctx, cfg)
        except Exception as exc:
            self.last_error = exc
            self.logger.error("worker run error: %s", exc, exc_info=True)
        else:
            self.last_error = None
        finally:
            self._running = False
            self.runs += 1
