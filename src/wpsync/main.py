from __future__ import annotations

import argparse
import logging
import os
import signal
import socket
import threading
from typing import Callable, List, Optional

from .config.config_parser import ConfigError, load_config
from .config.logging_config import init_logging
from .config.model import ManagerConfig
from .config.watcher import WatchError, watch
from .lock import LockError, LockHandle, acquire
from .state import SnapshotHolder
from .utils.durations import parse_duration
from .work import DEFAULT_WORK, load_work_function
from .worker import Worker

logger = logging.getLogger("wpsync.main")

LOCK_FILENAME = ".wpsync.lock"


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wpsync",
        description="Keep managed WordPress sites in sync with a YAML configuration",
    )
    parser.add_argument(
        "--config", default="config.yaml", help="Path to YAML configuration file"
    )
    parser.add_argument(
        "--lock",
        default="",
        help="Path to lock file on shared filesystem (default: next to the config)",
    )
    parser.add_argument(
        "--member",
        default="",
        help="Identifier for this instance (default: host name)",
    )
    parser.add_argument(
        "--lock-timeout",
        type=_duration,
        default=0.0,
        help="Max time to wait for the lock, e.g. 30s (0 = wait forever)",
    )
    parser.add_argument(
        "--interval",
        type=_duration,
        default=parse_duration("3m"),
        help="Worker interval, e.g. 3m or 30s",
    )
    parser.add_argument(
        "--work",
        default=DEFAULT_WORK,
        help="Unit of work to run, as package.module:function",
    )
    parser.add_argument("--log-level", default="info", help="debug, info, warn, error")
    parser.add_argument("--log-file", default="", help="Also append logs to this file")
    parser.add_argument(
        "--syslog",
        nargs="?",
        const="/dev/log",
        default="",
        help="Also log to syslog, optionally at this socket path (default: /dev/log)",
    )
    return parser


def default_lock_path(config_path: str) -> str:
    """Lock file location used when --lock is not given."""
    return os.path.join(os.path.dirname(config_path) or ".", LOCK_FILENAME)


def acquire_lock(
    config_path: str,
    lock_path: str,
    member: str,
    lock_timeout: float,
    stop_event: threading.Event,
) -> LockHandle:
    """
    Acquire the instance lock, deriving defaults for the path and member.

    Args:
        config_path: Configuration path; the default lock lives beside it.
        lock_path: Explicit lock path, or "" for the default.
        member: Instance identifier, or "" for the host name.
        lock_timeout: Seconds to wait; 0 waits until stop_event is set.
        stop_event: Shutdown event that aborts the wait.

    Raises:
        LockError: including LockCancelledError and LockTimeoutError.
    """
    path = lock_path or default_lock_path(config_path)
    who = member or socket.gethostname()
    handle = acquire(
        path,
        who,
        stop_event=stop_event,
        timeout=lock_timeout if lock_timeout > 0 else None,
    )
    logger.info("acquired lock: %s (member=%s)", path, who)
    return handle


def load_initial_config(config_path: str) -> Optional[ManagerConfig]:
    """Load the first snapshot; a failure is logged and yields None."""
    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        logger.warning("config load: %s", exc)
        return None
    logger.info("config loaded: %d site(s)", len(cfg.sites))
    return cfg


def make_reload_handler(
    holder: SnapshotHolder, worker: Worker
) -> Callable[[Optional[ManagerConfig], Optional[Exception]], None]:
    """
    Build the watcher callback that publishes reloads and requests a run.

    A non-None error always wins: the snapshot argument is ignored and the
    previously published snapshot stays current.
    """

    def on_change(cfg: Optional[ManagerConfig], err: Optional[Exception]) -> None:
        if err is not None:
            logger.warning("config reload error: %s", err)
            return
        if cfg is None:
            return
        holder.publish(cfg)
        worker.trigger()
        logger.info("config reloaded: %d site(s)", len(cfg.sites))

    return on_change


def install_signal_handlers(stop_event: threading.Event) -> Callable[[], None]:
    """
    Route SIGINT, SIGTERM and SIGHUP to stop_event.

    Returns:
        A function restoring the previous handlers.
    """
    previous = {}

    def _handler(signum, _frame):
        if not stop_event.is_set():
            logger.info("Received %s, initiating shutdown", signal.Signals(signum).name)
        stop_event.set()

    for name in ("SIGINT", "SIGTERM", "SIGHUP"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # signal.signal only works in the main thread
            logger.debug("Could not install %s handler", name)

    def restore() -> None:
        for sig, old in previous.items():
            try:
                signal.signal(sig, old)
            except ValueError:  # pragma: no cover - not in main thread
                pass

    return restore


def main(argv: List[str] | None = None, stop_event: threading.Event | None = None) -> int:
    """
    Entry point: lock, load, schedule, watch, and wait for shutdown.

    Args:
        argv: Command-line arguments (default: sys.argv[1:]).
        stop_event: Shutdown event; created when omitted. Tests set it to
            stop the process loop.

    Returns:
        0 after a graceful shutdown, 1 on a fatal startup error.

    Example use:
        CLI:
            wpsync --config /shared/sites.yaml --interval 3m
    """
    args = build_parser().parse_args(argv)
    init_logging(
        {
            "level": args.log_level,
            "file": args.log_file or None,
            "syslog": {"address": args.syslog} if args.syslog else None,
        }
    )

    try:
        work_fn = load_work_function(args.work)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        logger.error("invalid --work %r: %s", args.work, exc)
        return 1

    stop = stop_event or threading.Event()
    restore_signals = install_signal_handlers(stop)
    try:
        try:
            handle = acquire_lock(
                args.config, args.lock, args.member, args.lock_timeout, stop
            )
        except LockError as exc:
            logger.error("failed to acquire lock: %s", exc)
            return 1

        try:
            holder = SnapshotHolder(load_initial_config(args.config))
            worker = Worker(work_fn, holder.get, args.interval)
            worker.start(stop)

            try:
                watcher = watch(
                    args.config, make_reload_handler(holder, worker), stop_event=stop
                )
            except WatchError as exc:
                logger.error("watch start: %s", exc)
                stop.set()
                worker.stop()
                return 1

            logger.info("watching %s for changes...", args.config)
            while not stop.wait(1.0):
                pass

            logger.info("shutting down")
            watcher.stop()
            worker.stop()
        finally:
            handle.release()
    finally:
        restore_signals()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
