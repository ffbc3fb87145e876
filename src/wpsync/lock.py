"""Cross-process exclusive lock on a shared filesystem path.

Brief:
  acquire() takes an OS-level exclusive lock (flock/LockFileEx via filelock)
  using non-blocking attempts on a fixed poll interval, so a stop event or a
  deadline is honoured within one interval even though the OS primitive
  itself cannot be interrupted. The OS releases the lock when the owning
  process dies; the JSON sidecar written next to the lock file is advisory
  only and is never consulted to decide who holds the lock.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25


class LockError(Exception):
    """The lock could not be acquired because of an I/O or setup failure."""


class LockCancelledError(LockError):
    """The stop event was set before the lock was acquired."""


class LockTimeoutError(LockCancelledError):
    """The deadline expired before the lock was acquired."""


@dataclass(frozen=True)
class LockInfo:
    """Ownership record published in the ``<lock>.json`` sidecar."""

    member: str
    hostname: str
    pid: int
    acquired: str

    @classmethod
    def current(cls, member: str) -> "LockInfo":
        return cls(
            member=member,
            hostname=socket.gethostname(),
            pid=os.getpid(),
            acquired=datetime.now(timezone.utc).isoformat(),
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)


def sidecar_path(lock_path: str) -> str:
    return lock_path + ".json"


def read_lock_info(lock_path: str) -> Optional[LockInfo]:
    """Brief: Read the advisory ownership record for lock_path.

    Inputs:
      - lock_path: Path of the lock file (not the sidecar).

    Outputs:
      - LockInfo, or None when the sidecar is missing or unreadable. A None
        result says nothing about whether the lock is held.
    """
    try:
        with open(sidecar_path(lock_path), "r", encoding="utf-8") as f:
            data = json.load(f)
        return LockInfo(
            member=str(data["member"]),
            hostname=str(data["hostname"]),
            pid=int(data["pid"]),
            acquired=str(data["acquired"]),
        )
    except (OSError, ValueError, KeyError, TypeError):
        return None


def _write_sidecar(lock_path: str, info: LockInfo) -> None:
    try:
        with open(sidecar_path(lock_path), "w", encoding="utf-8") as f:
            f.write(info.to_json())
    except OSError as exc:
        logger.debug("Failed to write lock info for %s: %s", lock_path, exc)


def _remove_sidecar(lock_path: str) -> None:
    try:
        os.remove(sidecar_path(lock_path))
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.debug("Failed to remove lock info for %s: %s", lock_path, exc)


class LockHandle:
    """A held lock. Call release() (or leave the ``with`` block) to unlock.

    release() is idempotent and safe to call from any thread.
    """

    def __init__(self, path: str, file_lock: FileLock, info: LockInfo) -> None:
        self.path = path
        self.info = info
        self._file_lock = file_lock
        self._release_lock = threading.Lock()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
            _remove_sidecar(self.path)
            self._file_lock.release(force=True)
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"<LockHandle {self.path!r} member={self.info.member!r} {state}>"


def acquire(
    lock_path: str | os.PathLike[str],
    member: str,
    *,
    stop_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> LockHandle:
    """Brief: Acquire an exclusive lock on lock_path, polling until it is free.

    Inputs:
      - lock_path: Lock file path; its parent directory is created if needed.
      - member: Logical identifier of this instance, recorded in the sidecar.
      - stop_event: Cancels the wait when set.
      - timeout: Maximum seconds to wait; None waits until stop_event is set.
      - poll_interval: Seconds between attempts while the lock is held elsewhere.

    Outputs:
      - LockHandle for the held lock.

    Raises:
      - LockError: the directory cannot be created or the lock primitive
        fails for a reason other than "already held". Not retried.
      - LockCancelledError: stop_event was set first. No lock is held.
      - LockTimeoutError: timeout expired first. No lock is held.

    Notes:
      - Not reentrant: acquiring a path this caller already holds polls
        against itself until cancelled.

    Example:
      >>> with acquire("/shared/.wpsync.lock", "web-1", timeout=5.0):
      ...     pass  # doctest: +SKIP
    """
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive (got {poll_interval})")

    path = os.fspath(lock_path)
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), mode=0o755, exist_ok=True)
    except OSError as exc:
        raise LockError(f"ensure lock dir for {path}: {exc}") from exc

    stop = stop_event or threading.Event()
    deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
    file_lock = FileLock(path, thread_local=False)

    while True:
        if stop.is_set():
            raise LockCancelledError(f"lock wait for {path} cancelled")
        try:
            file_lock.acquire(blocking=False)
        except Timeout:
            pass
        except OSError as exc:
            raise LockError(f"try lock {path}: {exc}") from exc
        else:
            break

        wait = poll_interval
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(f"timed out waiting for lock {path}")
            wait = min(wait, remaining)
        logger.debug("Lock %s is held elsewhere; retrying in %.3fs", path, wait)
        stop.wait(wait)

    info = LockInfo.current(member)
    _write_sidecar(path, info)
    return LockHandle(path, file_lock, info)
