from __future__ import annotations

import threading
from typing import Optional, Tuple

from .config.model import ManagerConfig


class SnapshotHolder:
    """Holds the process-wide current configuration snapshot.

    Brief:
      The current value is a single ``(generation, snapshot)`` tuple stored in
      one attribute. Publishing replaces the tuple with one assignment and
      reading is one attribute load, so a reader sees either the old pair or
      the new pair and never waits on a writer. The writer lock only orders
      concurrent publishers so generations stay monotonic.

    Inputs:
      - initial: Snapshot to start with; None means "nothing loaded yet".

    Example:
      >>> holder = SnapshotHolder()
      >>> holder.get() is None
      True
      >>> holder.publish(ManagerConfig())
      1
    """

    def __init__(self, initial: Optional[ManagerConfig] = None) -> None:
        self._write_lock = threading.Lock()
        self._current: Tuple[int, Optional[ManagerConfig]] = (
            (0, None) if initial is None else (1, initial)
        )

    def get(self) -> Optional[ManagerConfig]:
        """Return the current snapshot, or None if none has been published."""
        return self._current[1]

    def get_with_generation(self) -> Tuple[int, Optional[ManagerConfig]]:
        """Return ``(generation, snapshot)`` as observed atomically."""
        return self._current

    @property
    def generation(self) -> int:
        return self._current[0]

    def publish(self, snapshot: ManagerConfig) -> int:
        """Brief: Replace the current snapshot.

        Inputs:
          - snapshot: Fully built ManagerConfig; None is rejected so a failed
            reload can never blank out the last good configuration.

        Outputs:
          - int: Generation number assigned to the published snapshot.
        """
        if snapshot is None:
            raise ValueError("cannot publish an empty snapshot")
        with self._write_lock:
            generation = self._current[0] + 1
            self._current = (generation, snapshot)
        return generation
