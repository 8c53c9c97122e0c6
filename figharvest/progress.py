"""Shared progress counter polled by the UI/CLI while workers run."""

from __future__ import annotations

import threading


class ProgressState:
    """Estimated total plus an atomically incremented count of finished units.

    The total is an estimate, so the raw count may overshoot or undershoot it.
    Readers only ever see ``processed`` clamped to ``total``; :meth:`finish`
    closes the gap once the run is over.
    """

    def __init__(self, total: int = 1) -> None:
        self._lock = threading.Lock()
        self._total = max(1, int(total))
        self._completed = 0

    @property
    def total(self) -> int:
        return self._total

    @property
    def completed_units(self) -> int:
        with self._lock:
            return self._completed

    @property
    def processed(self) -> int:
        with self._lock:
            return min(self._completed, self._total)

    def reset(self, total: int) -> None:
        with self._lock:
            self._total = max(1, int(total))
            self._completed = 0

    def increment(self, units: int = 1) -> int:
        with self._lock:
            self._completed += units
            return self._completed

    def finish(self) -> None:
        with self._lock:
            if self._completed < self._total:
                self._completed = self._total

    def percentage(self) -> float:
        with self._lock:
            done = min(self._completed, self._total)
            return min(100.0, done / self._total * 100.0)

    def is_complete(self) -> bool:
        with self._lock:
            return self._completed >= self._total
