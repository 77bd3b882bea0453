"""
sweeper.py — Periodic expiry sweep for the guard store
======================================================
A daemon thread that calls ``GuardStore.sweep()`` every ``interval``
seconds. Owned by the application lifespan: started on startup and
stopped (and joined) on shutdown. The sweep only bounds memory; the
store expires entries lazily on its own.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .store import GuardStore

log = logging.getLogger("backoffice.guard")


class StoreSweeper:
    def __init__(self, store: GuardStore, interval: float = 60.0) -> None:
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self.store = store
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="guard-sweeper", daemon=True
        )
        self._thread.start()
        log.info("Guard sweeper started (interval=%ss)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            log.info("Guard sweeper stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.store.sweep()
            except Exception:
                log.exception("Guard sweep failed")
