"""
Background Cleanup.

CleanupScheduler runs a daemon thread that periodically:
    - prunes conversion statuses older than status_max_age_minutes
    - sweeps stored audio older than storage_max_age_hours

Sweeps never block request handling; they share only the status table
lock (held briefly) and the filesystem. A failing sweep is logged and the
loop keeps going. Records may be served once more right before a sweep
removes them.
"""
from __future__ import annotations

import threading
from typing import Dict, Optional

from tts_relay.audio.storage import AudioStorage
from tts_relay.core.config import CleanupConfig
from tts_relay.core.logging import error, get_logger, info
from tts_relay.core.metrics import RelayMetrics, metrics as default_metrics
from tts_relay.services.orchestrator import ConversionOrchestrator

_LOG = get_logger("tts-relay.cleanup")


class CleanupScheduler:
    """
    Periodic status and storage sweeps on a daemon thread.

    Args:
        orchestrator: Owner of the status table.
        storage: Audio store to sweep.
        config: Interval and retention windows.
    """

    def __init__(
        self,
        orchestrator: ConversionOrchestrator,
        storage: AudioStorage,
        config: Optional[CleanupConfig] = None,
        metrics: Optional[RelayMetrics] = None,
    ):
        self._orchestrator = orchestrator
        self._storage = storage
        self._config = config or CleanupConfig()
        self._metrics = metrics or default_metrics
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self._runs = 0
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, daemon=True, name="tts-relay-cleanup")
            self._thread.start()
        info(_LOG, "cleanup_scheduler_started", interval_s=self._config.interval_s)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            info(_LOG, "cleanup_scheduler_stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self._config.interval_s):
            self.run_once()

    def run_once(self) -> Dict[str, int]:
        """
        Run both sweeps now.

        Returns:
            {"status": removed_statuses, "storage": removed_records}; a sweep
            that raised reports 0.
        """
        removed = {"status": 0, "storage": 0}
        with self._lock:
            self._runs += 1

        try:
            removed["status"] = self._orchestrator.cleanup(self._config.status_max_age_minutes)
        except Exception as e:
            self._record_failure("status", e)

        try:
            removed["storage"] = self._storage.cleanup(self._config.storage_max_age_hours)
            self._metrics.record_cleanup("storage", removed["storage"])
        except Exception as e:
            self._record_failure("storage", e)

        return removed

    def _record_failure(self, target: str, exc: Exception) -> None:
        with self._lock:
            self._failures += 1
        error(_LOG, "cleanup_failed", target=target, error=f"{type(exc).__name__}: {exc}")

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {"runs": self._runs, "failures": self._failures}
