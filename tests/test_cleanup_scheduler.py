"""Tests for the background cleanup scheduler."""
from __future__ import annotations

import time

from conftest import FakeProvider
from tts_relay.core.config import CleanupConfig
from tts_relay.services.cleanup import CleanupScheduler


def _scheduler(orch, storage, fresh_metrics, **overrides):
    cfg = CleanupConfig(interval_s=60, status_max_age_minutes=60, storage_max_age_hours=24)
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return CleanupScheduler(orch, storage, cfg, metrics=fresh_metrics)


class _BrokenStorage:
    def cleanup(self, max_age_hours):
        raise OSError("disk gone")


class TestRunOnce:

    def test_nothing_expired(self, make_orchestrator, storage, fresh_metrics):
        orch = make_orchestrator(FakeProvider("P", 1))
        orch.convert("Hello")
        sched = _scheduler(orch, storage, fresh_metrics)

        assert sched.run_once() == {"status": 0, "storage": 0}
        assert sched.get_stats() == {"runs": 1, "failures": 0}

    def test_sweeps_both_targets(self, make_orchestrator, storage, clock, fresh_metrics):
        orch = make_orchestrator(FakeProvider("P", 1))
        record = orch.convert("Hello")
        sched = _scheduler(orch, storage, fresh_metrics)

        clock.advance(hours=25)

        assert sched.run_once() == {"status": 1, "storage": 1}
        assert not storage.exists(record.id)
        assert fresh_metrics.registry.get_sample_value(
            "tts_relay_cleanup_removed_total", {"target": "storage"}) == 1.0

    def test_status_only_window(self, make_orchestrator, storage, clock, fresh_metrics):
        orch = make_orchestrator(FakeProvider("P", 1))
        orch.convert("Hello")
        sched = _scheduler(orch, storage, fresh_metrics)

        clock.advance(hours=2)

        assert sched.run_once() == {"status": 1, "storage": 0}

    def test_failure_counted_and_other_sweep_runs(self, make_orchestrator, fresh_metrics, clock):
        orch = make_orchestrator(FakeProvider("P", 1))
        orch.convert("Hello")
        clock.advance(hours=2)
        sched = _scheduler(orch, _BrokenStorage(), fresh_metrics)

        assert sched.run_once() == {"status": 1, "storage": 0}
        assert sched.get_stats() == {"runs": 1, "failures": 1}


class TestThread:

    def test_start_and_stop(self, make_orchestrator, storage, fresh_metrics):
        orch = make_orchestrator(FakeProvider("P", 1))
        sched = _scheduler(orch, storage, fresh_metrics, interval_s=0.05)

        sched.start()
        sched.start()  # second start is a no-op
        assert sched.running

        deadline = time.monotonic() + 2.0
        while sched.get_stats()["runs"] < 2 and time.monotonic() < deadline:
            time.sleep(0.02)
        sched.stop()

        assert not sched.running
        assert sched.get_stats()["runs"] >= 2

    def test_stop_without_start(self, make_orchestrator, storage, fresh_metrics):
        sched = _scheduler(make_orchestrator(), storage, fresh_metrics)
        sched.stop()
        assert not sched.running
