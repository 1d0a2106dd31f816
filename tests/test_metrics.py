"""Tests for Prometheus metrics."""
from __future__ import annotations

import pytest

from tts_relay.core.metrics import RelayMetrics, metrics


class TestRelayMetrics:

    def test_global_instance(self):
        assert isinstance(metrics, RelayMetrics)

    def test_instances_do_not_collide(self):
        a, b = RelayMetrics(), RelayMetrics()
        a.record_conversion("completed")
        assert a.registry.get_sample_value("tts_relay_conversions_total", {"status": "completed"}) == 1.0
        assert b.registry.get_sample_value("tts_relay_conversions_total", {"status": "completed"}) is None

    def test_record_attempt(self):
        m = RelayMetrics()
        m.record_attempt("GoogleTTS", "success", 0.3)
        m.record_attempt("GoogleTTS", "timeout", 3.0)
        reg = m.registry
        assert reg.get_sample_value(
            "tts_relay_provider_attempts_total", {"provider": "GoogleTTS", "outcome": "timeout"}) == 1.0
        assert reg.get_sample_value(
            "tts_relay_provider_latency_seconds_count", {"provider": "GoogleTTS"}) == 2.0
        assert reg.get_sample_value(
            "tts_relay_provider_latency_seconds_sum", {"provider": "GoogleTTS"}) == pytest.approx(3.3)

    def test_audio_bytes_only_when_positive(self):
        m = RelayMetrics()
        m.record_conversion("failed")
        m.record_conversion("completed", 2048)
        assert m.registry.get_sample_value("tts_relay_audio_bytes_total") == 2048.0

    def test_cleanup_zero_not_counted(self):
        m = RelayMetrics()
        m.record_cleanup("storage", 0)
        m.record_cleanup("status", 3)
        assert m.registry.get_sample_value("tts_relay_cleanup_removed_total", {"target": "storage"}) is None
        assert m.registry.get_sample_value("tts_relay_cleanup_removed_total", {"target": "status"}) == 3.0

    def test_exposition(self):
        m = RelayMetrics()
        m.record_audio_response(206)
        content, content_type = m.get_metrics_response()
        assert b'tts_relay_audio_responses_total{status="206"} 1.0' in content
        assert content_type.startswith("text/plain")
