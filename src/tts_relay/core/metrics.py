"""
Prometheus Metrics for tts-relay.

Metrics Exposed:
    tts_relay_provider_attempts_total{provider,outcome}
        Conversion attempts per provider. outcome is "success" or an
        ErrorKind value ("timeout", "service_error", ...).
    tts_relay_provider_latency_seconds{provider}
        Histogram of attempt latency, successful or not.
    tts_relay_conversions_total{status}
        Terminal conversion outcomes ("completed", "failed", "rejected").
    tts_relay_audio_bytes_total
        Audio bytes persisted to storage.
    tts_relay_cleanup_removed_total{target}
        Records removed by cleanup sweeps ("status" or "storage").
    tts_relay_audio_responses_total{status}
        Delivery layer responses by HTTP status.

Usage:
    from tts_relay.core.metrics import metrics

    metrics.record_attempt("GoogleTTS", "success", 0.42)
    content, content_type = metrics.get_metrics_response()

Prometheus Scrape Config Example:
    scrape_configs:
      - job_name: 'tts-relay'
        static_configs:
          - targets: ['localhost:8000']
        metrics_path: '/metrics'
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class RelayMetrics:
    """
    Metrics collection for the relay.

    Uses a private CollectorRegistry so several instances (tests, or an
    embedded app next to other Prometheus users) never collide. All
    Prometheus metric operations are thread-safe.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._attempts_total = Counter(
            "tts_relay_provider_attempts_total",
            "Provider conversion attempts",
            ["provider", "outcome"],
            registry=self._registry,
        )
        self._attempt_latency = Histogram(
            "tts_relay_provider_latency_seconds",
            "Provider attempt latency in seconds",
            ["provider"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0),
            registry=self._registry,
        )
        self._conversions_total = Counter(
            "tts_relay_conversions_total",
            "Conversion requests by terminal status",
            ["status"],
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "tts_relay_audio_bytes_total",
            "Audio bytes persisted to storage",
            registry=self._registry,
        )
        self._cleanup_removed = Counter(
            "tts_relay_cleanup_removed_total",
            "Records removed by cleanup sweeps",
            ["target"],
            registry=self._registry,
        )
        self._audio_responses = Counter(
            "tts_relay_audio_responses_total",
            "Audio delivery responses by HTTP status",
            ["status"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_attempt(self, provider: str, outcome: str, duration: float) -> None:
        """
        Record one provider conversion attempt.

        Args:
            provider: Provider name.
            outcome: "success" or an ErrorKind value.
            duration: Attempt latency in seconds.
        """
        self._attempts_total.labels(provider=provider, outcome=outcome).inc()
        self._attempt_latency.labels(provider=provider).observe(max(duration, 0.0))

    def record_conversion(self, status: str, audio_bytes: int = 0) -> None:
        """Record a terminal conversion outcome."""
        self._conversions_total.labels(status=status).inc()
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_cleanup(self, target: str, removed: int) -> None:
        if removed > 0:
            self._cleanup_removed.labels(target=target).inc(removed)

    def record_audio_response(self, status: int) -> None:
        self._audio_responses.labels(status=str(status)).inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance used by the orchestrator, delivery layer and /metrics
metrics = RelayMetrics()
