"""
tts-relay: Text-to-Speech Relay with Provider Failover.

Converts short text into speech by delegating to a ranked set of external
speech-synthesis providers, failing over between them when one is slow or
broken, and serving the resulting audio back over HTTP with seek support.

Key Features:
    - Priority-ordered provider failover with per-attempt timeouts
    - Concurrent, bounded availability probing
    - Per-conversion status tracking (pending/processing/completed/failed)
    - Atomic on-disk audio storage with sidecar metadata
    - HTTP Range delivery (200/206/416) for audio scrubbing
    - Background cleanup of old conversions and audio files
    - Prometheus metrics and structured JSONL logging

Example Usage:
    >>> from tts_relay.core.config import Settings
    >>> from tts_relay.main import create_app
    >>>
    >>> app = create_app(Settings(raw={"storage": {"base_dir": "/tmp/audio"}}))
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
