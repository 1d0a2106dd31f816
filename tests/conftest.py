"""Shared fixtures: scripted providers, temporary storage, fresh metrics."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from tts_relay.audio.storage import AudioStorage
from tts_relay.core.config import RelayConfig
from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.core.metrics import RelayMetrics
from tts_relay.providers.base import AudioSettings, BaseProvider, CancelToken, ConversionResult
from tts_relay.providers.registry import ProviderRegistry
from tts_relay.services.orchestrator import ConversionOrchestrator


class FakeProvider(BaseProvider):
    """
    Scripted provider for orchestration tests.

    Args:
        name: Provider name.
        priority: Ordering key.
        available: Probe answer, or an Exception instance to raise.
        probe_delay: Seconds the probe blocks before answering.
        delay: Seconds convert() blocks (ignores the token when ``stubborn``).
        error: ProviderError (or any exception) raised by convert().
        audio: Bytes returned on success.
    """

    def __init__(
        self,
        name: str,
        priority: float = 1,
        available=True,
        probe_delay: float = 0.0,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        audio: bytes = b"ID3" + b"\x00" * 997,
        fmt: str = "mp3",
        duration: float = 1.5,
        timeout_s: float = 1.0,
        stubborn: bool = False,
    ):
        super().__init__(priority=priority, timeout_s=timeout_s)
        self.name = name
        self.available = available
        self.probe_delay = probe_delay
        self.delay = delay
        self.error = error
        self.audio = audio
        self.fmt = fmt
        self.duration = duration
        self.stubborn = stubborn

        self.probe_calls = 0
        self.convert_calls = 0
        self.seen_text: List[str] = []
        self.seen_settings: List[AudioSettings] = []
        self.tokens: List[CancelToken] = []
        self.closed = False
        self._lock = threading.Lock()

    def _probe(self) -> bool:
        with self._lock:
            self.probe_calls += 1
        if self.probe_delay:
            time.sleep(self.probe_delay)
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    def get_voices(self):
        return ["fake-voice"]

    def convert(self, text, settings, token=None) -> ConversionResult:
        with self._lock:
            self.convert_calls += 1
            self.seen_text.append(text)
            self.seen_settings.append(settings)
            if token is not None:
                self.tokens.append(token)
        if self.delay:
            if self.stubborn or token is None:
                time.sleep(self.delay)
            else:
                token.wait(self.delay)
                token.raise_if_cancelled(self.name)
        if self.error is not None:
            raise self.error
        return self._result(self.audio, self.duration, self.fmt, settings.voice)

    def close(self) -> None:
        self.closed = True


def provider_error(name: str, kind: ErrorKind = ErrorKind.SERVICE_ERROR) -> ProviderError:
    return ProviderError(f"{name}: scripted failure", kind, name)


class FrozenClock:
    """Settable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fresh_metrics():
    return RelayMetrics()


@pytest.fixture
def storage(tmp_path, clock):
    return AudioStorage(str(tmp_path / "audio"), max_file_size=1024 * 1024, clock=clock)


@pytest.fixture
def config():
    cfg = RelayConfig()
    cfg.orchestrator.probe_timeout_s = 0.5
    return cfg


@pytest.fixture
def make_orchestrator(storage, config, clock, fresh_metrics):
    """Factory: orchestrator over the given providers, shut down after the test."""
    created = []

    def _make(*providers, **overrides):
        orch = ConversionOrchestrator(
            ProviderRegistry(providers),
            overrides.get("storage", storage),
            overrides.get("config", config),
            clock=overrides.get("clock", clock),
            metrics=overrides.get("metrics", fresh_metrics),
        )
        created.append(orch)
        return orch

    yield _make
    for orch in created:
        orch.shutdown()
