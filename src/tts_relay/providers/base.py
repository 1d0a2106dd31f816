"""
Provider Contract.

Every speech backend implements BaseProvider. The orchestrator only ever
talks to this interface; wire formats, credentials and voice-name tables
stay inside each concrete provider.

Contract:
    is_available() -> bool
        Time-bounded probe. Never raises; any failure means False.
    get_voices() -> list[str]
        Ordered voice identifiers understood by the provider.
    convert(text, settings, token) -> ConversionResult
        Raises ProviderError tagged with an ErrorKind and the provider name.
    get_status() -> ProviderStatus
        Timed availability probe plus the observed error rate.

Cancellation:
    Each convert() call receives a CancelToken carrying the attempt
    deadline. Providers derive transport timeouts from token.remaining()
    and call token.raise_if_cancelled() between steps. Cancellation is
    best-effort: a provider blocked inside a socket read only notices it
    when the read returns or its own timeout fires.

Example:
    class EchoProvider(BaseProvider):
        name = "Echo"
        priority = 5

        def _probe(self) -> bool:
            return True

        def get_voices(self):
            return ["default"]

        def convert(self, text, settings, token=None):
            return ConversionResult(audio=text.encode(), duration=1.0, format="wav",
                                    metadata=ConversionMetadata(tts_service=self.name))
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from tts_relay.core.config import Defaults
from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.core.logging import get_logger, verbose
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.providers")

AUDIO_FORMATS = ("mp3", "wav", "ogg")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AudioSettings:
    """
    Synthesis settings shared by all providers.

    Attributes:
        volume: Loudness 0-100 (75 is the neutral level).
        playback_speed: Speaking rate multiplier, 0.8-1.5.
        voice: Provider-specific voice identifier, or None for the default.
    """
    volume: int = Defaults.AUDIO_VOLUME
    playback_speed: float = Defaults.AUDIO_PLAYBACK_SPEED
    voice: Optional[str] = None

    @classmethod
    def from_partial(cls, data: Optional[Mapping[str, Any]]) -> "AudioSettings":
        """
        Build settings from a partial mapping, filling in defaults.

        Accepts both ``playback_speed`` and the camelCase ``playbackSpeed``.
        Values are not range-checked here; see services.validators.
        """
        if not data:
            return cls()
        speed = data.get("playback_speed", data.get("playbackSpeed"))
        return cls(
            volume=int(data["volume"]) if data.get("volume") is not None else Defaults.AUDIO_VOLUME,
            playback_speed=float(speed) if speed is not None else Defaults.AUDIO_PLAYBACK_SPEED,
            voice=data.get("voice") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"volume": self.volume, "playback_speed": self.playback_speed, "voice": self.voice}


@dataclass
class ConversionMetadata:
    """Who produced a result, with which voice, and when."""
    tts_service: str
    voice: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ConversionResult:
    """
    Audio produced by a provider.

    Attributes:
        audio: Encoded audio bytes.
        duration: Estimated duration in seconds.
        format: One of AUDIO_FORMATS.
        metadata: Producing provider, voice and timestamp.
    """
    audio: bytes
    duration: float
    format: str
    metadata: ConversionMetadata

    @property
    def size(self) -> int:
        return len(self.audio)


@dataclass
class ProviderStatus:
    """Snapshot of a provider's health."""
    available: bool
    last_check: datetime = field(default_factory=utcnow)
    response_time_ms: Optional[float] = None
    error_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "response_time_ms": self.response_time_ms,
            "error_rate": self.error_rate,
            "last_check": self.last_check.isoformat(),
        }


class CancelToken:
    """
    Deadline and cancellation flag for one provider call.

    The orchestrator creates one token per attempt, hands it to
    convert(), and calls cancel() when it stops waiting.
    """

    def __init__(self, timeout_s: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._deadline = clock() + timeout_s if timeout_s is not None else None
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self, default: Optional[float] = None) -> Optional[float]:
        """Seconds left before the deadline (0 when cancelled), or ``default`` if unbounded."""
        if self._event.is_set():
            return 0.0
        if self._deadline is None:
            return default
        return max(0.0, self._deadline - self._clock())

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True early if cancelled."""
        remaining = self.remaining(seconds)
        return self._event.wait(min(seconds, remaining if remaining is not None else seconds))

    def raise_if_cancelled(self, provider: str) -> None:
        if self.cancelled:
            raise ProviderError(f"{provider} attempt cancelled after deadline", ErrorKind.TIMEOUT, provider)


class BaseProvider(ABC):
    """
    Abstract base for speech-synthesis providers.

    Subclasses set ``name``, ``priority`` and ``timeout_s`` as class
    defaults; the registry factory may override priority and timeout from
    configuration. Subclasses implement _probe(), get_voices() and
    convert(); is_available() and get_status() wrap _probe().
    """

    name: str = "base"
    priority: float = 100.0
    timeout_s: float = Defaults.PROVIDER_TIMEOUT_S
    probe_timeout_s: float = Defaults.PROBE_TIMEOUT_S

    def __init__(
        self,
        priority: Optional[float] = None,
        timeout_s: Optional[float] = None,
        probe_timeout_s: Optional[float] = None,
    ):
        if priority is not None:
            self.priority = priority
        if timeout_s is not None:
            self.timeout_s = timeout_s
        if probe_timeout_s is not None:
            self.probe_timeout_s = probe_timeout_s

        self._stats_lock = threading.Lock()
        self._attempts = 0
        self._failures = 0

    # =========================================================================
    # Contract
    # =========================================================================

    @abstractmethod
    def _probe(self) -> bool:
        """Check reachability. Must bound itself by probe_timeout_s. May raise."""

    @abstractmethod
    def get_voices(self) -> List[str]:
        ...

    @abstractmethod
    def convert(
        self,
        text: str,
        settings: AudioSettings,
        token: Optional[CancelToken] = None,
    ) -> ConversionResult:
        ...

    def is_available(self) -> bool:
        """Return True if the provider can currently serve requests. Never raises."""
        try:
            return bool(self._probe())
        except Exception as e:
            verbose(_LOG, "probe_error", provider=self.name, error=f"{type(e).__name__}: {e}")
            return False

    def get_status(self) -> ProviderStatus:
        with timeit("probe") as t:
            available = self.is_available()
        return ProviderStatus(
            available=available,
            response_time_ms=round(t.seconds * 1000.0, 1),
            error_rate=self.error_rate,
        )

    def close(self) -> None:
        """Release transport resources. Default is a no-op."""
        return

    # =========================================================================
    # Outcome tracking (fed by the orchestrator)
    # =========================================================================

    def record_outcome(self, ok: bool) -> None:
        with self._stats_lock:
            self._attempts += 1
            if not ok:
                self._failures += 1

    @property
    def error_rate(self) -> Optional[float]:
        with self._stats_lock:
            if self._attempts == 0:
                return None
            return round(self._failures / self._attempts, 4)

    # =========================================================================
    # Helpers for subclasses
    # =========================================================================

    def _error(self, message: str, kind: ErrorKind, **details: Any) -> ProviderError:
        return ProviderError(f"{self.name}: {message}", kind, self.name, details or None)

    def _result(self, audio: bytes, duration: float, fmt: str, voice: Optional[str]) -> ConversionResult:
        return ConversionResult(
            audio=audio,
            duration=duration,
            format=fmt,
            metadata=ConversionMetadata(tts_service=self.name, voice=voice),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority!r}, timeout_s={self.timeout_s!r})"
