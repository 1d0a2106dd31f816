"""
Conversion Orchestrator.

Turns text into stored audio by failing over across the provider chain.

Pipeline (convert):
    1. Register a pending status under a fresh id
    2. Validate content and settings          (failure: pending -> failed)
    3. Probe every provider concurrently      (progress 10)
    4. Keep available providers in registry order (progress 30)
    5. Try candidates one at a time           (progress 50)
         each attempt runs on its own thread and is awaited for at most
         the provider's timeout; losing the race cancels its CancelToken
    6. Persist the first good result          (progress 100, completed)
    7. Nothing worked: raise the last ProviderError, or
       ServiceUnavailableError when no provider was available

Concurrency:
    - Every call gets its own daemon threads: one per provider for a
      probe round, one per attempt. Nothing is queued behind another
      conversion, so a deadline starts when the call starts.
    - Probes fan back in with concurrent.futures.wait(timeout=probe_timeout_s);
      discovery costs at most one probe timeout no matter how many
      providers hang.
    - Attempts within one conversion are sequential.
    - A timed-out attempt keeps its thread until the provider returns.
      The token tells it to stop; nothing forces it to.
    - The request id context is copied into worker threads so provider
      logs stay correlated.

Usage:
    orchestrator = ConversionOrchestrator(registry, storage, config)
    record = orchestrator.convert("Hello world", {"volume": 80})
    orchestrator.get_status(record.id).state  # ConversionState.COMPLETED
"""
from __future__ import annotations

import contextvars
import threading
import time
import uuid
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from concurrent.futures import wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from tts_relay.audio.storage import AudioFileRecord, AudioStorage
from tts_relay.core.config import Defaults, RelayConfig
from tts_relay.core.errors import (
    ErrorKind,
    NotFoundError,
    ProviderError,
    RelayError,
    ServiceUnavailableError,
    StorageError,
    ValidationError,
)
from tts_relay.core.logging import debug, fail, get_logger, info, success, verbose, warn
from tts_relay.core.metrics import RelayMetrics, metrics as default_metrics
from tts_relay.providers.base import (
    AUDIO_FORMATS,
    AudioSettings,
    BaseProvider,
    CancelToken,
    ConversionResult,
    ProviderStatus,
)
from tts_relay.providers.registry import ProviderRegistry
from tts_relay.services.status import (
    AttemptOutcome,
    ConversionState,
    ConversionStatus,
    StatusTable,
    utcnow,
)
from tts_relay.services.validators import validate_content, validate_settings
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.orchestrator")

PROGRESS_PROCESSING = 10
PROGRESS_PROBED = 30
PROGRESS_ATTEMPTING = 50


def new_conversion_id() -> str:
    """``conv_<unix-ms>_<random hex>``"""
    return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}"


def _spawn(fn: Callable[..., Any], *args: Any, name: str) -> Future:
    """
    Run ``fn(*args)`` on a fresh daemon thread and return its Future.

    The caller's context (request id) is copied into the thread. The
    future is already running, so waiting on it measures only the call.
    """
    future: Future = Future()
    future.set_running_or_notify_cancel()
    ctx = contextvars.copy_context()

    def _run() -> None:
        try:
            future.set_result(ctx.run(fn, *args))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=_run, name=name, daemon=True).start()
    return future


@dataclass
class ConversionRecord:
    """Outcome of a successful conversion."""
    id: str
    result: ConversionResult
    file: AudioFileRecord

    @property
    def provider(self) -> str:
        return self.result.metadata.tts_service


@dataclass
class ProviderReport:
    """One row of get_providers_status()."""
    name: str
    priority: float
    timeout_s: float
    status: ProviderStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "priority": self.priority,
            "timeout_s": self.timeout_s,
            **self.status.to_dict(),
        }


class ConversionOrchestrator:
    """
    Owns the provider registry, the status table and the per-call worker threads.

    Constructed once at application start and shut down with the app;
    there is no module-level instance.

    Args:
        registry: Priority-ordered providers.
        storage: Where successful results are persisted.
        config: Validated configuration (defaults when omitted).
        clock: UTC clock for status timestamps (injectable for tests).
        metrics: Metrics sink (the process-wide instance by default).
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        storage: AudioStorage,
        config: Optional[RelayConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[RelayMetrics] = None,
    ):
        config = config or RelayConfig()
        self._registry = registry
        self._storage = storage
        self._clock = clock
        self._metrics = metrics or default_metrics
        self._max_content_length = config.orchestrator.max_content_length
        self._probe_timeout_s = config.orchestrator.probe_timeout_s
        self._text_preview_chars = config.logging.text_preview_chars
        self._table = StatusTable(clock)

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def storage(self) -> AudioStorage:
        return self._storage

    # =========================================================================
    # Public API: convert()
    # =========================================================================

    def convert(
        self,
        content: Optional[str],
        settings: Optional[Mapping[str, Any] | AudioSettings] = None,
    ) -> ConversionRecord:
        """
        Convert text to stored audio.

        Raises:
            ValidationError: Bad content or settings; no provider contacted.
            ServiceUnavailableError: No provider available.
            ProviderError: Every candidate failed (the last failure).
            StorageError: The winning result could not be persisted.
        """
        conversion_id = self._register()

        try:
            text = validate_content(content, self._max_content_length)
            audio_settings = validate_settings(settings)
        except ValidationError as e:
            e.details.setdefault("id", conversion_id)
            self._table.transition(conversion_id, ConversionState.FAILED, error=e.message)
            self._metrics.record_conversion("rejected")
            warn(_LOG, "conversion_rejected", id=conversion_id, reason=e.message)
            raise

        self._table.transition(conversion_id, ConversionState.PROCESSING, progress=PROGRESS_PROCESSING)
        preview = text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "conversion_started", id=conversion_id, chars=len(text), text_preview=preview)

        with timeit("conversion") as total_t:
            candidates = self._discover()
            self._table.advance(conversion_id, PROGRESS_PROBED)

            if not candidates:
                err = ServiceUnavailableError(details={"id": conversion_id})
                self._fail(conversion_id, err)
                raise err

            self._table.advance(conversion_id, PROGRESS_ATTEMPTING)
            last_error: Optional[ProviderError] = None

            for provider in candidates:
                try:
                    result = self._attempt(conversion_id, provider, text, audio_settings)
                except ProviderError as e:
                    last_error = e
                    continue

                try:
                    file_record = self._storage.save(conversion_id, result.audio, result.format, result.duration)
                except StorageError as e:
                    e.details.setdefault("id", conversion_id)
                    self._fail(conversion_id, e)
                    raise

                self._table.set_result(conversion_id, result)
                self._table.transition(conversion_id, ConversionState.COMPLETED, provider=provider.name)
                self._metrics.record_conversion("completed", result.size)
                success(
                    _LOG, "conversion_done",
                    id=conversion_id, provider=provider.name, bytes=result.size,
                    seconds=round(total_t.seconds, 3),
                )
                return ConversionRecord(id=conversion_id, result=result, file=file_record)

        err = last_error or ServiceUnavailableError("All TTS providers failed", details={"id": conversion_id})
        self._fail(conversion_id, err)
        raise err

    def _register(self) -> str:
        while True:
            conversion_id = new_conversion_id()
            try:
                self._table.create(conversion_id)
            except ValueError:
                continue
            return conversion_id

    def _fail(self, conversion_id: str, err: RelayError) -> None:
        self._table.transition(conversion_id, ConversionState.FAILED, error=err.message)
        self._metrics.record_conversion("failed")
        fail(_LOG, "conversion_failed", id=conversion_id, code=err.code, error=err.message)

    # =========================================================================
    # Discovery
    # =========================================================================

    def _probe_all(self, fn: Callable[[BaseProvider], Any]) -> Dict[str, Any]:
        """Run ``fn`` for every provider concurrently; returns results of those that finished in time."""
        futures = {
            _spawn(fn, p, name=f"tts-relay-probe-{p.name}"): p
            for p in self._registry
        }
        done, not_done = wait(futures, timeout=self._probe_timeout_s)

        results: Dict[str, Any] = {}
        for future in done:
            provider = futures[future]
            exc = future.exception()
            if exc is not None:
                verbose(_LOG, "probe_error", provider=provider.name, error=f"{type(exc).__name__}: {exc}")
                continue
            results[provider.name] = future.result()
        for future in not_done:
            verbose(_LOG, "probe_timeout", provider=futures[future].name, timeout_s=self._probe_timeout_s)
        return results

    def _discover(self) -> List[BaseProvider]:
        """Available providers, in registry order."""
        with timeit("discovery") as t:
            results = self._probe_all(lambda p: p.is_available())
        candidates = [p for p in self._registry if results.get(p.name) is True]
        verbose(
            _LOG, "discovery",
            available=[p.name for p in candidates],
            probed=len(self._registry),
            seconds=round(t.seconds, 3),
        )
        return candidates

    # =========================================================================
    # Attempts
    # =========================================================================

    def _attempt(
        self,
        conversion_id: str,
        provider: BaseProvider,
        text: str,
        settings: AudioSettings,
    ) -> ConversionResult:
        """
        Run one provider with its timeout.

        Raises:
            ProviderError: Timeout, provider failure, or an invalid result.
        """
        timeout_s = provider.timeout_s
        token = CancelToken(timeout_s)
        err: Optional[ProviderError] = None
        result: Optional[ConversionResult] = None

        with timeit("attempt", meta={"provider": provider.name}) as t:
            future = _spawn(
                provider.convert, text, settings, token, name=f"tts-relay-attempt-{provider.name}"
            )
            try:
                result = future.result(timeout=timeout_s)
                _check_result(provider, result)
            except FuturesTimeoutError:
                token.cancel()
                err = ProviderError(
                    f"{provider.name} timed out after {timeout_s}s",
                    ErrorKind.TIMEOUT,
                    provider.name,
                    {"timeout_s": timeout_s},
                )
            except ProviderError as e:
                err = e
            except Exception as e:
                err = ProviderError(
                    f"{provider.name} failed: {type(e).__name__}: {e}",
                    ErrorKind.UNKNOWN,
                    provider.name,
                )

        seconds = t.seconds
        outcome = "success" if err is None else err.kind.value
        provider.record_outcome(err is None)
        self._metrics.record_attempt(provider.name, outcome, seconds)
        self._table.add_attempt(
            conversion_id,
            AttemptOutcome(provider.name, outcome, seconds, err.message if err else None),
        )

        if err is not None:
            warn(
                _LOG, "attempt_failed",
                id=conversion_id, provider=provider.name, outcome=outcome,
                error=err.message, seconds=round(seconds, 3),
            )
            raise err

        verbose(_LOG, "attempt_succeeded", id=conversion_id, provider=provider.name, seconds=round(seconds, 3))
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def get_status(self, conversion_id: str) -> ConversionStatus:
        """
        Raises:
            NotFoundError: Unknown or already pruned id.
        """
        status = self._table.get(conversion_id)
        if status is None:
            raise NotFoundError(f"Conversion not found: {conversion_id}", details={"id": conversion_id})
        return status

    def get_result(self, conversion_id: str) -> Optional[ConversionResult]:
        """The result of a completed conversion, else None."""
        return self._table.get_result(conversion_id)

    def get_providers_status(self) -> List[ProviderReport]:
        """Timed availability of every provider, in registry order."""
        statuses = self._probe_all(lambda p: p.get_status())
        reports = []
        for p in self._registry:
            status = statuses.get(p.name) or ProviderStatus(
                available=False,
                response_time_ms=round(self._probe_timeout_s * 1000.0, 1),
                error_rate=p.error_rate,
            )
            reports.append(ProviderReport(p.name, p.priority, p.timeout_s, status))
        return reports

    @property
    def active_conversions(self) -> int:
        return len(self._table)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup(self, max_age_minutes: float = Defaults.CLEANUP_STATUS_MAX_AGE_MINUTES) -> int:
        """
        Prune status/result entries that started strictly before now - max_age.

        Idempotent: a second call right after removes nothing.
        """
        cutoff = self._clock() - timedelta(minutes=max_age_minutes)
        removed = self._table.prune(cutoff)
        self._metrics.record_cleanup("status", removed)
        if removed:
            info(_LOG, "status_cleanup", removed=removed, max_age_minutes=max_age_minutes)
        else:
            debug(_LOG, "status_cleanup", removed=0)
        return removed

    def shutdown(self) -> None:
        """Close provider transports. Abandoned attempt threads are daemons."""
        self._registry.close()
        info(_LOG, "orchestrator_shutdown")


def _check_result(provider: BaseProvider, result: Any) -> None:
    if not isinstance(result, ConversionResult):
        raise ProviderError(f"{provider.name} returned no result", ErrorKind.SERVICE_ERROR, provider.name)
    if not result.audio:
        raise ProviderError(f"{provider.name} returned empty audio", ErrorKind.SERVICE_ERROR, provider.name)
    if not result.duration or result.duration <= 0:
        raise ProviderError(
            f"{provider.name} returned non-positive duration",
            ErrorKind.SERVICE_ERROR,
            provider.name,
        )
    if result.format not in AUDIO_FORMATS:
        raise ProviderError(
            f"{provider.name} returned unsupported format: {result.format}",
            ErrorKind.SERVICE_ERROR,
            provider.name,
        )
