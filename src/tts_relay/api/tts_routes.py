"""
TTS API Routes.

Endpoints:
    POST /tts/convert            - Convert text to stored audio
    GET  /tts/status/{id}        - Conversion status
    GET  /tts/providers/status   - Availability of every provider
    POST /tts/cleanup            - Prune old statuses (and optionally audio)
    GET  /health                 - Health check for load balancers and probes
    GET  /metrics                - Prometheus metrics

Request Flow (convert):
    1. Take the request id assigned by the middleware
    2. Hand content and settings to the orchestrator
    3. Return an AudioContent descriptor with stream/download URLs

Error Handling:
    RelayErrors are rendered through api.errors.error_response with the
    status from api.errors.STATUS_MAP. A conversion where every provider
    failed answers 503 with the last failure's code, provider and kind.

Example Usage:
    >>> import httpx
    >>> r = httpx.post("http://localhost:8000/tts/convert", json={"content": "Hello world"})
    >>> audio = httpx.get("http://localhost:8000" + r.json()["audio_url"]).content
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from tts_relay import __version__
from tts_relay.api.dependencies import ServiceContainer, get_container, get_delivery, get_orchestrator
from tts_relay.api.errors import error_response, request_id_of
from tts_relay.api.schemas import (
    AudioContentResponse,
    CleanupResponse,
    ConversionStatusResponse,
    ConvertRequest,
    HealthResponse,
    ProvidersStatusResponse,
)
from tts_relay.core.errors import RelayError
from tts_relay.core.logging import get_logger, info, set_request_id
from tts_relay.core.metrics import metrics
from tts_relay.services.delivery import AudioDelivery
from tts_relay.services.orchestrator import ConversionOrchestrator

router = APIRouter()

_LOG = get_logger("tts-relay.api")


def _bind_request_id(request: Request) -> str:
    rid = request_id_of(request)
    set_request_id(rid)
    return rid


@router.post("/tts/convert", response_model=AudioContentResponse)
def convert(
    req: ConvertRequest,
    request: Request,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
    delivery: AudioDelivery = Depends(get_delivery),
):
    """
    Convert text to speech.

    Returns:
        AudioContent descriptor (200).

    Raises:
        400: Empty or over-length content, settings out of range
        503: No provider available, or every attempt failed (the code and
             details.kind name the last failure)
        500: Storage failure
    """
    rid = _bind_request_id(request)
    settings = req.settings.model_dump(exclude_none=True) if req.settings else None

    try:
        record = orchestrator.convert(req.content, settings)
    except RelayError as e:
        return error_response(e, request_id=rid)

    return AudioContentResponse(
        id=record.id,
        audio_url=delivery.stream_url(record.id),
        download_url=delivery.download_url(record.id),
        duration=record.result.duration,
        format=record.result.format,
        size=record.file.size,
        tts_service=record.provider,
        voice=record.result.metadata.voice,
        created_at=record.file.created_at.isoformat(),
    )


@router.get("/tts/status/{conversion_id}", response_model=ConversionStatusResponse)
def conversion_status(
    conversion_id: str,
    request: Request,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
):
    rid = _bind_request_id(request)
    try:
        status = orchestrator.get_status(conversion_id)
    except RelayError as e:
        return error_response(e, request_id=rid)
    return ConversionStatusResponse(**status.to_dict())


@router.get("/tts/providers/status", response_model=ProvidersStatusResponse)
def providers_status(
    request: Request,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
):
    """Probe every provider (bounded by the probe timeout) and report, in failover order."""
    _bind_request_id(request)
    reports = [r.to_dict() for r in orchestrator.get_providers_status()]
    return ProvidersStatusResponse(
        providers=reports,
        available=sum(1 for r in reports if r["available"]),
    )


@router.post("/tts/cleanup", response_model=CleanupResponse)
def cleanup(
    request: Request,
    max_age_minutes: float = Query(60.0, ge=0),
    storage_max_age_hours: Optional[float] = Query(None, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    """
    Prune conversion statuses older than ``max_age_minutes``.

    When ``storage_max_age_hours`` is given, stored audio older than that
    is swept as well.
    """
    _bind_request_id(request)
    removed_statuses = container.orchestrator.cleanup(max_age_minutes)
    removed_files = None
    if storage_max_age_hours is not None:
        removed_files = container.storage.cleanup(storage_max_age_hours)
        metrics.record_cleanup("storage", removed_files)
    info(_LOG, "manual_cleanup", removed_statuses=removed_statuses, removed_files=removed_files)
    return CleanupResponse(removed_statuses=removed_statuses, removed_files=removed_files)


@router.get("/health", response_model=HealthResponse)
def health(container: ServiceContainer = Depends(get_container)):
    """
    Health check for load balancers and orchestration.

    Reports configuration and local state only; remote providers are not
    probed (see /tts/providers/status).
    """
    return HealthResponse(
        ok=True,
        version=__version__,
        providers=container.registry.names(),
        active_conversions=container.orchestrator.active_conversions,
        storage=container.storage.get_storage_info(),
        cleanup={"running": container.scheduler.running, **container.scheduler.get_stats()},
    )


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus text format metrics."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
