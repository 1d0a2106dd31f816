"""
Audio Delivery.

Maps stored audio and an optional HTTP Range header onto a
framework-neutral DeliveryResponse. The HTTP layer only copies status,
headers and body onto its own response type, and renders ``error``
through the standard error envelope.

Status codes:
    200  full file (stream, download)
    204  deleted
    206  partial content for ``Range: bytes=start-end`` (end optional)
    400  malformed Range header                  INVALID_RANGE_HEADER
    404  unknown id, or sidecar without data     AUDIO_NOT_FOUND
    416  range outside [0, size-1] or start > end RANGE_NOT_SATISFIABLE
    500  unreadable record                       READ_FAILURE

Only a single ``bytes=start-end`` range is supported; suffix ranges
(``bytes=-500``) and multi-range requests are rejected as malformed.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from tts_relay.audio.storage import AudioFileRecord, AudioStorage, utcnow
from tts_relay.core.errors import (
    ErrorCode,
    NotFoundError,
    RelayError,
    StorageError,
    StorageErrorKind,
    ValidationError,
)
from tts_relay.core.logging import debug, get_logger, warn
from tts_relay.core.metrics import RelayMetrics, metrics as default_metrics

_LOG = get_logger("tts-relay.delivery")

RANGE_PATTERN = re.compile(r"^bytes=(\d+)-(\d*)$")

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
}
DEFAULT_CONTENT_TYPE = "audio/mpeg"
CACHE_CONTROL = "public, max-age=3600"


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES.get((fmt or "").lower(), DEFAULT_CONTENT_TYPE)


def parse_range(header: str) -> Optional[Tuple[int, Optional[int]]]:
    """
    Parse ``bytes=start-end``.

    Returns:
        (start, end) with end None when omitted, or None if malformed.
    """
    m = RANGE_PATTERN.match(header.strip())
    if not m:
        return None
    start = int(m.group(1))
    end = int(m.group(2)) if m.group(2) else None
    return start, end


@dataclass
class DeliveryResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    error: Optional[RelayError] = None
    data: Optional[Dict[str, Any]] = None   # JSON payload for info()

    @property
    def ok(self) -> bool:
        return self.error is None


def _status_for(err: RelayError) -> int:
    if isinstance(err, NotFoundError):
        return 404
    if isinstance(err, ValidationError):
        return 400
    if isinstance(err, StorageError) and err.kind is StorageErrorKind.RANGE_NOT_SATISFIABLE:
        return 416
    return 500


class AudioDelivery:
    """
    Range-aware reads against AudioStorage.

    Args:
        storage: Backing store.
        public_base_url: Prefix for stream/download URLs ("" for relative).
        clock: UTC clock used for download filenames.
        metrics: Metrics sink (the process-wide instance by default).
    """

    def __init__(
        self,
        storage: AudioStorage,
        public_base_url: str = "",
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[RelayMetrics] = None,
    ):
        self._storage = storage
        self._base_url = public_base_url.rstrip("/")
        self._clock = clock
        self._metrics = metrics or default_metrics

    def stream_url(self, audio_id: str) -> str:
        return f"{self._base_url}/audio/stream/{audio_id}"

    def download_url(self, audio_id: str) -> str:
        return f"{self._base_url}/audio/{audio_id}"

    def _error(self, err: RelayError, headers: Optional[Dict[str, str]] = None) -> DeliveryResponse:
        status = _status_for(err)
        if status >= 500:
            warn(_LOG, "delivery_error", code=err.code, error=err.message)
        return self._done(DeliveryResponse(status_code=status, headers=headers or {}, error=err))

    def _done(self, response: DeliveryResponse) -> DeliveryResponse:
        self._metrics.record_audio_response(response.status_code)
        return response

    @staticmethod
    def _audio_headers(record: AudioFileRecord) -> Dict[str, str]:
        return {
            "Content-Type": content_type_for(record.format),
            "Cache-Control": CACHE_CONTROL,
            "X-Audio-Duration": str(record.duration),
            "X-Audio-Format": record.format,
        }

    # =========================================================================
    # Stream
    # =========================================================================

    def stream(self, audio_id: str, range_header: Optional[str] = None) -> DeliveryResponse:
        try:
            record = self._storage.get_metadata(audio_id)
        except (NotFoundError, StorageError) as e:
            return self._error(e)

        headers = self._audio_headers(record)
        headers["Accept-Ranges"] = "bytes"
        size = record.size

        if not range_header:
            try:
                body = self._storage.get(audio_id)
            except (NotFoundError, StorageError) as e:
                return self._error(e)
            headers["Content-Length"] = str(len(body))
            return self._done(DeliveryResponse(200, headers, body))

        parsed = parse_range(range_header)
        if parsed is None:
            return self._error(ValidationError(
                "Invalid range header format",
                details={"range": range_header},
                code=ErrorCode.INVALID_RANGE_HEADER,
            ))

        start, end = parsed
        if end is None:
            end = size - 1
        if start > size - 1 or end > size - 1 or start > end:
            return self._error(
                StorageError(
                    "Requested range not satisfiable",
                    StorageErrorKind.RANGE_NOT_SATISFIABLE,
                    details={"range": range_header, "size": size},
                ),
                headers={"Content-Range": f"bytes */{size}"},
            )

        try:
            body = self._storage.get_range(audio_id, start, end)
        except (NotFoundError, StorageError) as e:
            headers = {"Content-Range": f"bytes */{size}"} if _status_for(e) == 416 else None
            return self._error(e, headers)

        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        headers["Content-Length"] = str(end - start + 1)
        debug(_LOG, "range", id=audio_id, start=start, end=end, size=size)
        return self._done(DeliveryResponse(206, headers, body))

    # =========================================================================
    # Download / info / delete
    # =========================================================================

    def download_filename(self, record: AudioFileRecord) -> str:
        return f"speech-{self._clock().date().isoformat()}-{record.id}.{record.format}"

    def download(self, audio_id: str) -> DeliveryResponse:
        try:
            record = self._storage.get_metadata(audio_id)
            body = self._storage.get(audio_id)
        except (NotFoundError, StorageError) as e:
            return self._error(e)

        headers = self._audio_headers(record)
        headers["Content-Length"] = str(len(body))
        headers["Content-Disposition"] = f'attachment; filename="{self.download_filename(record)}"'
        return self._done(DeliveryResponse(200, headers, body))

    def info(self, audio_id: str) -> DeliveryResponse:
        try:
            record = self._storage.get_metadata(audio_id)
        except (NotFoundError, StorageError) as e:
            return self._error(e)
        if not self._storage.exists(audio_id):
            return self._error(NotFoundError(
                f"Audio file not found: {audio_id}",
                code=ErrorCode.AUDIO_NOT_FOUND,
                details={"id": audio_id},
            ))

        data = record.to_dict()
        data["stream_url"] = self.stream_url(audio_id)
        data["download_url"] = self.download_url(audio_id)
        return self._done(DeliveryResponse(200, {}, data=data))

    def delete(self, audio_id: str) -> DeliveryResponse:
        if self._storage.delete(audio_id):
            return self._done(DeliveryResponse(204))
        return self._error(NotFoundError(
            f"Audio file not found: {audio_id}",
            code=ErrorCode.AUDIO_NOT_FOUND,
            details={"id": audio_id},
        ))
