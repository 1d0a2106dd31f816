"""
Audio Delivery Routes.

Endpoints:
    GET    /audio/stream/{id}   - Range-aware playback (200/206/400/404/416)
    GET    /audio/{id}          - Download as attachment (200/404)
    GET    /audio/{id}/info     - Metadata plus stream/download URLs (200/404)
    DELETE /audio/{id}          - Remove stored audio (204/404)

Ids outside ^[A-Za-z0-9_-]{1,128}$ are rejected with 400 before storage
is touched.

Example:
    curl -H "Range: bytes=0-1023" http://localhost:8000/audio/stream/conv_1700000000000_ab12
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from tts_relay.api.dependencies import get_delivery
from tts_relay.api.errors import error_response, request_id_of
from tts_relay.core.errors import ValidationError
from tts_relay.core.logging import set_request_id
from tts_relay.services.delivery import AudioDelivery, DeliveryResponse
from tts_relay.services.validators import validate_audio_id

router = APIRouter()


def _render(resp: DeliveryResponse, rid: str) -> Response:
    if resp.error is not None:
        return error_response(resp.error, resp.status_code, rid, headers=resp.headers)
    if resp.data is not None:
        return JSONResponse(status_code=resp.status_code, content=resp.data, headers=resp.headers)
    return Response(content=resp.body, status_code=resp.status_code, headers=resp.headers)


def _checked(audio_id: str, request: Request):
    rid = request_id_of(request)
    set_request_id(rid)
    try:
        validate_audio_id(audio_id)
    except ValidationError as e:
        return rid, error_response(e, request_id=rid)
    return rid, None


@router.get("/audio/stream/{audio_id}")
def stream_audio(audio_id: str, request: Request, delivery: AudioDelivery = Depends(get_delivery)):
    rid, rejected = _checked(audio_id, request)
    if rejected is not None:
        return rejected
    return _render(delivery.stream(audio_id, request.headers.get("range")), rid)


@router.get("/audio/{audio_id}")
def download_audio(audio_id: str, request: Request, delivery: AudioDelivery = Depends(get_delivery)):
    rid, rejected = _checked(audio_id, request)
    if rejected is not None:
        return rejected
    return _render(delivery.download(audio_id), rid)


@router.get("/audio/{audio_id}/info")
def audio_info(audio_id: str, request: Request, delivery: AudioDelivery = Depends(get_delivery)):
    rid, rejected = _checked(audio_id, request)
    if rejected is not None:
        return rejected
    return _render(delivery.info(audio_id), rid)


@router.delete("/audio/{audio_id}", status_code=204)
def delete_audio(audio_id: str, request: Request, delivery: AudioDelivery = Depends(get_delivery)):
    rid, rejected = _checked(audio_id, request)
    if rejected is not None:
        return rejected
    return _render(delivery.delete(audio_id), rid)
