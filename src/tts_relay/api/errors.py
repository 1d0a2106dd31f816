"""
HTTP Error Envelope.

Every error response has the same flat JSON shape:

    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "timestamp": "2024-01-01T12:00:00+00:00",
        "request_id": "abc123def456",
        "details": {...}            # optional
    }

Tracebacks of unexpected exceptions are added to ``details`` only when
server.environment is "development".

Status mapping:
    VALIDATION_ERROR, INVALID_RANGE_HEADER        -> 400
    NOT_FOUND, AUDIO_NOT_FOUND                    -> 404
    RANGE_NOT_SATISFIABLE                         -> 416
    SERVICE_UNAVAILABLE                           -> 503
    provider errors (every candidate failed)      -> 503
        the code is the last failure's (TIMEOUT, SERVICE_ERROR, ...);
        details carry its provider and kind
    storage and internal errors                   -> 500
"""
from __future__ import annotations

import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tts_relay.core.errors import ErrorCode, RelayError
from tts_relay.core.logging import error, get_logger, get_request_id, warn

_LOG = get_logger("tts-relay.api")

STATUS_MAP = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_RANGE_HEADER: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.AUDIO_NOT_FOUND: 404,
    ErrorCode.RANGE_NOT_SATISFIABLE: 416,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 503,
    ErrorCode.SERVICE_ERROR: 503,
    ErrorCode.API_KEY_INVALID: 503,
    ErrorCode.UNSUPPORTED_CONTENT: 503,
    ErrorCode.PROVIDER_ERROR: 503,
    ErrorCode.PAYLOAD_TOO_LARGE: 500,
    ErrorCode.WRITE_FAILURE: 500,
    ErrorCode.READ_FAILURE: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def status_for(err: RelayError) -> int:
    return STATUS_MAP.get(err.code, 500)


def request_id_of(request: Optional[Request]) -> str:
    rid = getattr(request.state, "request_id", None) if request is not None else None
    return rid or get_request_id() or str(uuid.uuid4())[:12]


def error_response(
    err: RelayError,
    status_code: Optional[int] = None,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Render a RelayError in the standard envelope."""
    rid = request_id or get_request_id() or str(uuid.uuid4())[:12]
    body: Dict[str, Any] = err.to_dict()
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    body["request_id"] = rid
    out_headers = dict(headers or {})
    out_headers["X-Request-Id"] = rid
    return JSONResponse(
        status_code=status_code or status_for(err),
        content=jsonable_encoder(body),
        headers=out_headers,
    )


def register_exception_handlers(app: FastAPI, development: bool = False) -> None:
    """Install handlers for RelayError, request-body validation and anything unexpected."""

    @app.exception_handler(RelayError)
    async def _relay_error(request: Request, exc: RelayError):
        return error_response(exc, request_id=request_id_of(request))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        rid = request_id_of(request)
        warn(_LOG, "request_invalid", path=request.url.path, errors=len(exc.errors()))
        err = RelayError(
            "Invalid request",
            ErrorCode.VALIDATION_ERROR,
            {"errors": jsonable_encoder(exc.errors())},
        )
        return error_response(err, 400, rid)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        rid = request_id_of(request)
        error(_LOG, "unhandled_exception", path=request.url.path, error=f"{type(exc).__name__}: {exc}")
        details = {"traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)} if development else None
        err = RelayError("Internal server error", ErrorCode.INTERNAL_ERROR, details)
        return error_response(err, 500, rid)
