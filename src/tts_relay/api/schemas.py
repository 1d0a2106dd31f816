"""
API Request/Response Schemas.

Pydantic models for the HTTP surface. Content length and emptiness are
not constrained here; the orchestrator validates content so
that a rejected request still gets a (failed) status entry and the same
messages as every other caller.

Example Request:
    {
        "content": "Hello world",
        "settings": {"volume": 80, "playbackSpeed": 1.2, "voice": "Joanna"}
    }
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AudioSettingsModel(BaseModel):
    """Partial audio settings; missing fields use server defaults."""
    model_config = ConfigDict(populate_by_name=True)

    volume: Optional[int] = Field(default=None, ge=0, le=100, description="Volume 0-100 (default 75)")
    playback_speed: Optional[float] = Field(
        default=None,
        ge=0.8,
        le=1.5,
        alias="playbackSpeed",
        description="Speaking rate 0.8-1.5 (default 1.0)",
    )
    voice: Optional[str] = Field(default=None, max_length=100, description="Provider-specific voice")


class ConvertRequest(BaseModel):
    content: str = Field(..., description="Text to convert (1-2000 characters after trimming)")
    settings: Optional[AudioSettingsModel] = None


class AudioContentResponse(BaseModel):
    """Descriptor of a completed conversion."""
    id: str
    audio_url: str
    download_url: str
    duration: float
    format: str
    size: int
    tts_service: str
    voice: Optional[str] = None
    created_at: str


class AttemptModel(BaseModel):
    provider: str
    outcome: str
    seconds: float
    error: Optional[str] = None


class ConversionStatusResponse(BaseModel):
    id: str
    state: str
    progress: int
    error: Optional[str] = None
    start_time: str
    end_time: Optional[str] = None
    provider: Optional[str] = None
    attempts: List[AttemptModel] = Field(default_factory=list)


class ProviderStatusModel(BaseModel):
    name: str
    priority: float
    timeout_s: float
    available: bool
    response_time_ms: Optional[float] = None
    error_rate: Optional[float] = None
    last_check: str


class ProvidersStatusResponse(BaseModel):
    providers: List[ProviderStatusModel]
    available: int


class CleanupResponse(BaseModel):
    removed_statuses: int
    removed_files: Optional[int] = None


class HealthResponse(BaseModel):
    ok: bool
    version: str
    providers: List[str]
    active_conversions: int
    storage: Dict[str, Any]
    cleanup: Dict[str, Any]
