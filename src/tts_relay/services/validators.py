"""
Input Validation.

Validation runs before any provider is contacted, so a rejected request
costs nothing upstream.

Validation Rules:
    - Content: non-empty after trimming, raw length <= 2000 characters
    - Volume: integer 0-100
    - Playback speed: 0.8-1.5
    - Voice: optional, max 100 characters
    - Audio id: ^[A-Za-z0-9_-]{1,128}$ (ids double as file names)

All functions raise ValidationError (code VALIDATION_ERROR) with a
human-readable message and the offending field in ``details``.

Usage:
    from tts_relay.services.validators import validate_content, validate_settings

    text = validate_content(request.content)
    settings = validate_settings(request.settings)
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from tts_relay.core.config import Defaults
from tts_relay.core.errors import ValidationError
from tts_relay.providers.base import AudioSettings

AUDIO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
MAX_VOICE_LENGTH = 100


def validate_content(content: Optional[str], max_length: int = Defaults.MAX_CONTENT_LENGTH) -> str:
    """
    Validate conversion content.

    Returns:
        The trimmed content.

    Raises:
        ValidationError: If the content is empty after trimming or the raw
            content is longer than ``max_length``.
    """
    if content is None or not content.strip():
        raise ValidationError("Content cannot be empty", details={"field": "content"})

    if len(content) > max_length:
        raise ValidationError(
            f"Content exceeds maximum length of {max_length} characters",
            details={"field": "content", "length": len(content), "max_length": max_length},
        )

    return content.strip()


def validate_settings(settings: Optional[Mapping[str, Any] | AudioSettings]) -> AudioSettings:
    """
    Merge partial settings over the defaults and range-check them.

    Accepts None, a mapping (``playback_speed`` or ``playbackSpeed``), or an
    AudioSettings instance.
    """
    if isinstance(settings, AudioSettings):
        merged = settings
    else:
        try:
            merged = AudioSettings.from_partial(settings)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid audio settings: {e}", details={"field": "settings"}) from None

    if not 0 <= merged.volume <= 100:
        raise ValidationError(
            "Volume must be between 0 and 100",
            details={"field": "volume", "value": merged.volume},
        )

    if not Defaults.AUDIO_MIN_SPEED <= merged.playback_speed <= Defaults.AUDIO_MAX_SPEED:
        raise ValidationError(
            f"Playback speed must be between {Defaults.AUDIO_MIN_SPEED} and {Defaults.AUDIO_MAX_SPEED}",
            details={"field": "playback_speed", "value": merged.playback_speed},
        )

    if merged.voice is not None and len(merged.voice) > MAX_VOICE_LENGTH:
        raise ValidationError(
            f"Voice exceeds maximum length of {MAX_VOICE_LENGTH} characters",
            details={"field": "voice"},
        )

    return merged


def is_valid_audio_id(audio_id: Optional[str]) -> bool:
    return bool(audio_id) and AUDIO_ID_PATTERN.match(audio_id) is not None


def validate_audio_id(audio_id: Optional[str]) -> str:
    if not is_valid_audio_id(audio_id):
        raise ValidationError("Invalid audio id", details={"field": "id"})
    return audio_id
