"""
Speech-synthesis providers.

    base.py      Provider contract and shared data types
    http.py      httpx plumbing for remote providers
    google.py    Google Cloud Text-to-Speech
    voicerss.py  VoiceRSS
    ttsmp3.py    TTSMP3 (two-step)
    mock.py      Local tone generator
    registry.py  Priority-ordered registry and config factory
"""
from tts_relay.providers.base import (
    AudioSettings,
    BaseProvider,
    CancelToken,
    ConversionMetadata,
    ConversionResult,
    ProviderStatus,
)
from tts_relay.providers.registry import ProviderRegistry, create_providers

__all__ = [
    "AudioSettings",
    "BaseProvider",
    "CancelToken",
    "ConversionMetadata",
    "ConversionResult",
    "ProviderStatus",
    "ProviderRegistry",
    "create_providers",
]
