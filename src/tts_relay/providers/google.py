"""
Google Cloud Text-to-Speech provider.

Wire format:
    GET  {base}/voices?key=...            availability probe and voice list
    POST {base}/text:synthesize?key=...   JSON request, base64 ``audioContent``

Requires an API key (providers.google.api_key or GOOGLE_TTS_API_KEY).
Without one the provider reports unavailable and convert() raises
API_KEY_INVALID without touching the network.
"""
from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.core.logging import get_logger, warn
from tts_relay.providers.base import AudioSettings, CancelToken, ConversionResult
from tts_relay.providers.http import HTTPProvider
from tts_relay.utils.audio import estimate_duration

_LOG = get_logger("tts-relay.providers.google")

MAX_TEXT_CHARS = 2000


def volume_to_db(volume: int) -> float:
    """
    Map volume 0-100 onto Google's volumeGainDb.

    75 is neutral (0 dB); 0 maps to -20 dB and 100 to +6 dB, linear on
    either side of 75.
    """
    v = max(0, min(100, volume))
    if v == 75:
        return 0.0
    if v < 75:
        return -20.0 + (v / 75.0) * 20.0
    return ((v - 75) / 25.0) * 6.0


class GoogleTTSProvider(HTTPProvider):
    name = "GoogleTTS"
    priority = 2
    timeout_s = 3.0
    base_url = "https://texttospeech.googleapis.com/v1"

    def _probe(self) -> bool:
        if not self.api_key:
            return False
        return self._probe_request("GET", f"{self.base_url}/voices", params={"key": self.api_key})

    def get_voices(self) -> List[str]:
        if not self.api_key:
            return []
        try:
            response = self._request(
                "GET", f"{self.base_url}/voices",
                timeout=self.probe_timeout_s, params={"key": self.api_key},
            )
            voices = response.json().get("voices") or []
        except (ProviderError, ValueError) as e:
            warn(_LOG, "voices_unavailable", provider=self.name, error=str(e))
            return []
        return [v["name"] for v in voices if isinstance(v, dict) and v.get("name")]

    def build_request(self, text: str, settings: AudioSettings) -> Dict[str, Any]:
        voice: Dict[str, Any] = {"languageCode": "en-US", "ssmlGender": "NEUTRAL"}
        if settings.voice:
            voice["name"] = settings.voice
        return {
            "input": {"text": text},
            "voice": voice,
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": settings.playback_speed,
                "volumeGainDb": round(volume_to_db(settings.volume), 2),
            },
        }

    def convert(
        self,
        text: str,
        settings: AudioSettings,
        token: Optional[CancelToken] = None,
    ) -> ConversionResult:
        if not self.api_key:
            raise self._error("API key not configured", ErrorKind.API_KEY_INVALID)
        if len(text) > MAX_TEXT_CHARS:
            raise self._error(
                f"text too long: {len(text)} characters (max {MAX_TEXT_CHARS})",
                ErrorKind.UNSUPPORTED_CONTENT,
            )

        response = self._request(
            "POST", f"{self.base_url}/text:synthesize",
            token=token,
            params={"key": self.api_key},
            json=self.build_request(text, settings),
        )

        try:
            audio = base64.b64decode(response.json()["audioContent"], validate=True)
        except (ValueError, KeyError, TypeError):
            raise self._error("response did not contain valid audioContent", ErrorKind.SERVICE_ERROR) from None

        return self._result(
            audio,
            estimate_duration(text, settings.playback_speed),
            "mp3",
            settings.voice,
        )
