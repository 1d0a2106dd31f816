"""
VoiceRSS provider.

A single GET to the API root returns the audio body directly:
    {base}/?key=...&hl=en-us&c=MP3&f=44khz_16bit_stereo&src=TEXT&r=RATE

Errors come back as HTTP 200 with a text body, so the response
content-type is checked: anything that is not ``audio/*`` is a
SERVICE_ERROR.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.providers.base import AudioSettings, CancelToken, ConversionResult
from tts_relay.providers.http import HTTPProvider
from tts_relay.utils.audio import estimate_duration

MAX_TEXT_CHARS = 500  # free tier request limit
DEFAULT_LANGUAGE = "en-us"

LANGUAGE_MAP: Dict[str, str] = {
    "english": "en-us",
    "english-us": "en-us",
    "english-uk": "en-gb",
    "spanish": "es-es",
    "french": "fr-fr",
    "german": "de-de",
    "italian": "it-it",
    "portuguese": "pt-br",
    "russian": "ru-ru",
    "japanese": "ja-jp",
    "korean": "ko-kr",
    "chinese": "zh-cn",
}

VOICES = [
    "en-us", "en-gb", "en-au", "en-ca", "en-in",
    "es-es", "es-mx", "fr-fr", "de-de", "it-it",
    "pt-br", "ru-ru", "ja-jp", "ko-kr", "zh-cn",
]


def map_language(voice: Optional[str]) -> str:
    """Translate a friendly voice name ("english-uk") to a VoiceRSS language code."""
    if not voice:
        return DEFAULT_LANGUAGE
    key = voice.strip().lower()
    return LANGUAGE_MAP.get(key, key or DEFAULT_LANGUAGE)


def map_rate(speed: Optional[float]) -> int:
    """Map playback speed 0.8-1.5 onto VoiceRSS rate -10..10 (1.0 -> 0)."""
    if not speed:
        return 0
    return max(-10, min(10, round((speed - 1.0) * 20)))


class VoiceRSSProvider(HTTPProvider):
    name = "VoiceRSS"
    priority = 3
    timeout_s = 30.0
    base_url = "http://api.voicerss.org"

    def _params(self, text: str, language: str, rate: int) -> Dict[str, str]:
        return {
            "key": self.api_key,
            "hl": language,
            "c": "MP3",
            "f": "44khz_16bit_stereo",
            "src": text,
            "r": str(rate),
        }

    def _probe(self) -> bool:
        if not self.api_key:
            return False
        try:
            response = self._request(
                "GET", f"{self.base_url}/",
                timeout=self.probe_timeout_s,
                params=self._params("test", DEFAULT_LANGUAGE, 0),
            )
        except ProviderError:
            return False
        return _is_audio(response.headers.get("content-type"))

    def get_voices(self) -> List[str]:
        return list(VOICES)

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

        language = map_language(settings.voice)
        response = self._request(
            "GET", f"{self.base_url}/",
            token=token,
            params=self._params(text, language, map_rate(settings.playback_speed)),
        )

        content_type = response.headers.get("content-type")
        if not _is_audio(content_type):
            raise self._error(
                f"non-audio response: {response.text[:200]}",
                ErrorKind.SERVICE_ERROR,
                content_type=content_type,
            )
        if not response.content:
            raise self._error("empty audio data", ErrorKind.SERVICE_ERROR)

        return self._result(
            response.content,
            estimate_duration(text, settings.playback_speed),
            "mp3",
            language,
        )


def _is_audio(content_type: Optional[str]) -> bool:
    return bool(content_type) and "audio" in content_type.lower()
