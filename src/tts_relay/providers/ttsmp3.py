"""
TTSMP3 provider.

Two-step protocol:
    1. POST form (msg, lang, source=ttsmp3) -> JSON with an ``URL`` field
    2. GET that URL -> mp3 body

Both steps share the attempt's CancelToken; the token is checked between
them, so a deadline that expires during step 1 stops step 2 from starting.
A download that is already in flight runs until its own timeout.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from tts_relay.core.errors import ErrorKind
from tts_relay.core.logging import debug, get_logger
from tts_relay.providers.base import AudioSettings, CancelToken, ConversionResult
from tts_relay.providers.http import HTTPProvider
from tts_relay.utils.audio import estimate_duration

_LOG = get_logger("tts-relay.providers.ttsmp3")

MAX_TEXT_CHARS = 3000
MIN_AUDIO_BYTES = 1000  # anything smaller is an error page, not speech
DEFAULT_VOICE = "Joanna"

VOICES = [
    "Joanna", "Matthew", "Ivy", "Justin", "Kendra", "Kimberly",
    "Salli", "Joey", "Nicole", "Russell", "Amy", "Brian",
    "Emma", "Raveena", "Aditi", "Enrique", "Conchita", "Geraint",
]
VOICE_MAP: Dict[str, str] = {v.lower(): v for v in VOICES}

_FORM_HEADERS = {
    "Referer": "https://ttsmp3.com/",
    "Origin": "https://ttsmp3.com",
}


def map_voice(voice: Optional[str]) -> str:
    """Case-insensitive lookup; unknown or empty voices fall back to Joanna."""
    if not voice:
        return DEFAULT_VOICE
    return VOICE_MAP.get(voice.strip().lower(), DEFAULT_VOICE)


class TTSMP3Provider(HTTPProvider):
    name = "TTSMP3"
    priority = 1.5
    timeout_s = 20.0
    base_url = "https://ttsmp3.com/makemp3_new.php"

    def _probe(self) -> bool:
        return self._probe_request(
            "POST", self.base_url,
            data={"msg": "test", "lang": DEFAULT_VOICE, "source": "ttsmp3"},
            headers=_FORM_HEADERS,
        )

    def get_voices(self) -> List[str]:
        return list(VOICES)

    def convert(
        self,
        text: str,
        settings: AudioSettings,
        token: Optional[CancelToken] = None,
    ) -> ConversionResult:
        if len(text) > MAX_TEXT_CHARS:
            raise self._error(
                f"text too long: {len(text)} characters (max {MAX_TEXT_CHARS})",
                ErrorKind.UNSUPPORTED_CONTENT,
            )

        voice = map_voice(settings.voice)

        # Step 1: request generation
        response = self._request(
            "POST", self.base_url,
            token=token,
            data={"msg": text, "lang": voice, "source": "ttsmp3"},
            headers=_FORM_HEADERS,
        )
        try:
            audio_url = response.json().get("URL")
        except (ValueError, AttributeError):
            audio_url = None
        if not audio_url:
            raise self._error("no audio URL in response", ErrorKind.SERVICE_ERROR)
        debug(_LOG, "audio_url", provider=self.name, url=audio_url)

        # Step 2: download
        if token is not None:
            token.raise_if_cancelled(self.name)
        audio = self._request("GET", audio_url, token=token).content

        if len(audio) < MIN_AUDIO_BYTES:
            raise self._error(
                f"suspiciously small audio file: {len(audio)} bytes",
                ErrorKind.SERVICE_ERROR,
                size=len(audio),
            )

        return self._result(
            audio,
            estimate_duration(text, settings.playback_speed, minimum=2.0),
            "mp3",
            voice,
        )
