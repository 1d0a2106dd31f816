"""
Local mock provider.

Synthesizes a sine tone WAV whose length matches the estimated spoken
duration of the text. Needs no network and is always available, which
makes it the last-resort entry of the default chain and the workhorse of
local development. Disable it with ``providers.mock.enabled: false``.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from tts_relay.providers.base import AudioSettings, BaseProvider, CancelToken, ConversionResult
from tts_relay.utils.audio import estimate_duration, tone_waveform, wav_bytes_from_float32

SAMPLE_RATE = 16000

# voice -> tone frequency (Hz)
VOICE_TONES: Dict[str, float] = {
    "Test Voice 1": 440.0,
    "Test Voice 2": 330.0,
}
DEFAULT_VOICE = "Test Voice 1"


class MockProvider(BaseProvider):
    name = "Mock"
    priority = 10
    timeout_s = 5.0

    def __init__(self, delay_s: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.delay_s = delay_s

    def _probe(self) -> bool:
        return True

    def get_voices(self) -> List[str]:
        return list(VOICE_TONES)

    def convert(
        self,
        text: str,
        settings: AudioSettings,
        token: Optional[CancelToken] = None,
    ) -> ConversionResult:
        if self.delay_s > 0:
            if token is not None:
                token.wait(self.delay_s)
                token.raise_if_cancelled(self.name)
            else:
                CancelToken().wait(self.delay_s)

        voice = settings.voice if settings.voice in VOICE_TONES else DEFAULT_VOICE
        duration = estimate_duration(text, settings.playback_speed)
        amplitude = 0.4 * max(0, min(100, settings.volume)) / 100.0
        wave = tone_waveform(duration, SAMPLE_RATE, VOICE_TONES[voice], amplitude)

        return self._result(wav_bytes_from_float32(wave, SAMPLE_RATE), duration, "wav", voice)
