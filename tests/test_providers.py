"""
Provider wire-format tests (httpx.MockTransport, no network).

Tests cover:
- Google: request body, volume/speed mapping, base64 decoding, key handling
- VoiceRSS: query parameters, language and rate mapping, text errors
- TTSMP3: two-step protocol, voice mapping, small-file rejection
- HTTP status and transport error classification
- Mock provider: WAV output
- CancelToken
"""
import base64
import io
import json
import time

import httpx
import numpy as np
import pytest
import soundfile as sf

from tts_relay.core.errors import ErrorKind, ProviderError
from tts_relay.providers.base import AudioSettings, CancelToken
from tts_relay.providers.google import GoogleTTSProvider, volume_to_db
from tts_relay.providers.http import kind_for_status
from tts_relay.providers.mock import MockProvider
from tts_relay.providers.ttsmp3 import TTSMP3Provider, map_voice
from tts_relay.providers.voicerss import VoiceRSSProvider, map_language, map_rate

MP3 = b"ID3" + b"\x01" * 2000


class Recorder:
    """MockTransport handler that records requests and replays scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def _transport(*responses):
    rec = Recorder(*responses)
    return rec, httpx.MockTransport(rec)


class TestStatusClassification:

    @pytest.mark.parametrize("status,kind", [
        (401, ErrorKind.API_KEY_INVALID),
        (403, ErrorKind.API_KEY_INVALID),
        (400, ErrorKind.UNSUPPORTED_CONTENT),
        (413, ErrorKind.UNSUPPORTED_CONTENT),
        (422, ErrorKind.UNSUPPORTED_CONTENT),
        (429, ErrorKind.SERVICE_ERROR),
        (500, ErrorKind.SERVICE_ERROR),
        (503, ErrorKind.SERVICE_ERROR),
    ])
    def test_kind_for_status(self, status, kind):
        assert kind_for_status(status) is kind


class TestGoogle:

    def _provider(self, *responses, api_key="k"):
        rec, transport = _transport(*responses)
        return rec, GoogleTTSProvider(api_key=api_key, transport=transport)

    def test_convert(self):
        body = {"audioContent": base64.b64encode(MP3).decode()}
        rec, p = self._provider(httpx.Response(200, json=body))

        result = p.convert("Hello world", AudioSettings(volume=100, playback_speed=1.2, voice="en-US-Wavenet-D"))

        assert result.audio == MP3
        assert result.format == "mp3"
        assert result.metadata.tts_service == "GoogleTTS"
        assert result.metadata.voice == "en-US-Wavenet-D"

        req = rec.requests[0]
        assert req.method == "POST"
        assert req.url.path.endswith("/text:synthesize")
        assert req.url.params["key"] == "k"
        sent = json.loads(req.content)
        assert sent["input"] == {"text": "Hello world"}
        assert sent["voice"]["name"] == "en-US-Wavenet-D"
        assert sent["audioConfig"] == {"audioEncoding": "MP3", "speakingRate": 1.2, "volumeGainDb": 6.0}

    def test_default_voice_has_no_name(self):
        p = GoogleTTSProvider(api_key="k")
        req = p.build_request("hi", AudioSettings())
        assert "name" not in req["voice"]
        assert req["audioConfig"]["volumeGainDb"] == 0.0
        p.close()

    @pytest.mark.parametrize("volume,db", [(0, -20.0), (75, 0.0), (100, 6.0)])
    def test_volume_to_db(self, volume, db):
        assert volume_to_db(volume) == pytest.approx(db)

    def test_missing_key(self):
        rec, p = self._provider(httpx.Response(200), api_key="")
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.API_KEY_INVALID
        assert p.is_available() is False
        assert rec.requests == []

    def test_http_403(self):
        _, p = self._provider(httpx.Response(403, json={"error": "denied"}))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.API_KEY_INVALID
        assert exc.value.details["status"] == 403

    def test_bad_payload(self):
        _, p = self._provider(httpx.Response(200, json={"audioContent": "***not base64***"}))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.SERVICE_ERROR

    def test_transport_timeout(self):
        _, p = self._provider(httpx.ReadTimeout("slow"))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.TIMEOUT

    def test_connection_error(self):
        _, p = self._provider(httpx.ConnectError("refused"))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.SERVICE_ERROR

    def test_probe_and_voices(self):
        voices = {"voices": [{"name": "a"}, {"name": "b"}]}
        rec, p = self._provider(httpx.Response(200, json=voices), httpx.Response(200, json=voices))
        assert p.is_available() is True
        assert p.get_voices() == ["a", "b"]
        assert rec.requests[0].url.path.endswith("/voices")

    def test_probe_failure(self):
        _, p = self._provider(httpx.Response(500))
        assert p.is_available() is False
        assert p.get_voices() == []

    def test_cancelled_token_stops_before_request(self):
        rec, p = self._provider(httpx.Response(200, json={"audioContent": ""}))
        token = CancelToken(5)
        token.cancel()
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings(), token)
        assert exc.value.kind is ErrorKind.TIMEOUT
        assert rec.requests == []


class TestVoiceRSS:

    def _provider(self, *responses, api_key="k"):
        rec, transport = _transport(*responses)
        return rec, VoiceRSSProvider(api_key=api_key, transport=transport)

    def test_convert(self):
        rec, p = self._provider(httpx.Response(200, content=MP3, headers={"content-type": "audio/mpeg"}))

        result = p.convert("Hello world", AudioSettings(playback_speed=1.5, voice="english-uk"))

        assert result.audio == MP3
        assert result.metadata.voice == "en-gb"
        params = rec.requests[0].url.params
        assert params["key"] == "k"
        assert params["hl"] == "en-gb"
        assert params["c"] == "MP3"
        assert params["src"] == "Hello world"
        assert params["r"] == "10"

    @pytest.mark.parametrize("voice,code", [(None, "en-us"), ("French", "fr-fr"), ("de-de", "de-de")])
    def test_map_language(self, voice, code):
        assert map_language(voice) == code

    @pytest.mark.parametrize("speed,rate", [(1.0, 0), (0.8, -4), (1.5, 10), (None, 0)])
    def test_map_rate(self, speed, rate):
        assert map_rate(speed) == rate

    def test_error_text_with_200(self):
        _, p = self._provider(httpx.Response(200, text="ERROR: The API key is not available!",
                                             headers={"content-type": "text/plain"}))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.SERVICE_ERROR

    def test_text_too_long(self):
        rec, p = self._provider(httpx.Response(200))
        with pytest.raises(ProviderError) as exc:
            p.convert("a" * 501, AudioSettings())
        assert exc.value.kind is ErrorKind.UNSUPPORTED_CONTENT
        assert rec.requests == []

    def test_no_key_unavailable(self):
        _, p = self._provider(httpx.Response(200), api_key="")
        assert p.is_available() is False
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.API_KEY_INVALID

    def test_probe_requires_audio(self):
        _, p = self._provider(httpx.Response(200, content=MP3, headers={"content-type": "audio/mpeg"}))
        assert p.is_available() is True
        _, p = self._provider(httpx.Response(200, text="ERROR", headers={"content-type": "text/plain"}))
        assert p.is_available() is False


class TestTTSMP3:

    def _provider(self, *responses):
        rec, transport = _transport(*responses)
        return rec, TTSMP3Provider(transport=transport)

    def test_two_step_convert(self):
        rec, p = self._provider(
            httpx.Response(200, json={"URL": "https://ttsmp3.com/created_mp3/abc.mp3"}),
            httpx.Response(200, content=MP3, headers={"content-type": "audio/mpeg"}),
        )

        result = p.convert("Hello world", AudioSettings(voice="matthew"))

        assert result.audio == MP3
        assert result.metadata.voice == "Matthew"
        assert result.duration >= 2.0
        first, second = rec.requests
        assert first.method == "POST"
        form = dict(x.split("=", 1) for x in first.content.decode().split("&"))
        assert form["lang"] == "Matthew"
        assert form["source"] == "ttsmp3"
        assert second.method == "GET"
        assert str(second.url) == "https://ttsmp3.com/created_mp3/abc.mp3"

    @pytest.mark.parametrize("voice,name", [(None, "Joanna"), ("BRIAN", "Brian"), ("nobody", "Joanna")])
    def test_map_voice(self, voice, name):
        assert map_voice(voice) == name

    def test_missing_url(self):
        _, p = self._provider(httpx.Response(200, json={"Error": "limit"}))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings())
        assert exc.value.kind is ErrorKind.SERVICE_ERROR

    def test_small_file_rejected(self):
        _, p = self._provider(
            httpx.Response(200, json={"URL": "https://ttsmp3.com/x.mp3"}),
            httpx.Response(200, content=b"tiny"),
        )
        with pytest.raises(ProviderError, match="small"):
            p.convert("hi", AudioSettings())

    def test_cancel_between_steps(self):
        token = CancelToken(10)
        calls = []

        def handler(request):
            calls.append(request)
            token.cancel()  # deadline passes while step 1 is in flight
            return httpx.Response(200, json={"URL": "https://ttsmp3.com/x.mp3"})

        p = TTSMP3Provider(transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings(), token)
        assert exc.value.kind is ErrorKind.TIMEOUT
        assert len(calls) == 1


class TestMockProvider:

    def test_wav_output(self):
        p = MockProvider()
        result = p.convert("Hello world from the mock", AudioSettings(voice="Test Voice 2"))

        assert result.format == "wav"
        assert result.audio[:4] == b"RIFF"
        assert result.metadata.voice == "Test Voice 2"
        data, sr = sf.read(io.BytesIO(result.audio))
        assert sr == 16000
        assert len(data) / sr == pytest.approx(result.duration, abs=0.01)

    def test_volume_scales_amplitude(self):
        p = MockProvider()
        loud, _ = sf.read(io.BytesIO(p.convert("hi", AudioSettings(volume=100)).audio))
        quiet, _ = sf.read(io.BytesIO(p.convert("hi", AudioSettings(volume=25)).audio))
        assert np.max(np.abs(loud)) > np.max(np.abs(quiet)) * 3

    def test_always_available(self):
        status = MockProvider().get_status()
        assert status.available is True
        assert status.response_time_ms is not None

    def test_delay_honours_token(self):
        p = MockProvider(delay_s=5.0)
        t0 = time.monotonic()
        with pytest.raises(ProviderError) as exc:
            p.convert("hi", AudioSettings(), CancelToken(0.1))
        assert exc.value.kind is ErrorKind.TIMEOUT
        assert time.monotonic() - t0 < 1.0


class TestCancelToken:

    def test_deadline(self):
        now = [100.0]
        token = CancelToken(2.0, clock=lambda: now[0])
        assert token.remaining() == 2.0
        assert not token.cancelled
        now[0] = 102.0
        assert token.cancelled
        assert token.remaining() == 0.0

    def test_cancel(self):
        token = CancelToken()
        assert token.remaining(7.0) == 7.0
        token.cancel()
        assert token.cancelled
        assert token.remaining(7.0) == 0.0
        with pytest.raises(ProviderError):
            token.raise_if_cancelled("X")

    def test_wait_returns_early_on_cancel(self):
        token = CancelToken()
        token.cancel()
        t0 = time.monotonic()
        assert token.wait(5.0) is True
        assert time.monotonic() - t0 < 0.5


class TestAudioSettings:

    def test_from_partial(self):
        s = AudioSettings.from_partial({"playbackSpeed": 0.9, "voice": ""})
        assert s.playback_speed == 0.9
        assert s.voice is None
        assert s.volume == 75
