"""
Audio Utilities.

    wav_bytes_from_float32: encode a float32 waveform as PCM-16 WAV bytes
    tone_waveform: synthesize a short tone (used by the local mock provider)
    estimate_duration: rough spoken duration of a text at a given speed

Dependencies:
    - numpy: waveform generation
    - soundfile: WAV writing (libsndfile)
"""
from __future__ import annotations

import io

import numpy as np
import soundfile as sf

# Average speaking rate at playback speed 1.0
WORDS_PER_MINUTE = 150


def wav_bytes_from_float32(waveform: np.ndarray, sample_rate: int) -> bytes:
    """
    Convert a float32 waveform in [-1, 1] to WAV bytes (PCM 16-bit, mono).

    Multi-dimensional input is flattened to mono.
    """
    wav = np.asarray(waveform, dtype=np.float32)
    if wav.ndim > 1:
        wav = wav.reshape(-1)

    buf = io.BytesIO()
    sf.write(buf, wav, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def tone_waveform(
    duration_s: float,
    sample_rate: int = 22050,
    frequency: float = 440.0,
    amplitude: float = 0.3,
) -> np.ndarray:
    """
    Generate a sine tone with short linear fades to avoid clicks.

    Args:
        duration_s: Length of the tone in seconds (> 0).
        sample_rate: Samples per second.
        frequency: Tone frequency in Hz.
        amplitude: Peak amplitude in [0, 1].
    """
    n = max(1, int(round(duration_s * sample_rate)))
    t = np.arange(n, dtype=np.float32) / float(sample_rate)
    wave = amplitude * np.sin(2.0 * np.pi * frequency * t)

    fade = min(n // 2, int(0.01 * sample_rate))
    if fade > 0:
        ramp = np.linspace(0.0, 1.0, fade, dtype=np.float32)
        wave[:fade] *= ramp
        wave[-fade:] *= ramp[::-1]
    return wave.astype(np.float32)


def estimate_duration(text: str, speed: float = 1.0, minimum: float = 1.0) -> float:
    """
    Estimate spoken duration in seconds.

    Uses ~150 words per minute scaled by playback speed, plus 10% for
    punctuation pauses, and never returns less than ``minimum``.
    """
    words = len(text.split()) or 1
    speed = speed if speed > 0 else 1.0
    seconds = words / (WORDS_PER_MINUTE * speed) * 60.0
    return max(minimum, round(seconds * 1.1, 2))
