"""
Timing Utilities.

A small context manager used to time provider attempts, availability
probes and storage reads. Uses time.perf_counter() for high-resolution
wall-clock timing.

Example:
    with timeit("attempt", meta={"provider": "GoogleTTS"}) as t:
        result = provider.convert(text, settings, token)
    info(log, "attempt_done", seconds=round(t.seconds, 3))
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: Identifier for what was timed (e.g., "attempt", "probe").
        seconds: Duration in seconds.
        meta: Optional metadata dictionary for additional context.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    The result is available as ``timing`` after the block exits, even
    when the block raised. ``seconds`` reads the running time while the
    block is still executing.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(perf_counter() - self._t0), meta=self.meta)

    @property
    def seconds(self) -> float:
        if self.timing is not None:
            return self.timing.seconds
        if self._t0 is None:
            return 0.0
        return perf_counter() - self._t0
