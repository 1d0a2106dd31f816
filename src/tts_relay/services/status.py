"""
Conversion Status Tracking.

State machine:
    pending -> processing -> completed
                          -> failed
    pending -> failed                  (validation rejected the request)

completed and failed are absorbing. Invalid transitions are ignored and
logged, never raised: a late writer must not crash the request that owns
the entry.

Progress never decreases while an entry is live. Entering failed resets
progress to 0; entering completed sets it to 100.

StatusTable is the only owner of the entries. Every method takes the
table lock and readers always receive copies.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tts_relay.core.logging import debug, get_logger, warn

_LOG = get_logger("tts-relay.status")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversionState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ConversionState.COMPLETED, ConversionState.FAILED)


_TRANSITIONS = {
    ConversionState.PENDING: {ConversionState.PROCESSING, ConversionState.FAILED},
    ConversionState.PROCESSING: {ConversionState.COMPLETED, ConversionState.FAILED},
    ConversionState.COMPLETED: set(),
    ConversionState.FAILED: set(),
}


@dataclass
class AttemptOutcome:
    """One provider attempt within a conversion."""
    provider: str
    outcome: str            # "success" or an ErrorKind value
    seconds: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "outcome": self.outcome,
            "seconds": round(self.seconds, 4),
            "error": self.error,
        }


@dataclass
class ConversionStatus:
    id: str
    state: ConversionState
    progress: int
    start_time: datetime
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    provider: Optional[str] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)

    def copy(self) -> "ConversionStatus":
        return replace(self, attempts=list(self.attempts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "progress": self.progress,
            "error": self.error,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "provider": self.provider,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class StatusTable:
    """
    Lock-protected status and result tables keyed by conversion id.

    Args:
        clock: Returns the current UTC datetime (injectable for tests).
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, ConversionStatus] = {}
        self._results: Dict[str, Any] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def create(self, conversion_id: str) -> ConversionStatus:
        """
        Register a new pending entry.

        Raises:
            ValueError: If the id is already present (ids are never reused).
        """
        with self._lock:
            if conversion_id in self._entries:
                raise ValueError(f"duplicate conversion id: {conversion_id}")
            status = ConversionStatus(
                id=conversion_id,
                state=ConversionState.PENDING,
                progress=0,
                start_time=self._clock(),
            )
            self._entries[conversion_id] = status
            return status.copy()

    def get(self, conversion_id: str) -> Optional[ConversionStatus]:
        with self._lock:
            status = self._entries.get(conversion_id)
            return status.copy() if status else None

    def transition(
        self,
        conversion_id: str,
        state: ConversionState,
        progress: Optional[int] = None,
        error: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> bool:
        """Apply a state change. Returns False (and logs) if it is not allowed."""
        with self._lock:
            status = self._entries.get(conversion_id)
            if status is None:
                debug(_LOG, "transition_unknown_id", id=conversion_id, state=state.value)
                return False
            if state not in _TRANSITIONS[status.state]:
                warn(_LOG, "invalid_transition", id=conversion_id, current=status.state.value, requested=state.value)
                return False

            status.state = state
            if state is ConversionState.FAILED:
                status.progress = 0
                status.error = error
            elif state is ConversionState.COMPLETED:
                status.progress = 100
            elif progress is not None:
                status.progress = max(status.progress, min(100, progress))
            if provider is not None:
                status.provider = provider
            if state.terminal:
                status.end_time = self._clock()
            return True

    def advance(self, conversion_id: str, progress: int) -> bool:
        """Raise progress of a live entry. Lower values are ignored."""
        with self._lock:
            status = self._entries.get(conversion_id)
            if status is None or status.state.terminal:
                return False
            status.progress = max(status.progress, min(100, progress))
            return True

    def add_attempt(self, conversion_id: str, attempt: AttemptOutcome) -> None:
        with self._lock:
            status = self._entries.get(conversion_id)
            if status is not None and not status.state.terminal:
                status.attempts.append(attempt)

    def set_result(self, conversion_id: str, result: Any) -> None:
        with self._lock:
            if conversion_id in self._entries:
                self._results[conversion_id] = result

    def get_result(self, conversion_id: str) -> Optional[Any]:
        """The stored result, only once the entry has completed."""
        with self._lock:
            status = self._entries.get(conversion_id)
            if status is None or status.state is not ConversionState.COMPLETED:
                return None
            return self._results.get(conversion_id)

    def prune(self, cutoff: datetime) -> int:
        """Drop entries (and their results) whose start_time is strictly before ``cutoff``."""
        with self._lock:
            expired = [cid for cid, s in self._entries.items() if s.start_time < cutoff]
            for cid in expired:
                del self._entries[cid]
                self._results.pop(cid, None)
            return len(expired)
