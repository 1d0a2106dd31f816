"""
Audio Storage (disk).

Persists generated audio together with a JSON sidecar describing it, and
serves whole-file or byte-range reads back to the delivery layer.

File Organization:
    {base_dir}/
        3f/
            conv_1700000000000_a1b2c3.mp3
            conv_1700000000000_a1b2c3.meta.json
        9c/
            ...

    The shard directory is the first two hex characters of sha256(id), so
    ids that share a prefix still spread across 256 directories.

Write protocol:
    1. data  -> temp file, fsync, os.replace onto {id}.{fmt}
    2. meta  -> temp file, fsync, os.replace onto {id}.meta.json

    The sidecar is the commit point: a record exists only once its sidecar
    does, so a reader never sees a half-written blob. Temp files are left
    behind only by a crash and are removed by cleanup().

Concurrency:
    Different ids never share a file. Temp names are unique per write, so
    two writers on the same id cannot corrupt each other; the last
    os.replace wins.

Usage:
    storage = AudioStorage("./temp-storage")
    record = storage.save("conv_1_ab", mp3_bytes, "mp3", duration=2.5)
    head = storage.get_range("conv_1_ab", 0, 1023)
    removed = storage.cleanup(max_age_hours=24)
"""
from __future__ import annotations

import hashlib
import json
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from tts_relay.core.config import Defaults
from tts_relay.core.errors import ErrorCode, NotFoundError, StorageError, StorageErrorKind
from tts_relay.core.logging import debug, get_logger, info, verbose, warn
from tts_relay.services.validators import is_valid_audio_id
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.storage")

META_SUFFIX = ".meta.json"
TMP_SUFFIX = ".tmp"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AudioFileRecord:
    """
    Sidecar metadata for one stored audio file.

    Attributes:
        id: Audio id (the conversion id).
        storage_key: Path of the data blob relative to base_dir.
        format: Audio format ("mp3", "wav", "ogg").
        size: Byte count of the persisted blob.
        duration: Estimated duration in seconds.
        created_at: UTC time the record was committed.
    """
    id: str
    storage_key: str
    format: str
    size: int
    duration: float
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "storage_key": self.storage_key,
            "format": self.format,
            "size": self.size,
            "duration": self.duration,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioFileRecord":
        created_at = datetime.fromisoformat(data["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            storage_key=str(data["storage_key"]),
            format=str(data["format"]),
            size=int(data["size"]),
            duration=float(data["duration"]),
            created_at=created_at,
        )


def _not_found(audio_id: str) -> NotFoundError:
    return NotFoundError(
        f"Audio file not found: {audio_id}",
        code=ErrorCode.AUDIO_NOT_FOUND,
        details={"id": audio_id},
    )


class AudioStorage:
    """
    Storage Manager for generated audio.

    Args:
        base_dir: Root directory; created on first write.
        max_file_size: Largest accepted blob in bytes.
        clock: Returns the current UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        base_dir: str,
        max_file_size: int = Defaults.STORAGE_MAX_FILE_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._base_dir = Path(base_dir)
        self._max_file_size = max_file_size
        self._clock = clock

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def max_file_size(self) -> int:
        return self._max_file_size

    # =========================================================================
    # Paths
    # =========================================================================

    def _shard_dir(self, audio_id: str) -> Path:
        shard = hashlib.sha256(audio_id.encode("utf-8")).hexdigest()[:2]
        return self._base_dir / shard

    def _meta_path(self, audio_id: str) -> Path:
        return self._shard_dir(audio_id) / f"{audio_id}{META_SUFFIX}"

    def _data_path(self, record: AudioFileRecord) -> Path:
        return self._base_dir / record.storage_key

    def _check_id(self, audio_id: str) -> None:
        # Ids become file names; anything outside the id alphabet is unknown
        if not is_valid_audio_id(audio_id):
            raise _not_found(audio_id)

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}{TMP_SUFFIX}")
        try:
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    # =========================================================================
    # Write
    # =========================================================================

    def _commit(self, audio_id: str, data_path: Path, data: bytes, meta: bytes) -> None:
        """Write the blob, then the sidecar that makes it visible."""
        data_path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(data_path, data)
        self._atomic_write(self._meta_path(audio_id), meta)

    def save(self, audio_id: str, data: bytes, fmt: str, duration: float) -> AudioFileRecord:
        """
        Persist audio and commit its sidecar.

        Raises:
            StorageError: PAYLOAD_TOO_LARGE (nothing written) or WRITE_FAILURE.
        """
        if len(data) > self._max_file_size:
            raise StorageError(
                f"Audio exceeds maximum file size of {self._max_file_size} bytes",
                StorageErrorKind.PAYLOAD_TOO_LARGE,
                details={"id": audio_id, "size": len(data), "max_file_size": self._max_file_size},
            )
        if not is_valid_audio_id(audio_id):
            raise StorageError(
                f"Invalid audio id: {audio_id!r}",
                StorageErrorKind.WRITE_FAILURE,
                details={"id": audio_id},
            )

        fmt = fmt.lower()
        shard_dir = self._shard_dir(audio_id)
        data_path = shard_dir / f"{audio_id}.{fmt}"
        record = AudioFileRecord(
            id=audio_id,
            storage_key=data_path.relative_to(self._base_dir).as_posix(),
            format=fmt,
            size=len(data),
            duration=float(duration),
            created_at=self._clock(),
        )

        with timeit("storage_write") as t:
            try:
                previous = self._load_record(audio_id)
            except (NotFoundError, StorageError):
                previous = None
            meta = json.dumps(record.to_dict(), ensure_ascii=True).encode("utf-8")
            try:
                try:
                    self._commit(audio_id, data_path, data, meta)
                except FileNotFoundError:
                    # cleanup() removed the empty shard between mkdir and write
                    self._commit(audio_id, data_path, data, meta)
            except OSError as e:
                warn(_LOG, "storage_write_error", id=audio_id, error=str(e))
                raise StorageError(
                    f"Failed to write audio file: {e}",
                    StorageErrorKind.WRITE_FAILURE,
                    details={"id": audio_id},
                ) from e

        # A rewrite in another format leaves the old blob unreferenced
        if previous is not None and previous.storage_key != record.storage_key:
            self._data_path(previous).unlink(missing_ok=True)

        info(_LOG, "saved", id=audio_id, format=fmt, bytes=len(data), seconds=round(t.seconds, 4))
        return record

    # =========================================================================
    # Read
    # =========================================================================

    def _load_record(self, audio_id: str) -> AudioFileRecord:
        meta_path = self._meta_path(audio_id)
        try:
            raw = meta_path.read_bytes()
        except FileNotFoundError:
            raise _not_found(audio_id) from None
        except OSError as e:
            raise StorageError(
                f"Failed to read audio metadata: {e}",
                StorageErrorKind.READ_FAILURE,
                details={"id": audio_id},
            ) from e
        try:
            return AudioFileRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(
                "Corrupt audio metadata",
                StorageErrorKind.READ_FAILURE,
                details={"id": audio_id, "error": str(e)},
            ) from e

    def get_metadata(self, audio_id: str) -> AudioFileRecord:
        """
        Raises:
            NotFoundError: AUDIO_NOT_FOUND when no committed record exists.
            StorageError: READ_FAILURE when the sidecar is unreadable.
        """
        self._check_id(audio_id)
        return self._load_record(audio_id)

    def exists(self, audio_id: str) -> bool:
        if not is_valid_audio_id(audio_id):
            return False
        try:
            record = self._load_record(audio_id)
        except (NotFoundError, StorageError):
            return False
        return self._data_path(record).is_file()

    def get(self, audio_id: str) -> bytes:
        """Read the whole blob."""
        record = self.get_metadata(audio_id)
        with timeit("storage_read") as t:
            try:
                data = self._data_path(record).read_bytes()
            except FileNotFoundError:
                raise _not_found(audio_id) from None
            except OSError as e:
                raise StorageError(
                    f"Failed to read audio file: {e}",
                    StorageErrorKind.READ_FAILURE,
                    details={"id": audio_id},
                ) from e
        if len(data) != record.size:
            raise StorageError(
                "Audio file size does not match its metadata",
                StorageErrorKind.READ_FAILURE,
                details={"id": audio_id, "expected": record.size, "actual": len(data)},
            )
        debug(_LOG, "read", id=audio_id, bytes=len(data), seconds=round(t.seconds, 4))
        return data

    def get_range(self, audio_id: str, start: int, end: int) -> bytes:
        """
        Read bytes ``start..end`` inclusive without loading the whole file.

        Raises:
            StorageError: RANGE_NOT_SATISFIABLE when start < 0, end >= size
                or start > end; READ_FAILURE on I/O errors or a short read.
        """
        record = self.get_metadata(audio_id)
        if start < 0 or end >= record.size or start > end:
            raise StorageError(
                f"Range {start}-{end} not satisfiable for size {record.size}",
                StorageErrorKind.RANGE_NOT_SATISFIABLE,
                details={"id": audio_id, "start": start, "end": end, "size": record.size},
            )

        length = end - start + 1
        try:
            with open(self._data_path(record), "rb") as f:
                f.seek(start)
                chunk = f.read(length)
        except FileNotFoundError:
            raise _not_found(audio_id) from None
        except OSError as e:
            raise StorageError(
                f"Failed to read audio file: {e}",
                StorageErrorKind.READ_FAILURE,
                details={"id": audio_id},
            ) from e

        if len(chunk) != length:
            raise StorageError(
                "Short read from audio file",
                StorageErrorKind.READ_FAILURE,
                details={"id": audio_id, "expected": length, "actual": len(chunk)},
            )
        return chunk

    # =========================================================================
    # Delete / sweep
    # =========================================================================

    def delete(self, audio_id: str) -> bool:
        """Remove a record. Returns True iff anything was removed."""
        if not is_valid_audio_id(audio_id):
            return False

        removed = False
        shard_dir = self._shard_dir(audio_id)
        meta_path = self._meta_path(audio_id)
        # Sidecar first: the record disappears atomically for readers
        if meta_path.exists():
            meta_path.unlink(missing_ok=True)
            removed = True
        if shard_dir.is_dir():
            for path in shard_dir.glob(f"{audio_id}.*"):
                if path.name.split(".", 1)[0] == audio_id:
                    path.unlink(missing_ok=True)
                    removed = True

        if removed:
            verbose(_LOG, "deleted", id=audio_id)
        return removed

    def _shards(self) -> Iterator[Path]:
        if not self._base_dir.exists():
            return
        for shard_dir in self._base_dir.iterdir():
            if shard_dir.is_dir():
                yield shard_dir

    def cleanup(self, max_age_hours: float = Defaults.CLEANUP_STORAGE_MAX_AGE_HOURS) -> int:
        """
        Remove records strictly older than ``max_age_hours``.

        Age comes from the sidecar's created_at, or the file mtime when the
        sidecar is corrupt. Leftover temp files and data blobs without a
        sidecar are removed once they are older than the cutoff. An error on
        one record is logged and counted; the sweep continues.

        Returns:
            Number of records removed.
        """
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        cutoff_ts = cutoff.timestamp()
        removed = 0
        strays = 0
        errors = 0

        with timeit("storage_cleanup") as t:
            for shard_dir in self._shards():
                committed = set()
                for meta_path in list(shard_dir.glob(f"*{META_SUFFIX}")):
                    audio_id = meta_path.name[: -len(META_SUFFIX)]
                    committed.add(audio_id)
                    try:
                        try:
                            created_at = self._load_record(audio_id).created_at
                            expired = created_at < cutoff
                        except StorageError:
                            expired = meta_path.stat().st_mtime < cutoff_ts
                        if expired and self.delete(audio_id):
                            removed += 1
                    except NotFoundError:
                        continue
                    except OSError as e:
                        errors += 1
                        verbose(_LOG, "cleanup_record_error", id=audio_id, error=str(e))

                for path in list(shard_dir.iterdir()):
                    name = path.name
                    if name.endswith(META_SUFFIX):
                        continue
                    is_tmp = name.endswith(TMP_SUFFIX)
                    if not is_tmp and name.split(".", 1)[0] in committed:
                        continue
                    try:
                        if path.is_file() and path.stat().st_mtime < cutoff_ts:
                            path.unlink()
                            strays += 1
                    except OSError as e:
                        errors += 1
                        verbose(_LOG, "cleanup_file_error", file=str(path), error=str(e))

                try:
                    if not any(shard_dir.iterdir()):
                        shard_dir.rmdir()
                except OSError:
                    # A concurrent save may have just repopulated the shard
                    pass

        if removed or strays or errors:
            info(
                _LOG, "storage_cleanup",
                removed=removed, strays=strays, errors=errors,
                max_age_hours=max_age_hours, seconds=round(t.seconds, 4),
            )
        return removed

    def get_storage_info(self) -> Dict[str, Any]:
        """Committed record count and total blob bytes."""
        record_count = 0
        total_bytes = 0
        for shard_dir in self._shards():
            for meta_path in shard_dir.glob(f"*{META_SUFFIX}"):
                try:
                    record = self._load_record(meta_path.name[: -len(META_SUFFIX)])
                except (NotFoundError, StorageError):
                    continue
                record_count += 1
                total_bytes += record.size
        return {
            "base_dir": str(self._base_dir),
            "record_count": record_count,
            "total_bytes": total_bytes,
            "max_file_size": self._max_file_size,
        }
