"""
Tests for on-disk audio storage.

Tests cover:
- save/get round trip and sidecar metadata
- Sharded layout and atomic writes (no temp files left behind)
- get_range identity with slices of get(), and bounds
- Size ceiling (PAYLOAD_TOO_LARGE, nothing written)
- Missing, corrupt and truncated records
- delete()
- cleanup(): strict cutoff, idempotence, strays and temp files
- cleanup() keeps sweeping past a record it cannot delete
- Concurrent writers, readers and cleanup
"""
import json
import os
import threading
import time
from datetime import datetime, timezone

import pytest

from tts_relay.audio.storage import META_SUFFIX, AudioFileRecord, AudioStorage
from tts_relay.core.errors import ErrorCode, NotFoundError, StorageError, StorageErrorKind

DATA = bytes(range(256)) * 4  # 1024 distinct-ish bytes


def _meta_files(storage):
    return list(storage.base_dir.rglob(f"*{META_SUFFIX}"))


class TestSave:

    def test_round_trip(self, storage, clock):
        record = storage.save("a1", DATA, "mp3", 2.5)

        assert record.size == len(DATA)
        assert record.format == "mp3"
        assert record.created_at == clock.now
        assert storage.get("a1") == DATA
        assert storage.exists("a1")

    def test_layout_is_sharded(self, storage):
        record = storage.save("a1", DATA, "mp3", 1.0)
        shard, name = record.storage_key.split("/")
        assert len(shard) == 2
        assert name == "a1.mp3"
        assert (storage.base_dir / shard / f"a1{META_SUFFIX}").is_file()

    def test_no_temp_files_left(self, storage):
        storage.save("a1", DATA, "wav", 1.0)
        leftovers = [p for p in storage.base_dir.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_sidecar_contents(self, storage):
        storage.save("a1", DATA, "MP3", 1.25)
        meta = json.loads(_meta_files(storage)[0].read_text(encoding="utf-8"))
        assert meta["id"] == "a1"
        assert meta["format"] == "mp3"
        assert meta["size"] == len(DATA)
        assert meta["duration"] == 1.25

    def test_payload_too_large_writes_nothing(self, tmp_path):
        storage = AudioStorage(str(tmp_path / "s"), max_file_size=10)
        with pytest.raises(StorageError) as exc:
            storage.save("a1", b"x" * 11, "mp3", 1.0)
        assert exc.value.kind is StorageErrorKind.PAYLOAD_TOO_LARGE
        assert exc.value.code == ErrorCode.PAYLOAD_TOO_LARGE
        assert not (tmp_path / "s").exists()

    def test_exactly_max_size_accepted(self, tmp_path):
        storage = AudioStorage(str(tmp_path / "s"), max_file_size=10)
        assert storage.save("a1", b"x" * 10, "mp3", 1.0).size == 10

    def test_invalid_id_is_write_failure(self, storage):
        with pytest.raises(StorageError) as exc:
            storage.save("../escape", DATA, "mp3", 1.0)
        assert exc.value.kind is StorageErrorKind.WRITE_FAILURE

    def test_overwrite_in_new_format_removes_old_blob(self, storage):
        first = storage.save("a1", DATA, "mp3", 1.0)
        storage.save("a1", b"RIFF" * 10, "wav", 1.0)

        assert not (storage.base_dir / first.storage_key).exists()
        assert storage.get("a1") == b"RIFF" * 10
        assert storage.get_metadata("a1").format == "wav"

    def test_write_failure(self, storage, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(StorageError) as exc:
            storage.save("a1", DATA, "mp3", 1.0)
        assert exc.value.kind is StorageErrorKind.WRITE_FAILURE
        monkeypatch.undo()
        assert not storage.exists("a1")
        assert [p for p in storage.base_dir.rglob("*") if p.is_file()] == []


class TestRead:

    def test_unknown_id(self, storage):
        with pytest.raises(NotFoundError) as exc:
            storage.get("missing")
        assert exc.value.code == ErrorCode.AUDIO_NOT_FOUND

    def test_invalid_id_is_not_found(self, storage):
        with pytest.raises(NotFoundError):
            storage.get_metadata("../../etc/passwd")
        assert storage.exists("../../etc/passwd") is False

    def test_corrupt_sidecar(self, storage):
        storage.save("a1", DATA, "mp3", 1.0)
        _meta_files(storage)[0].write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError) as exc:
            storage.get_metadata("a1")
        assert exc.value.kind is StorageErrorKind.READ_FAILURE
        assert storage.exists("a1") is False

    def test_sidecar_without_data(self, storage):
        record = storage.save("a1", DATA, "mp3", 1.0)
        (storage.base_dir / record.storage_key).unlink()
        with pytest.raises(NotFoundError):
            storage.get("a1")
        assert storage.exists("a1") is False

    def test_truncated_blob(self, storage):
        record = storage.save("a1", DATA, "mp3", 1.0)
        (storage.base_dir / record.storage_key).write_bytes(DATA[:100])
        with pytest.raises(StorageError) as exc:
            storage.get("a1")
        assert exc.value.kind is StorageErrorKind.READ_FAILURE

    def test_record_from_naive_timestamp(self):
        record = AudioFileRecord.from_dict({
            "id": "a1", "storage_key": "ab/a1.mp3", "format": "mp3",
            "size": 3, "duration": 1, "created_at": "2024-01-15T12:00:00",
        })
        assert record.created_at.tzinfo is not None


class TestRange:

    @pytest.mark.parametrize("start,end", [(0, 0), (0, 1023), (100, 199), (1023, 1023), (512, 700)])
    def test_range_matches_slice(self, storage, start, end):
        storage.save("a1", DATA, "mp3", 1.0)
        assert storage.get_range("a1", start, end) == storage.get("a1")[start:end + 1]

    @pytest.mark.parametrize("start,end", [(-1, 10), (0, 1024), (1024, 1024), (200, 100)])
    def test_unsatisfiable(self, storage, start, end):
        storage.save("a1", DATA, "mp3", 1.0)
        with pytest.raises(StorageError) as exc:
            storage.get_range("a1", start, end)
        assert exc.value.kind is StorageErrorKind.RANGE_NOT_SATISFIABLE

    def test_unknown_id(self, storage):
        with pytest.raises(NotFoundError):
            storage.get_range("missing", 0, 1)

    def test_short_read(self, storage):
        record = storage.save("a1", DATA, "mp3", 1.0)
        (storage.base_dir / record.storage_key).write_bytes(DATA[:50])
        with pytest.raises(StorageError) as exc:
            storage.get_range("a1", 0, 99)
        assert exc.value.kind is StorageErrorKind.READ_FAILURE


class TestDelete:

    def test_delete(self, storage):
        storage.save("a1", DATA, "mp3", 1.0)
        assert storage.delete("a1") is True
        assert storage.exists("a1") is False
        assert storage.delete("a1") is False

    def test_delete_leaves_prefix_siblings(self, storage):
        storage.save("a1", DATA, "mp3", 1.0)
        storage.save("a1b", DATA, "mp3", 1.0)
        storage.delete("a1")
        assert storage.exists("a1b")

    def test_delete_invalid_id(self, storage):
        assert storage.delete("../x") is False


class TestCleanup:

    def test_strict_cutoff_and_idempotent(self, storage, clock):
        storage.save("old", DATA, "mp3", 1.0)
        clock.advance(hours=24)
        storage.save("edge", DATA, "mp3", 1.0)
        clock.advance(hours=24)
        storage.save("new", DATA, "mp3", 1.0)

        # cutoff == created_at of "edge": only "old" is strictly older
        assert storage.cleanup(24) == 1
        assert storage.cleanup(24) == 0
        assert not storage.exists("old")
        assert storage.exists("edge")
        assert storage.exists("new")

    def test_removes_everything_past_window(self, storage, clock):
        for i in range(5):
            storage.save(f"c{i}", DATA, "mp3", 1.0)
        clock.advance(days=2)
        assert storage.cleanup(24) == 5
        assert storage.get_storage_info()["record_count"] == 0
        assert list(storage.base_dir.iterdir()) == []

    def test_corrupt_sidecar_uses_mtime(self, storage, clock):
        clock.now = datetime.now(timezone.utc)
        storage.save("a1", DATA, "mp3", 1.0)
        meta = _meta_files(storage)[0]
        meta.write_text("garbage", encoding="utf-8")
        old = time.time() - 3 * 86400
        os.utime(meta, (old, old))

        # Clock is not advanced: only the mtime makes this record old
        assert storage.cleanup(24) == 1
        assert _meta_files(storage) == []

    def test_stray_and_temp_files_removed(self, storage, clock):
        clock.now = datetime.now(timezone.utc)
        record = storage.save("a1", DATA, "mp3", 1.0)
        shard = (storage.base_dir / record.storage_key).parent
        stray = shard / "orphan.mp3"
        tmp = shard / ".a2.mp3.deadbeef.tmp"
        stray.write_bytes(b"x")
        tmp.write_bytes(b"x")
        old = time.time() - 3 * 86400
        for p in (stray, tmp):
            os.utime(p, (old, old))

        assert storage.cleanup(24) == 0
        assert not stray.exists()
        assert not tmp.exists()
        assert storage.exists("a1")

    def test_missing_base_dir(self, tmp_path):
        assert AudioStorage(str(tmp_path / "never")).cleanup(1) == 0

    def test_delete_error_does_not_abort_sweep(self, storage, clock, monkeypatch):
        for audio_id in ("c0", "c1", "c2"):
            storage.save(audio_id, DATA, "mp3", 1.0)
        clock.advance(days=2)

        real_delete = storage.delete

        def flaky_delete(audio_id):
            if audio_id == "c1":
                raise PermissionError("read-only file")
            return real_delete(audio_id)

        monkeypatch.setattr(storage, "delete", flaky_delete)

        assert storage.cleanup(24) == 2
        assert not storage.exists("c0")
        assert storage.exists("c1")
        assert not storage.exists("c2")

        monkeypatch.setattr(storage, "delete", real_delete)
        assert storage.cleanup(24) == 1


class TestStorageInfo:

    def test_counts(self, storage):
        storage.save("a1", DATA, "mp3", 1.0)
        storage.save("a2", b"xyz", "wav", 1.0)
        info = storage.get_storage_info()
        assert info["record_count"] == 2
        assert info["total_bytes"] == len(DATA) + 3
        assert info["max_file_size"] == 1024 * 1024


class TestConcurrency:

    def test_writers_readers_and_cleanup(self, storage):
        """Distinct ids written and read from several threads while cleanup sweeps."""
        errors = []

        def writer(worker):
            try:
                for i in range(20):
                    audio_id = f"w{worker}-{i}"
                    payload = DATA[: 100 + worker * 20 + i]
                    storage.save(audio_id, payload, "mp3", 1.0)
                    assert storage.get(audio_id) == payload
                    assert storage.get_range(audio_id, 10, 49) == payload[10:50]
            except Exception as e:
                errors.append(e)

        def sweeper():
            try:
                for _ in range(20):
                    storage.cleanup(24)
                    storage.get_storage_info()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
        threads.append(threading.Thread(target=sweeper))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert storage.get_storage_info()["record_count"] == 80
        assert list(storage.base_dir.rglob("*.tmp")) == []
