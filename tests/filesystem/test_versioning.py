# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tests for versioning dispatch and revision normalization."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, timezone
from typing import ClassVar

import pytest

from polyvfs import filesystem as vfs
from polyvfs.clock import FakeClock
from polyvfs.errors import AdapterError, FileNotFound
from polyvfs.filesystem import (
    FilesystemHandle,
    Revision,
    VersionOptions,
    normalize_revision,
    resolve_versioning,
)
from polyvfs.filesystem._versioning import filter_revisions, normalize_timestamp
from tests.helpers import LogCapture
from tests.helpers.adapters import DictAdapter, DictConfig

T0 = datetime(2024, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Checkpoint:
    """Checkpoint record as reported by a checkpoint based service."""

    checkpoint_id: int
    created_at: str
    comment: str


@dataclass(eq=False)
class CheckpointConfig(DictConfig):
    checkpoints: list[tuple[Checkpoint, dict[str, bytes]]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CheckpointVersioning:
    """Versioning reporting checkpoint ids and ISO timestamps."""

    supports_path_rollback: ClassVar[bool] = False

    def commit(self, config: object, message: str | None, opts: VersionOptions) -> None:
        assert isinstance(config, CheckpointConfig)
        number = len(config.checkpoints) + 1
        created = (T0 + timedelta(hours=number)).isoformat()
        config.checkpoints.append(
            (Checkpoint(number, created, message or ""), dict(config.files))
        )

    def revisions(
        self, config: object, path: str, opts: VersionOptions
    ) -> Sequence[object]:
        assert isinstance(config, CheckpointConfig)
        return [checkpoint for checkpoint, _ in reversed(config.checkpoints)]

    def read_revision(
        self, config: object, path: str, revision: str, opts: VersionOptions
    ) -> bytes:
        assert isinstance(config, CheckpointConfig)
        for checkpoint, files in config.checkpoints:
            if str(checkpoint.checkpoint_id) == revision:
                if path not in files:
                    raise FileNotFound(path)
                return files[path]
        raise AdapterError("checkpoint", f"unknown revision {revision!r}")

    def rollback(self, config: object, revision: str, opts: VersionOptions) -> None:
        assert isinstance(config, CheckpointConfig)
        for checkpoint, files in config.checkpoints:
            if str(checkpoint.checkpoint_id) == revision:
                config.files = dict(files)
                return
        raise AdapterError("checkpoint", f"unknown revision {revision!r}")


@dataclass(frozen=True, slots=True)
class CheckpointAdapter(DictAdapter):
    name: ClassVar[str] = "checkpoint"
    versioning: ClassVar[CheckpointVersioning] = CheckpointVersioning()  # type: ignore[assignment]


@pytest.fixture
def checkpoint_fs() -> FilesystemHandle:
    return FilesystemHandle(adapter=CheckpointAdapter(), config=CheckpointConfig())


class TestNormalizeTimestamp:
    def test_aware_datetime_converted_to_utc(self) -> None:
        value = datetime(2024, 1, 1, 2, tzinfo=timezone(timedelta(hours=2)))
        assert normalize_timestamp(value) == T0
        assert normalize_timestamp(value).tzinfo is UTC

    def test_naive_datetime_is_utc(self) -> None:
        assert normalize_timestamp(datetime(2024, 1, 1)) == T0

    def test_epoch_seconds(self) -> None:
        assert normalize_timestamp(1_704_067_200) == T0
        assert normalize_timestamp(1_704_067_200.0) == T0

    def test_iso_string(self) -> None:
        assert normalize_timestamp("2024-01-01T00:00:00+00:00") == T0
        assert normalize_timestamp("2024-01-01T00:00:00Z") == T0

    def test_rejects_bool(self) -> None:
        with pytest.raises(TypeError):
            _ = normalize_timestamp(True)

    def test_rejects_garbage_string(self) -> None:
        with pytest.raises(ValueError):
            _ = normalize_timestamp("yesterday")


class TestNormalizeRevision:
    """Revision records of every shape become Revision."""

    def test_git_style_mapping(self) -> None:
        revision = normalize_revision(
            {
                "sha": "0123abcd",
                "author_name": "Ada",
                "author_email": "ada@example.com",
                "message": "fix typo",
                "timestamp": 1_704_067_200,
            },
            "git",
        )
        assert revision == Revision(
            sha="0123abcd",
            author_name="Ada",
            author_email="ada@example.com",
            message="fix typo",
            timestamp=T0,
        )

    def test_version_id_mapping_gets_default_author(self) -> None:
        revision = normalize_revision(
            {"version_id": 7, "message": "m", "timestamp": 1_704_067_200.0}, "memory"
        )
        assert revision.sha == "7"
        assert revision.author_name == "memory"
        assert revision.author_email == "memory@polyvfs.local"

    def test_checkpoint_object(self) -> None:
        revision = normalize_revision(
            Checkpoint(3, "2024-01-01T00:00:00+00:00", "nightly"), "checkpoint"
        )
        assert revision.sha == "3"
        assert revision.message == "nightly"
        assert revision.timestamp == T0

    def test_revision_passes_through(self) -> None:
        original = Revision("a", "b", "c", "d", T0)
        assert normalize_revision(original, "x") is original

    def test_missing_identifier(self) -> None:
        with pytest.raises(AdapterError) as excinfo:
            _ = normalize_revision({"timestamp": 0}, "broken")
        assert excinfo.value.backend_type == "broken"

    def test_missing_timestamp(self) -> None:
        with pytest.raises(AdapterError):
            _ = normalize_revision({"sha": "abc"}, "broken")

    def test_invalid_timestamp(self) -> None:
        with pytest.raises(AdapterError):
            _ = normalize_revision({"sha": "abc", "timestamp": "soon"}, "broken")


class TestFilterRevisions:
    @staticmethod
    def _history() -> list[Revision]:
        return [
            Revision(str(n), "a", "e", "", T0 + timedelta(days=n))
            for n in (3, 2, 1, 0)
        ]

    def test_no_filters(self) -> None:
        assert len(filter_revisions(self._history(), VersionOptions())) == 4

    def test_bounds_are_inclusive(self) -> None:
        selected = filter_revisions(
            self._history(),
            VersionOptions(since=T0 + timedelta(days=1), until=T0 + timedelta(days=2)),
        )
        assert [r.sha for r in selected] == ["2", "1"]

    def test_limit_applies_after_bounds(self) -> None:
        selected = filter_revisions(
            self._history(), VersionOptions(limit=1, until=T0 + timedelta(days=1))
        )
        assert [r.sha for r in selected] == ["1"]

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            _ = VersionOptions(limit=-1)


class TestMemoryVersioning:
    """Checkpoint versioning of the in-memory adapter."""

    def test_two_versions(self, memory_fs: FilesystemHandle, clock: FakeClock) -> None:
        vfs.write(memory_fs, "a.txt", b"v1")
        vfs.commit(memory_fs, "first")
        clock.advance(60)
        vfs.write(memory_fs, "a.txt", b"v2")
        vfs.commit(memory_fs, "second")

        latest, first = vfs.revisions(memory_fs, "a.txt")
        assert (latest.message, first.message) == ("second", "first")
        assert latest.timestamp == T0 + timedelta(seconds=60)
        assert first.timestamp == T0
        assert vfs.read_revision(memory_fs, "a.txt", first.sha) == b"v1"
        assert vfs.read_revision(memory_fs, "a.txt", latest.sha) == b"v2"

    def test_revisions_only_where_path_changed(
        self, memory_fs: FilesystemHandle
    ) -> None:
        vfs.write(memory_fs, "a.txt", b"v1")
        vfs.commit(memory_fs, "a")
        vfs.write(memory_fs, "b.txt", b"other")
        vfs.commit(memory_fs, "b")
        assert [r.message for r in vfs.revisions(memory_fs, "a.txt")] == ["a"]
        assert [r.message for r in vfs.revisions(memory_fs)] == ["b", "a"]

    def test_revisions_limit_and_bounds(
        self, memory_fs: FilesystemHandle, clock: FakeClock
    ) -> None:
        for n in range(4):
            vfs.write(memory_fs, "a.txt", str(n))
            vfs.commit(memory_fs, f"rev {n}")
            clock.advance(3600)
        assert [r.message for r in vfs.revisions(memory_fs, "a.txt", limit=2)] == [
            "rev 3",
            "rev 2",
        ]
        selected = vfs.revisions(
            memory_fs, "a.txt", since=T0 + timedelta(hours=1), until=T0 + timedelta(hours=2)
        )
        assert [r.message for r in selected] == ["rev 2", "rev 1"]

    def test_read_revision_missing_path(self, memory_fs: FilesystemHandle) -> None:
        vfs.write(memory_fs, "a.txt", b"v1")
        vfs.commit(memory_fs)
        [revision] = vfs.revisions(memory_fs)
        with pytest.raises(FileNotFound):
            _ = vfs.read_revision(memory_fs, "b.txt", revision.sha)

    def test_unknown_revision(self, memory_fs: FilesystemHandle) -> None:
        with pytest.raises(AdapterError):
            _ = vfs.read_revision(memory_fs, "a.txt", "999")

    def test_full_rollback(self, memory_fs: FilesystemHandle) -> None:
        vfs.write(memory_fs, "a.txt", b"v1")
        vfs.commit(memory_fs, "first")
        [first] = vfs.revisions(memory_fs)
        vfs.write(memory_fs, "a.txt", b"v2")
        vfs.write(memory_fs, "b.txt", b"new")
        vfs.rollback(memory_fs, first.sha)
        assert vfs.read(memory_fs, "a.txt") == b"v1"
        assert not vfs.file_exists(memory_fs, "b.txt")

    def test_path_rollback_reads_then_writes(
        self, memory_fs: FilesystemHandle, logs: LogCapture
    ) -> None:
        """Restoring one path leaves other files untouched."""
        vfs.write(memory_fs, "a.txt", b"v1")
        vfs.write(memory_fs, "b.txt", b"b1")
        vfs.commit(memory_fs, "first")
        [first] = vfs.revisions(memory_fs)
        vfs.write(memory_fs, "a.txt", b"v2")
        vfs.write(memory_fs, "b.txt", b"b2")
        vfs.rollback(memory_fs, first.sha, path="a.txt")
        assert vfs.read(memory_fs, "a.txt") == b"v1"
        assert vfs.read(memory_fs, "b.txt") == b"b2"
        strategies = [
            context.get("strategy")
            for context in logs.events("dispatch.call")
            if context["operation"] == "rollback"
        ]
        assert strategies == ["read_then_write"]

    def test_resolve_versioning(self, memory_fs: FilesystemHandle) -> None:
        assert resolve_versioning(memory_fs) is not None


class TestCheckpointVersioning:
    """A backend with its own revision shape goes through normalization."""

    def test_revisions_are_normalized(self, checkpoint_fs: FilesystemHandle) -> None:
        vfs.write(checkpoint_fs, "a.txt", b"v1")
        vfs.commit(checkpoint_fs, "first")
        vfs.write(checkpoint_fs, "a.txt", b"v2")
        vfs.commit(checkpoint_fs, "second")
        latest, first = vfs.revisions(checkpoint_fs, "a.txt")
        assert (latest.sha, first.sha) == ("2", "1")
        assert first.timestamp == T0 + timedelta(hours=1)
        assert first.author_name == "checkpoint"
        assert vfs.read_revision(checkpoint_fs, "a.txt", "1") == b"v1"

    def test_path_rollback(self, checkpoint_fs: FilesystemHandle) -> None:
        vfs.write(checkpoint_fs, "a.txt", b"v1")
        vfs.write(checkpoint_fs, "b.txt", b"b1")
        vfs.commit(checkpoint_fs, "first")
        vfs.write(checkpoint_fs, "a.txt", b"v2")
        vfs.write(checkpoint_fs, "b.txt", b"b2")
        vfs.rollback(checkpoint_fs, "1", path="a.txt")
        assert vfs.read(checkpoint_fs, "a.txt") == b"v1"
        assert vfs.read(checkpoint_fs, "b.txt") == b"b2"
