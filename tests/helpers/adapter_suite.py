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

"""Behavior every adapter must share.

Subclass :class:`AdapterConformanceSuite` and provide an ``fs`` fixture
returning a handle onto an empty filesystem::

    class TestMemoryConformance(AdapterConformanceSuite):
        @pytest.fixture
        def fs(self) -> FilesystemHandle:
            return memory.configure()

Tests for optional operations skip themselves when the backend does not
support the operation.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import UTC, datetime

import pytest

from polyvfs import filesystem as vfs
from polyvfs.errors import (
    AbsolutePath,
    DirectoryNotEmpty,
    DirectoryNotFound,
    FileNotFound,
    InvalidPath,
    PathTraversal,
    UnsupportedOperation,
)
from polyvfs.filesystem import (
    AccessMode,
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Visibility,
)


def _names(fs: FilesystemHandle, path: str = "") -> list[str]:
    return [entry.name for entry in vfs.list_contents(fs, path)]


def _require(fs: FilesystemHandle, operation: Operation) -> None:
    if not vfs.supports(fs, operation):
        pytest.skip(f"{fs.backend_type} does not support {operation}")


class AdapterConformanceSuite:
    """Abstract suite run against every adapter.

    The ``fs`` fixture must return a handle onto an empty filesystem.
    """

    @pytest.fixture
    @abstractmethod
    def fs(self) -> FilesystemHandle:
        """Provide a handle onto a fresh, empty filesystem."""
        ...

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def test_write_then_read(self, fs: FilesystemHandle) -> None:
        """Written bytes are read back unchanged."""
        vfs.write(fs, "hello.txt", b"hello world")
        assert vfs.read(fs, "hello.txt") == b"hello world"

    def test_write_binary_content(self, fs: FilesystemHandle) -> None:
        """Arbitrary bytes, including NUL and high bytes, survive."""
        payload = bytes(range(256)) * 4
        vfs.write(fs, "blob.bin", payload)
        assert vfs.read(fs, "blob.bin") == payload

    def test_write_empty_file(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "empty.txt", b"")
        assert vfs.read(fs, "empty.txt") == b""
        assert vfs.file_exists(fs, "empty.txt")

    def test_write_overwrites(self, fs: FilesystemHandle) -> None:
        """A second write replaces the first."""
        vfs.write(fs, "note.txt", b"first version")
        vfs.write(fs, "note.txt", b"v2")
        assert vfs.read(fs, "note.txt") == b"v2"

    def test_write_string_is_utf8(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "unicode.txt", "héllo wörld")
        assert vfs.read(fs, "unicode.txt") == "héllo wörld".encode()

    def test_read_missing_file(self, fs: FilesystemHandle) -> None:
        """Reading a missing file raises FileNotFound."""
        with pytest.raises(FileNotFound):
            _ = vfs.read(fs, "missing.txt")

    def test_write_creates_parent_directories(self, fs: FilesystemHandle) -> None:
        """Writing a nested file makes its parents visible in listings."""
        vfs.write(fs, "docs/guide/intro.md", b"# intro")
        root = vfs.list_contents(fs)
        assert [(e.name, type(e)) for e in root] == [("docs", DirStat)]
        assert _names(fs, "docs") == ["guide"]
        assert _names(fs, "docs/guide/") == ["intro.md"]

    def test_file_exists(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "dir/file.txt", b"x")
        assert vfs.file_exists(fs, "dir/file.txt")
        assert not vfs.file_exists(fs, "dir/other.txt")

    def test_file_exists_false_for_directories(self, fs: FilesystemHandle) -> None:
        """A directory is never reported as a file."""
        vfs.write(fs, "dir/file.txt", b"x")
        assert not vfs.file_exists(fs, "dir")
        assert not vfs.file_exists(fs, "dir/")
        assert not vfs.file_exists(fs, "")

    def test_delete(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "doomed.txt", b"x")
        vfs.delete(fs, "doomed.txt")
        assert not vfs.file_exists(fs, "doomed.txt")

    def test_delete_missing_file_is_silent(self, fs: FilesystemHandle) -> None:
        """Deleting a missing file succeeds."""
        vfs.delete(fs, "never-existed.txt")

    def test_move(self, fs: FilesystemHandle) -> None:
        """Moving removes the source and creates the destination."""
        vfs.write(fs, "src.txt", b"payload")
        vfs.move(fs, "src.txt", "nested/dst.txt")
        assert not vfs.file_exists(fs, "src.txt")
        assert vfs.read(fs, "nested/dst.txt") == b"payload"

    def test_move_overwrites_destination(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "a.txt", b"a")
        vfs.write(fs, "b.txt", b"b")
        vfs.move(fs, "a.txt", "b.txt")
        assert vfs.read(fs, "b.txt") == b"a"
        assert _names(fs) == ["b.txt"]

    def test_move_missing_source(self, fs: FilesystemHandle) -> None:
        with pytest.raises(FileNotFound):
            vfs.move(fs, "missing.txt", "dst.txt")

    def test_copy(self, fs: FilesystemHandle) -> None:
        """Copying keeps the source."""
        vfs.write(fs, "src.txt", b"payload")
        vfs.copy(fs, "src.txt", "backup/src.txt")
        assert vfs.read(fs, "src.txt") == b"payload"
        assert vfs.read(fs, "backup/src.txt") == b"payload"

    def test_copy_missing_source(self, fs: FilesystemHandle) -> None:
        with pytest.raises(FileNotFound):
            vfs.copy(fs, "missing.txt", "dst.txt")

    # -------------------------------------------------------------------------
    # Directories
    # -------------------------------------------------------------------------

    def test_list_contents_is_sorted(self, fs: FilesystemHandle) -> None:
        """Listings return direct children in name order."""
        vfs.write(fs, "b.txt", b"bb")
        vfs.write(fs, "a.txt", b"a")
        vfs.write(fs, "c/d.txt", b"ddd")
        entries = vfs.list_contents(fs, "")
        assert [e.name for e in entries] == ["a.txt", "b.txt", "c"]
        assert isinstance(entries[0], FileStat)
        assert entries[1].size == 2
        assert isinstance(entries[2], DirStat)

    def test_list_empty_root(self, fs: FilesystemHandle) -> None:
        assert vfs.list_contents(fs) == []

    def test_list_missing_directory(self, fs: FilesystemHandle) -> None:
        with pytest.raises(DirectoryNotFound):
            _ = vfs.list_contents(fs, "missing")

    def test_list_entries_carry_mtime_in_utc(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "a.txt", b"a")
        [entry] = vfs.list_contents(fs)
        assert entry.mtime.tzinfo is not None
        assert entry.mtime.utcoffset() == UTC.utcoffset(None)

    def test_create_directory(self, fs: FilesystemHandle) -> None:
        """An explicitly created directory is listed while empty."""
        vfs.create_directory(fs, "empty")
        assert [(e.name, type(e)) for e in vfs.list_contents(fs)] == [
            ("empty", DirStat)
        ]
        assert vfs.list_contents(fs, "empty/") == []

    def test_create_nested_directory(self, fs: FilesystemHandle) -> None:
        vfs.create_directory(fs, "a/b/c/")
        assert _names(fs, "a") == ["b"]
        assert _names(fs, "a/b") == ["c"]

    def test_create_existing_directory(self, fs: FilesystemHandle) -> None:
        """Creating an existing directory is a no-op."""
        vfs.write(fs, "dir/file.txt", b"x")
        vfs.create_directory(fs, "dir")
        assert _names(fs, "dir") == ["file.txt"]

    def test_delete_empty_directory(self, fs: FilesystemHandle) -> None:
        vfs.create_directory(fs, "empty")
        vfs.delete_directory(fs, "empty")
        assert vfs.list_contents(fs) == []

    def test_delete_non_empty_directory(self, fs: FilesystemHandle) -> None:
        """Non-recursive deletion refuses a directory with content."""
        vfs.write(fs, "dir/file.txt", b"x")
        with pytest.raises(DirectoryNotEmpty):
            vfs.delete_directory(fs, "dir")
        assert vfs.file_exists(fs, "dir/file.txt")

    def test_delete_directory_recursive(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "dir/sub/file.txt", b"x")
        vfs.write(fs, "dir/top.txt", b"y")
        vfs.write(fs, "keep.txt", b"z")
        vfs.delete_directory(fs, "dir", recursive=True)
        assert _names(fs) == ["keep.txt"]
        assert not vfs.file_exists(fs, "dir/sub/file.txt")

    def test_delete_directory_leaves_siblings_with_shared_prefix(
        self, fs: FilesystemHandle
    ) -> None:
        """Deleting ``dir`` must not touch ``dir2``."""
        vfs.write(fs, "dir/a.txt", b"a")
        vfs.write(fs, "dir2/b.txt", b"b")
        vfs.delete_directory(fs, "dir", recursive=True)
        assert vfs.read(fs, "dir2/b.txt") == b"b"

    def test_delete_missing_directory(self, fs: FilesystemHandle) -> None:
        with pytest.raises(DirectoryNotFound):
            vfs.delete_directory(fs, "missing")

    def test_clear(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "a.txt", b"a")
        vfs.write(fs, "dir/b.txt", b"b")
        vfs.create_directory(fs, "empty")
        vfs.clear(fs)
        assert vfs.list_contents(fs) == []

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def test_stat_file(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "docs/readme.md", b"12345")
        info = vfs.stat(fs, "docs/readme.md")
        assert isinstance(info, FileStat)
        assert info.name == "readme.md"
        assert info.size == 5

    def test_stat_directory(self, fs: FilesystemHandle) -> None:
        vfs.write(fs, "docs/readme.md", b"12345")
        info = vfs.stat(fs, "docs/")
        assert isinstance(info, DirStat)
        assert info.name == "docs"

    def test_stat_root(self, fs: FilesystemHandle) -> None:
        assert isinstance(vfs.stat(fs, ""), DirStat)

    def test_stat_missing(self, fs: FilesystemHandle) -> None:
        with pytest.raises(FileNotFound):
            _ = vfs.stat(fs, "missing.txt")

    def test_access_existing_file(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.ACCESS)
        vfs.write(fs, "a.txt", b"a")
        vfs.access(fs, "a.txt", [AccessMode.READ])
        vfs.access(fs, "a.txt", [])

    def test_access_missing_file(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.ACCESS)
        with pytest.raises(FileNotFound):
            vfs.access(fs, "missing.txt", ["read"])

    # -------------------------------------------------------------------------
    # Path validation
    # -------------------------------------------------------------------------

    def test_path_normalization(self, fs: FilesystemHandle) -> None:
        """Redundant separators and dot segments name the same file."""
        vfs.write(fs, "a//b/./c.txt", b"x")
        assert vfs.read(fs, "a/b/c.txt") == b"x"
        assert vfs.read(fs, "a/z/../b/c.txt") == b"x"

    def test_parent_traversal_rejected(self, fs: FilesystemHandle) -> None:
        with pytest.raises(PathTraversal):
            vfs.write(fs, "../escape.txt", b"x")
        with pytest.raises(PathTraversal):
            _ = vfs.read(fs, "a/../../escape.txt")

    def test_absolute_path_rejected(self, fs: FilesystemHandle) -> None:
        with pytest.raises(AbsolutePath):
            _ = vfs.read(fs, "/etc/passwd")

    def test_directory_path_is_not_a_file(self, fs: FilesystemHandle) -> None:
        """File operations refuse paths with directory intent."""
        with pytest.raises(InvalidPath):
            vfs.write(fs, "dir/", b"x")
        with pytest.raises(InvalidPath):
            _ = vfs.read(fs, "")

    # -------------------------------------------------------------------------
    # Optional operations
    # -------------------------------------------------------------------------

    def test_append(self, fs: FilesystemHandle) -> None:
        """Appending creates the file and then extends it."""
        _require(fs, Operation.APPEND)
        vfs.append(fs, "log/app.log", b"one\n")
        vfs.append(fs, "log/app.log", "two\n")
        assert vfs.read(fs, "log/app.log") == b"one\ntwo\n"

    def test_truncate(self, fs: FilesystemHandle) -> None:
        """Truncation shrinks, and zero-fills when growing."""
        _require(fs, Operation.TRUNCATE)
        vfs.write(fs, "data.bin", b"abcdef")
        vfs.truncate(fs, "data.bin", 3)
        assert vfs.read(fs, "data.bin") == b"abc"
        vfs.truncate(fs, "data.bin", 5)
        assert vfs.read(fs, "data.bin") == b"abc\x00\x00"

    def test_truncate_missing_file(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.TRUNCATE)
        with pytest.raises(FileNotFound):
            vfs.truncate(fs, "missing.bin", 0)

    def test_utime(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.UTIME)
        when = datetime(2023, 5, 1, 12, 30, tzinfo=UTC)
        vfs.write(fs, "a.txt", b"a")
        vfs.utime(fs, "a.txt", when)
        assert vfs.stat(fs, "a.txt").mtime == when

    def test_set_visibility(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.SET_VISIBILITY)
        vfs.write(fs, "a.txt", b"a")
        vfs.set_visibility(fs, "a.txt", Visibility.PRIVATE)
        assert vfs.visibility(fs, "a.txt") is Visibility.PRIVATE
        vfs.set_visibility(fs, "a.txt", Visibility.PUBLIC)
        assert vfs.visibility(fs, "a.txt") is Visibility.PUBLIC

    def test_write_with_visibility(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.VISIBILITY)
        vfs.write(fs, "secret.txt", b"s", visibility=Visibility.PRIVATE)
        assert vfs.visibility(fs, "secret.txt") is Visibility.PRIVATE
        assert vfs.stat(fs, "secret.txt").visibility is Visibility.PRIVATE

    def test_visibility_missing(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.VISIBILITY)
        with pytest.raises(FileNotFound):
            _ = vfs.visibility(fs, "missing.txt")

    def test_read_stream(self, fs: FilesystemHandle) -> None:
        """Streamed reads yield chunks no larger than requested."""
        _require(fs, Operation.READ_STREAM)
        payload = b"0123456789" * 10
        vfs.write(fs, "big.bin", payload)
        with vfs.read_stream(fs, "big.bin", chunk_size=16) as reader:
            chunks = list(reader)
        assert b"".join(chunks) == payload
        assert all(len(chunk) <= 16 for chunk in chunks)

    def test_read_stream_missing(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.READ_STREAM)
        with pytest.raises(FileNotFound):
            with vfs.read_stream(fs, "missing.bin") as reader:
                _ = reader.read()

    def test_write_stream(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.WRITE_STREAM)
        with vfs.write_stream(fs, "out/stream.bin") as writer:
            _ = writer.write(b"abc")
            _ = writer.write_all([b"def", b"ghi"])
            assert writer.bytes_written == 9
        assert writer.closed
        assert vfs.read(fs, "out/stream.bin") == b"abcdefghi"

    def test_write_stream_append(self, fs: FilesystemHandle) -> None:
        _require(fs, Operation.WRITE_STREAM)
        vfs.write(fs, "log.txt", b"ab")
        with vfs.write_stream(fs, "log.txt", mode="append") as writer:
            _ = writer.write(b"cd")
        assert vfs.read(fs, "log.txt") == b"abcd"

    def test_write_stream_abort(self, fs: FilesystemHandle) -> None:
        """An exception inside the block leaves no file behind."""
        _require(fs, Operation.WRITE_STREAM)
        with pytest.raises(RuntimeError):
            with vfs.write_stream(fs, "partial.bin") as writer:
                _ = writer.write(b"half")
                raise RuntimeError("producer failed")
        assert not vfs.file_exists(fs, "partial.bin")

    def test_write_stream_abort_keeps_previous_content(
        self, fs: FilesystemHandle
    ) -> None:
        _require(fs, Operation.WRITE_STREAM)
        vfs.write(fs, "keep.bin", b"original")
        writer = vfs.write_stream(fs, "keep.bin")
        _ = writer.write(b"replacement")
        writer.abort()
        assert vfs.read(fs, "keep.bin") == b"original"

    def test_unsupported_operations_raise(self, fs: FilesystemHandle) -> None:
        """Operations the backend lacks raise UnsupportedOperation."""
        for operation in (Operation.APPEND, Operation.TRUNCATE, Operation.COMMIT):
            if vfs.supports(fs, operation):
                continue
            with pytest.raises(UnsupportedOperation) as excinfo:
                if operation is Operation.APPEND:
                    vfs.append(fs, "a.txt", b"x")
                elif operation is Operation.TRUNCATE:
                    vfs.truncate(fs, "a.txt", 0)
                else:
                    vfs.commit(fs, "message")
            assert excinfo.value.backend_type == fs.backend_type
