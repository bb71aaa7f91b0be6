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

"""Tests for the S3 adapter against an in-process client."""

from __future__ import annotations

import pytest

_ = pytest.importorskip("botocore")

from botocore.exceptions import ClientError  # noqa: E402

from polyvfs import filesystem as vfs  # noqa: E402
from polyvfs.adapters import s3  # noqa: E402
from polyvfs.adapters.visibility import InMemoryVisibilityStore  # noqa: E402
from polyvfs.errors import (  # noqa: E402
    AdapterError,
    DirectoryNotFound,
    PermissionDenied,
    UnsupportedOperation,
)
from polyvfs.filesystem import (  # noqa: E402
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Visibility,
)
from tests.helpers import AdapterConformanceSuite, LogCapture  # noqa: E402
from tests.helpers.fake_s3 import FakeObject, FakeS3Client  # noqa: E402

MIB = 1024 * 1024


@pytest.fixture
def client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_fs(client: FakeS3Client) -> FilesystemHandle:
    return s3.configure(client, "bucket", prefix="tenant")


class TestS3Conformance(AdapterConformanceSuite):
    @pytest.fixture
    def fs(self) -> FilesystemHandle:
        return s3.configure(FakeS3Client(), "bucket", prefix="tenant/")


class TestConfigure:
    def test_prefix_gets_trailing_separator(self, s3_fs: FilesystemHandle) -> None:
        config = s3_fs.config
        assert isinstance(config, s3.S3Config)
        assert config.prefix == "tenant/"
        assert config.namespace == "bucket/tenant/"

    def test_part_size_below_minimum(self, client: FakeS3Client) -> None:
        with pytest.raises(ValueError, match="part_size"):
            _ = s3.configure(client, "bucket", part_size=s3.MIN_PART_SIZE - 1)

    def test_optional_operations(self, s3_fs: FilesystemHandle) -> None:
        for operation in (Operation.APPEND, Operation.TRUNCATE, Operation.UTIME):
            assert not vfs.supports(s3_fs, operation)
        assert vfs.supports(s3_fs, Operation.WRITE_STREAM)
        with pytest.raises(UnsupportedOperation):
            vfs.utime(s3_fs, "a.txt", 0)


class TestKeys:
    """Paths map onto prefixed keys."""

    def test_keys_are_prefixed(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "docs/a.txt", b"a")
        vfs.create_directory(s3_fs, "empty")
        assert client.keys() == ["tenant/docs/a.txt", "tenant/empty/"]

    def test_prefixes_are_isolated(self, client: FakeS3Client) -> None:
        first = s3.configure(client, "bucket", prefix="one")
        second = s3.configure(client, "bucket", prefix="one-more")
        vfs.write(first, "a.txt", b"1")
        vfs.write(second, "b.txt", b"2")

        assert [e.name for e in vfs.list_contents(first)] == ["a.txt"]
        vfs.clear(first)
        assert client.keys() == ["one-more/b.txt"]

    def test_directory_marker_is_not_listed(self, s3_fs: FilesystemHandle) -> None:
        vfs.create_directory(s3_fs, "dir")
        vfs.write(s3_fs, "dir/a.txt", b"a")
        assert [e.name for e in vfs.list_contents(s3_fs, "dir")] == ["a.txt"]

    def test_listing_follows_pagination(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        client.buckets["bucket"].update(
            {f"tenant/dir/{i:04d}.txt": FakeObject(b"x") for i in range(2500)}
        )
        entries = vfs.list_contents(s3_fs, "dir")
        assert len(entries) == 2500
        assert entries[0].name == "0000.txt"
        assert entries[-1].name == "2499.txt"
        assert client.calls.count("ListObjectsV2") == 3

    def test_recursive_delete_is_batched(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        client.buckets["bucket"].update(
            {f"tenant/dir/{i:04d}.txt": FakeObject(b"x") for i in range(2500)}
        )
        client.buckets["bucket"]["tenant/dir2/keep.txt"] = FakeObject(b"k")

        vfs.delete_directory(s3_fs, "dir", recursive=True)

        assert client.calls.count("DeleteObjects") == 3
        assert client.keys() == ["tenant/dir2/keep.txt"]

    def test_stat_entries(self, s3_fs: FilesystemHandle) -> None:
        vfs.write(s3_fs, "dir/a.txt", b"abc")
        assert isinstance(vfs.stat(s3_fs, "dir/a.txt"), FileStat)
        assert isinstance(vfs.stat(s3_fs, "dir"), DirStat)

    def test_list_file_as_directory(self, s3_fs: FilesystemHandle) -> None:
        vfs.write(s3_fs, "a.txt", b"a")
        with pytest.raises(DirectoryNotFound):
            _ = vfs.list_contents(s3_fs, "a.txt")


class TestVisibility:
    """Visibility is stored as an ACL and inherited from ancestors."""

    def test_default_is_public(self, s3_fs: FilesystemHandle) -> None:
        vfs.write(s3_fs, "a.txt", b"a")
        assert vfs.visibility(s3_fs, "a.txt") is Visibility.PUBLIC

    def test_write_sets_acl(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"a", visibility=Visibility.PRIVATE)
        vfs.write(s3_fs, "b.txt", b"b", visibility=Visibility.PUBLIC)
        objects = client.buckets["bucket"]
        assert objects["tenant/a.txt"].acl == "private"
        assert objects["tenant/b.txt"].acl == "public-read"

    def test_set_visibility_updates_acl(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"a")
        vfs.set_visibility(s3_fs, "a.txt", Visibility.PRIVATE)
        assert "PutObjectAcl" in client.calls
        assert client.buckets["bucket"]["tenant/a.txt"].acl == "private"

    def test_inherited_from_directory(self, s3_fs: FilesystemHandle) -> None:
        vfs.create_directory(s3_fs, "secret", visibility=Visibility.PRIVATE)
        vfs.write(s3_fs, "secret/nested/a.txt", b"a")
        vfs.write(s3_fs, "secret/b.txt", b"b", visibility=Visibility.PUBLIC)

        assert vfs.visibility(s3_fs, "secret/nested/a.txt") is Visibility.PRIVATE
        assert vfs.visibility(s3_fs, "secret/nested") is Visibility.PRIVATE
        assert vfs.visibility(s3_fs, "secret/b.txt") is Visibility.PUBLIC
        listed = {e.name: e.visibility for e in vfs.list_contents(s3_fs, "secret")}
        assert listed == {"b.txt": Visibility.PUBLIC, "nested": Visibility.PRIVATE}

    def test_set_visibility_on_implicit_directory(
        self, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "docs/a.txt", b"a")
        vfs.set_visibility(s3_fs, "docs/", Visibility.PRIVATE)
        assert vfs.visibility(s3_fs, "docs/a.txt") is Visibility.PRIVATE

    def test_deleted_entries_forget_visibility(
        self, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"a", visibility=Visibility.PRIVATE)
        vfs.delete(s3_fs, "a.txt")
        vfs.write(s3_fs, "a.txt", b"a")
        assert vfs.visibility(s3_fs, "a.txt") is Visibility.PUBLIC

        vfs.create_directory(s3_fs, "dir", visibility=Visibility.PRIVATE)
        vfs.delete_directory(s3_fs, "dir")
        vfs.write(s3_fs, "dir/b.txt", b"b")
        assert vfs.visibility(s3_fs, "dir/b.txt") is Visibility.PUBLIC

    def test_copy_keeps_source_visibility(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"a", visibility=Visibility.PRIVATE)
        vfs.copy(s3_fs, "a.txt", "b.txt")
        assert vfs.visibility(s3_fs, "b.txt") is Visibility.PRIVATE
        assert client.buckets["bucket"]["tenant/b.txt"].acl == "private"

    def test_shared_store_across_handles(self, client: FakeS3Client) -> None:
        store = InMemoryVisibilityStore()
        first = s3.configure(client, "bucket", visibility_store=store)
        vfs.write(first, "a.txt", b"a", visibility=Visibility.PRIVATE)
        second = s3.configure(client, "bucket", visibility_store=store)
        assert vfs.visibility(second, "a.txt") is Visibility.PRIVATE


class TestStreams:
    """Streamed reads and multipart writes."""

    def test_read_closes_body(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"abc")
        assert vfs.read(s3_fs, "a.txt") == b"abc"
        assert client.bodies[-1].closed

    def test_read_stream_requests_chunk_size(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.bin", b"x" * 100)
        with vfs.read_stream(s3_fs, "a.bin", chunk_size=32) as reader:
            assert [len(chunk) for chunk in reader] == [32, 32, 32, 4]
        [body] = client.bodies
        assert body.chunk_requests == [32]
        assert body.closed

    def test_small_stream_uses_single_put(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        with vfs.write_stream(s3_fs, "small.bin") as writer:
            _ = writer.write(b"x" * 1024)
        assert "CreateMultipartUpload" not in client.calls
        assert client.calls.count("PutObject") == 1

    def test_large_stream_uses_multipart(
        self, client: FakeS3Client, s3_fs: FilesystemHandle, logs: LogCapture
    ) -> None:
        chunk = b"m" * MIB
        with vfs.write_stream(s3_fs, "big.bin", visibility=Visibility.PRIVATE) as writer:
            for _ in range(5):
                _ = writer.write(chunk)
            assert client.calls.count("UploadPart") == 1
            for _ in range(7):
                _ = writer.write(chunk)

        assert client.calls.count("UploadPart") == 3
        assert "PutObject" not in client.calls
        stored = client.buckets["bucket"]["tenant/big.bin"]
        assert len(stored.body) == 12 * MIB
        assert stored.acl == "private"
        assert vfs.visibility(s3_fs, "big.bin") is Visibility.PRIVATE
        [context] = logs.events("s3.multipart.complete")
        assert context["parts"] == 3
        assert client.uploads == {}

    def test_abort_cancels_upload(
        self, client: FakeS3Client, s3_fs: FilesystemHandle, logs: LogCapture
    ) -> None:
        writer = vfs.write_stream(s3_fs, "big.bin")
        _ = writer.write(b"m" * (6 * MIB))
        writer.abort()

        assert "AbortMultipartUpload" in client.calls
        assert client.uploads == {}
        assert not vfs.file_exists(s3_fs, "big.bin")
        assert len(logs.events("s3.multipart.abort")) == 1

    def test_failed_completion_aborts(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        client.fail["CompleteMultipartUpload"] = "InternalError"
        with pytest.raises(AdapterError):
            with vfs.write_stream(s3_fs, "big.bin") as writer:
                _ = writer.write(b"m" * (6 * MIB))
        assert client.calls[-1] == "AbortMultipartUpload"
        assert client.uploads == {}
        assert not vfs.file_exists(s3_fs, "big.bin")

    def test_append_to_small_object(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "log.txt", b"head-")
        with vfs.write_stream(s3_fs, "log.txt", mode="append") as writer:
            _ = writer.write(b"tail")
        assert vfs.read(s3_fs, "log.txt") == b"head-tail"
        assert "UploadPartCopy" not in client.calls

    def test_append_to_large_object_copies_server_side(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        head = b"h" * (6 * MIB)
        vfs.write(s3_fs, "big.log", head)
        with vfs.write_stream(s3_fs, "big.log", mode="append") as writer:
            _ = writer.write(b"tail")
            assert writer.bytes_written == 4
        assert "UploadPartCopy" in client.calls
        assert vfs.read(s3_fs, "big.log") == head + b"tail"

    def test_append_to_missing_object(self, s3_fs: FilesystemHandle) -> None:
        with vfs.write_stream(s3_fs, "new.log", mode="append") as writer:
            _ = writer.write(b"first")
        assert vfs.read(s3_fs, "new.log") == b"first"


class TestCopyBetween:
    def test_same_client_copies_server_side(self, logs: LogCapture) -> None:
        client = FakeS3Client("one", "two")
        source = s3.configure(client, "one")
        destination = s3.configure(client, "two", prefix="backup")
        vfs.write(source, "a.txt", b"payload")

        vfs.copy_between(source, "a.txt", destination, "copies/a.txt")

        assert client.keys("two") == ["backup/copies/a.txt"]
        assert "GetObject" not in client.calls
        assert client.calls[-1] == "CopyObject"
        assert logs.events("copy_between.strategy")[0]["strategy"] == "native"

    def test_different_clients_are_spooled(self, logs: LogCapture) -> None:
        left, right = FakeS3Client(), FakeS3Client()
        source = s3.configure(left, "bucket")
        destination = s3.configure(right, "bucket")
        payload = b"z" * (7 * MIB)
        vfs.write(source, "a.bin", payload)

        vfs.copy_between(source, "a.bin", destination, "b.bin")

        assert vfs.read(destination, "b.bin") == payload
        assert "CompleteMultipartUpload" in right.calls
        assert left.bodies[0].closed
        strategies = [c["strategy"] for c in logs.events("copy_between.strategy")]
        assert strategies == ["spooled"]


class TestErrors:
    """Client errors are mapped onto typed errors."""

    def test_access_denied(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        vfs.write(s3_fs, "a.txt", b"a")
        client.fail["GetObject"] = "AccessDenied"
        with pytest.raises(PermissionDenied) as excinfo:
            _ = vfs.read(s3_fs, "a.txt")
        assert excinfo.value.operation == "read"
        assert excinfo.value.target_path == "a.txt"

    def test_forbidden_head(
        self, client: FakeS3Client, s3_fs: FilesystemHandle
    ) -> None:
        client.fail["HeadObject"] = "403"
        with pytest.raises(PermissionDenied):
            _ = vfs.file_exists(s3_fs, "a.txt")

    def test_other_codes(self, client: FakeS3Client, s3_fs: FilesystemHandle) -> None:
        client.fail["PutObject"] = "SlowDown"
        with pytest.raises(AdapterError) as excinfo:
            vfs.write(s3_fs, "a.txt", b"a")
        assert excinfo.value.backend_type == "s3"
        assert isinstance(excinfo.value.__cause__, ClientError)

    def test_missing_bucket(self, client: FakeS3Client) -> None:
        fs = s3.configure(client, "absent")
        with pytest.raises(AdapterError):
            _ = vfs.read(fs, "a.txt")
