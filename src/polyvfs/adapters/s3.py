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

"""S3 backend over an injected boto3 client.

Keys are ``<prefix><path>``. Directories are implicit: a directory exists
when any key lives below it. ``create_directory`` writes an empty marker
object whose key ends with ``/`` so empty directories survive listing.

Visibility is applied as a canned ACL on each object and also recorded in a
:class:`~polyvfs.adapters.visibility.VisibilityStore`. Entries without an
explicit visibility inherit it from the nearest ancestor, and everything
defaults to public.

Example usage::

    import boto3

    fs = s3.configure(boto3.client("s3"), "uploads", prefix="tenant-a/")
    with vfs.write_stream(fs, "big.bin") as writer:
        writer.write_all(produce_chunks())
"""

# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false
# pyright: reportUnknownArgumentType=false, reportUnusedCallResult=false
# pyright: reportArgumentType=false, reportAttributeAccessIssue=false

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Final, Self

from botocore.exceptions import ClientError

from ..errors import (
    AdapterError,
    DirectoryNotEmpty,
    DirectoryNotFound,
    FileNotFound,
    PermissionDenied,
    UnsupportedOperation,
)
from ..filesystem import (
    AccessMode,
    DirectoryOptions,
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Stat,
    StreamOptions,
    Visibility,
    WriteOptions,
)
from ..filesystem._path import ancestors, basename, strip_directory
from ..filesystem._streams import IteratorByteReader
from ..logging import StructuredLogger, get_logger
from .visibility import InMemoryVisibilityStore, VisibilityStore

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

__all__ = [
    "MIN_PART_SIZE",
    "S3Adapter",
    "S3Config",
    "S3MultipartWriter",
    "configure",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "s3"})

# S3 rejects non-final multipart parts below 5 MiB.
MIN_PART_SIZE: Final[int] = 5 * 1024 * 1024
_DELETE_BATCH: Final[int] = 1000
_NOT_FOUND_CODES: Final[frozenset[str]] = frozenset(
    {"404", "NoSuchKey", "NotFound"}
)
_DENIED_CODES: Final[frozenset[str]] = frozenset({"403", "AccessDenied"})
_ACL: Final[dict[Visibility, str]] = {
    Visibility.PUBLIC: "public-read",
    Visibility.PRIVATE: "private",
}


@dataclass(slots=True, frozen=True)
class S3Config:
    """Configuration of an S3 filesystem.

    Attributes:
        client: Boto3 S3 client.
        bucket: Bucket name.
        prefix: Key prefix prepended to every path, normally ending in ``/``.
        visibility_store: Side table of explicit visibility.
        part_size: Multipart part size for streamed writes.
    """

    client: S3Client
    bucket: str
    prefix: str = ""
    visibility_store: VisibilityStore = field(default_factory=InMemoryVisibilityStore)
    part_size: int = MIN_PART_SIZE

    def __post_init__(self) -> None:
        if self.part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be at least {MIN_PART_SIZE} bytes.")

    @property
    def namespace(self) -> str:
        return f"{self.bucket}/{self.prefix}"

    def key(self, path: str) -> str:
        return f"{self.prefix}{path}"

    def directory_key(self, path: str) -> str:
        directory = strip_directory(path)
        return f"{self.prefix}{directory}/" if directory else self.prefix


def _config(config: object) -> S3Config:
    if not isinstance(config, S3Config):
        raise TypeError(f"Expected S3Config, got {type(config).__name__}.")
    return config


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


@contextmanager
def client_errors(path: str, operation: str) -> Iterator[None]:
    """Map botocore client errors onto typed errors."""

    try:
        yield
    except ClientError as error:
        code = _error_code(error)
        if code in _NOT_FOUND_CODES:
            raise FileNotFound(path) from error
        if code in _DENIED_CODES:
            raise PermissionDenied(path, operation) from error
        raise AdapterError(S3Adapter.name, f"{operation}: {code or error}") from error


def _head(cfg: S3Config, path: str) -> dict[str, Any] | None:
    try:
        return dict(cfg.client.head_object(Bucket=cfg.bucket, Key=cfg.key(path)))
    except ClientError as error:
        if _error_code(error) in _NOT_FOUND_CODES:
            return None
        raise


def _iter_keys(
    cfg: S3Config, prefix: str, *, delimiter: str | None = None
) -> Iterator[tuple[list[dict[str, Any]], list[dict[str, Any]]]]:
    """Yield ``(contents, common_prefixes)`` for each listing page."""

    kwargs: dict[str, Any] = {"Bucket": cfg.bucket, "Prefix": prefix}
    if delimiter is not None:
        kwargs["Delimiter"] = delimiter
    while True:
        page = cfg.client.list_objects_v2(**kwargs)
        yield list(page.get("Contents", [])), list(page.get("CommonPrefixes", []))
        if not page.get("IsTruncated"):
            return
        kwargs["ContinuationToken"] = page["NextContinuationToken"]


def _all_keys(cfg: S3Config, prefix: str) -> list[str]:
    return [
        str(item["Key"])
        for contents, _ in _iter_keys(cfg, prefix)
        for item in contents
    ]


def _delete_keys(cfg: S3Config, keys: Iterable[str]) -> None:
    batch: list[dict[str, str]] = []
    for key in keys:
        batch.append({"Key": key})
        if len(batch) == _DELETE_BATCH:
            cfg.client.delete_objects(Bucket=cfg.bucket, Delete={"Objects": batch})
            batch = []
    if batch:
        cfg.client.delete_objects(Bucket=cfg.bucket, Delete={"Objects": batch})


def _directory_exists(cfg: S3Config, path: str) -> bool:
    if not strip_directory(path):
        return True
    page = cfg.client.list_objects_v2(
        Bucket=cfg.bucket, Prefix=cfg.directory_key(path), MaxKeys=1
    )
    return bool(page.get("Contents") or page.get("CommonPrefixes"))


def _mtime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return datetime.now(UTC)


def _effective_visibility(cfg: S3Config, path: str) -> Visibility:
    store = cfg.visibility_store
    candidates = [path, *ancestors(path)] if path else [""]
    for candidate in candidates:
        explicit = store.get(cfg.namespace, candidate)
        if explicit is not None:
            return explicit
    return Visibility.PUBLIC


def _put(
    cfg: S3Config, path: str, body: bytes, visibility: Visibility | None
) -> None:
    kwargs: dict[str, Any] = {"Bucket": cfg.bucket, "Key": cfg.key(path), "Body": body}
    if visibility is not None:
        kwargs["ACL"] = _ACL[visibility]
    cfg.client.put_object(**kwargs)
    if visibility is not None:
        cfg.visibility_store.set(cfg.namespace, path, visibility)


@dataclass(slots=True)
class S3MultipartWriter:
    """ByteWriter uploading through an S3 multipart upload.

    Bytes are buffered until a full part is available. The upload is only
    started once the first part is full, so small objects are written with a
    single ``put_object``. Nothing becomes visible before ``close()``, and
    ``abort()`` cancels the pending upload.
    """

    _config: S3Config
    _path: str
    _visibility: Visibility | None = None
    _buffer: bytearray = field(default_factory=bytearray, init=False)
    _upload_id: str | None = field(default=None, init=False)
    _parts: list[dict[str, Any]] = field(default_factory=list, init=False)
    _bytes_written: int = field(default=0, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def path(self) -> str:
        return self._path

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def closed(self) -> bool:
        return self._closed

    def _start(self) -> str:
        if self._upload_id is None:
            cfg = self._config
            kwargs: dict[str, Any] = {"Bucket": cfg.bucket, "Key": cfg.key(self._path)}
            if self._visibility is not None:
                kwargs["ACL"] = _ACL[self._visibility]
            with client_errors(self._path, "write_stream"):
                response = cfg.client.create_multipart_upload(**kwargs)
            self._upload_id = str(response["UploadId"])
        return self._upload_id

    def _upload(self, body: bytes) -> None:
        upload_id = self._start()
        cfg = self._config
        number = len(self._parts) + 1
        with client_errors(self._path, "write_stream"):
            response = cfg.client.upload_part(
                Bucket=cfg.bucket,
                Key=cfg.key(self._path),
                UploadId=upload_id,
                PartNumber=number,
                Body=body,
            )
        self._parts.append({"ETag": response["ETag"], "PartNumber": number})

    def seed_from_existing(self, size: int) -> None:
        """Start from the current object, for append mode.

        Large objects are copied server side as the first part; small ones
        are read into the buffer.
        """

        cfg = self._config
        if size >= cfg.part_size:
            upload_id = self._start()
            with client_errors(self._path, "write_stream"):
                response = cfg.client.upload_part_copy(
                    Bucket=cfg.bucket,
                    Key=cfg.key(self._path),
                    UploadId=upload_id,
                    PartNumber=1,
                    CopySource={"Bucket": cfg.bucket, "Key": cfg.key(self._path)},
                )
            etag = response["CopyPartResult"]["ETag"]
            self._parts.append({"ETag": etag, "PartNumber": 1})
            return
        with client_errors(self._path, "write_stream"):
            body = cfg.client.get_object(Bucket=cfg.bucket, Key=cfg.key(self._path))["Body"]
            self._buffer.extend(body.read())

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        self._buffer.extend(data)
        self._bytes_written += len(data)
        part_size = self._config.part_size
        while len(self._buffer) >= part_size:
            self._upload(bytes(self._buffer[:part_size]))
            del self._buffer[:part_size]
        return len(data)

    def write_all(self, chunks: Iterable[bytes]) -> int:
        total = 0
        for chunk in chunks:
            total += self.write(chunk)
        return total

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        if self._upload_id is not None:
            cfg = self._config
            with client_errors(self._path, "write_stream"):
                cfg.client.abort_multipart_upload(
                    Bucket=cfg.bucket, Key=cfg.key(self._path), UploadId=self._upload_id
                )
            logger.debug(
                "Aborted multipart upload.",
                event="s3.multipart.abort",
                context={"path": self._path, "upload_id": self._upload_id},
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        cfg = self._config
        if self._upload_id is None:
            with client_errors(self._path, "write_stream"):
                _put(cfg, self._path, bytes(self._buffer), self._visibility)
            self._buffer.clear()
            return
        try:
            if self._buffer:
                self._upload(bytes(self._buffer))
                self._buffer.clear()
            with client_errors(self._path, "write_stream"):
                cfg.client.complete_multipart_upload(
                    Bucket=cfg.bucket,
                    Key=cfg.key(self._path),
                    UploadId=self._upload_id,
                    MultipartUpload={"Parts": self._parts},
                )
        except BaseException:
            self._closed = False
            self.abort()
            raise
        if self._visibility is not None:
            cfg.visibility_store.set(cfg.namespace, self._path, self._visibility)
        logger.debug(
            "Completed multipart upload.",
            event="s3.multipart.complete",
            context={"path": self._path, "parts": len(self._parts)},
        )


@dataclass(frozen=True, slots=True)
class S3Adapter:
    """Adapter for an S3 bucket. Append, truncate and utime are not provided."""

    name: ClassVar[str] = "s3"
    versioning: ClassVar[None] = None

    def unsupported_operations(self) -> frozenset[Operation]:
        return frozenset()

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        with client_errors(path, "write"):
            _put(cfg, path, content, opts.visibility)

    def read(self, config: object, path: str) -> bytes:
        cfg = _config(config)
        with client_errors(path, "read"):
            body = cfg.client.get_object(Bucket=cfg.bucket, Key=cfg.key(path))["Body"]
            try:
                return bytes(body.read())
            finally:
                body.close()

    def read_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> IteratorByteReader:
        cfg = _config(config)
        with client_errors(path, "read_stream"):
            body = cfg.client.get_object(Bucket=cfg.bucket, Key=cfg.key(path))["Body"]
        return IteratorByteReader(
            path,
            iter(body.iter_chunks(chunk_size=opts.chunk_size)),
            opts.chunk_size,
            body.close,
        )

    def write_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> S3MultipartWriter:
        cfg = _config(config)
        writer = S3MultipartWriter(cfg, path, opts.visibility)
        if opts.mode == "append":
            with client_errors(path, "write_stream"):
                head = _head(cfg, path)
            if head is not None:
                writer.seed_from_existing(int(head.get("ContentLength", 0)))
        return writer

    def delete(self, config: object, path: str) -> None:
        cfg = _config(config)
        with client_errors(path, "delete"):
            cfg.client.delete_object(Bucket=cfg.bucket, Key=cfg.key(path))
        cfg.visibility_store.delete(cfg.namespace, [path])

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        if source == destination:
            if not self.file_exists(config, source):
                raise FileNotFound(source)
            return
        self.copy(config, source, destination, opts)
        self.delete(config, source)

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        self._copy_object(cfg, source, cfg, destination, opts)

    def copy_between(
        self,
        source_config: object,
        source: str,
        destination_config: object,
        destination: str,
        opts: WriteOptions,
    ) -> None:
        src = _config(source_config)
        dst = _config(destination_config)
        if src.client is not dst.client:
            raise UnsupportedOperation(Operation.COPY_BETWEEN.value, self.name)
        self._copy_object(src, source, dst, destination, opts)

    @staticmethod
    def _copy_object(
        source_config: S3Config,
        source: str,
        destination_config: S3Config,
        destination: str,
        opts: WriteOptions,
    ) -> None:
        visibility = opts.visibility or source_config.visibility_store.get(
            source_config.namespace, source
        )
        kwargs: dict[str, Any] = {
            "Bucket": destination_config.bucket,
            "Key": destination_config.key(destination),
            "CopySource": {
                "Bucket": source_config.bucket,
                "Key": source_config.key(source),
            },
        }
        if visibility is not None:
            kwargs["ACL"] = _ACL[visibility]
        with client_errors(source, "copy"):
            destination_config.client.copy_object(**kwargs)
        if visibility is not None:
            destination_config.visibility_store.set(
                destination_config.namespace, destination, visibility
            )

    def file_exists(self, config: object, path: str) -> bool:
        cfg = _config(config)
        with client_errors(path, "file_exists"):
            return _head(cfg, path) is not None

    def list_contents(self, config: object, path: str) -> list[Stat]:
        cfg = _config(config)
        prefix = cfg.directory_key(path)
        children: dict[str, Stat] = {}
        marker_seen = False
        with client_errors(path, "list_contents"):
            for contents, prefixes in _iter_keys(cfg, prefix, delimiter="/"):
                for item in prefixes:
                    child = str(item["Prefix"])[len(cfg.prefix) :].rstrip("/")
                    children[basename(child)] = DirStat(
                        name=basename(child),
                        size=0,
                        mtime=datetime.now(UTC),
                        visibility=_effective_visibility(cfg, child),
                    )
                for item in contents:
                    key = str(item["Key"])
                    if key == prefix:
                        marker_seen = True
                        continue
                    child = key[len(cfg.prefix) :]
                    children[basename(child)] = FileStat(
                        name=basename(child),
                        size=int(item.get("Size", 0)),
                        mtime=_mtime(item.get("LastModified")),
                        visibility=_effective_visibility(cfg, child),
                    )
        if not children and not marker_seen and strip_directory(path):
            raise DirectoryNotFound(path)
        return [children[name] for name in sorted(children)]

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        directory = strip_directory(path)
        if not directory:
            return
        with client_errors(path, "create_directory"):
            cfg.client.put_object(Bucket=cfg.bucket, Key=cfg.directory_key(path), Body=b"")
        visibility = opts.directory_visibility or opts.visibility
        if visibility is not None:
            cfg.visibility_store.set(cfg.namespace, directory, visibility)

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        prefix = cfg.directory_key(path)
        with client_errors(path, "delete_directory"):
            keys = _all_keys(cfg, prefix)
            nested = [key for key in keys if key != prefix]
            if strip_directory(path) and not keys:
                raise DirectoryNotFound(path)
            if nested and not opts.recursive:
                raise DirectoryNotEmpty(path)
            _delete_keys(cfg, keys)
        cfg.visibility_store.delete_below(cfg.namespace, strip_directory(path))

    def clear(self, config: object) -> None:
        cfg = _config(config)
        with client_errors("", "clear"):
            _delete_keys(cfg, _all_keys(cfg, cfg.prefix))
        cfg.visibility_store.delete_below(cfg.namespace, "")

    def stat(self, config: object, path: str) -> Stat:
        cfg = _config(config)
        with client_errors(path, "stat"):
            head = _head(cfg, path) if path else None
            if head is not None:
                return FileStat(
                    name=basename(path),
                    size=int(head.get("ContentLength", 0)),
                    mtime=_mtime(head.get("LastModified")),
                    visibility=_effective_visibility(cfg, path),
                )
            if _directory_exists(cfg, path):
                return DirStat(
                    name=basename(path),
                    size=0,
                    mtime=datetime.now(UTC),
                    visibility=_effective_visibility(cfg, path),
                )
        raise FileNotFound(path)

    def access(
        self, config: object, path: str, modes: frozenset[AccessMode]
    ) -> None:
        _ = self.stat(config, path)

    def set_visibility(
        self, config: object, path: str, visibility: Visibility
    ) -> None:
        cfg = _config(config)
        with client_errors(path, "set_visibility"):
            if path and _head(cfg, path) is not None:
                cfg.client.put_object_acl(
                    Bucket=cfg.bucket, Key=cfg.key(path), ACL=_ACL[visibility]
                )
            elif not _directory_exists(cfg, path):
                raise FileNotFound(path)
        cfg.visibility_store.set(cfg.namespace, path, visibility)

    def visibility(self, config: object, path: str) -> Visibility:
        return self.stat(config, path).visibility


ADAPTER: Final[S3Adapter] = S3Adapter()


def configure(
    client: S3Client,
    bucket: str,
    *,
    prefix: str = "",
    visibility_store: VisibilityStore | None = None,
    part_size: int = MIN_PART_SIZE,
) -> FilesystemHandle:
    """Return a handle onto ``bucket`` below ``prefix``.

    A non-empty ``prefix`` is given a trailing ``/`` when it lacks one.
    """

    if prefix and not prefix.endswith("/"):
        prefix = f"{prefix}/"
    return FilesystemHandle(
        adapter=ADAPTER,
        config=S3Config(
            client=client,
            bucket=bucket,
            prefix=prefix,
            visibility_store=visibility_store or InMemoryVisibilityStore(),
            part_size=part_size,
        ),
    )
