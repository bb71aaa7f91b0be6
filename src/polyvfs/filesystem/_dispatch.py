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

"""Public dispatch surface.

Every function takes a :class:`FilesystemHandle` first and follows the same
sequence: validate and normalize the path arguments, check that the backend
supports the operation, call the adapter, and convert whatever the adapter
raises into a typed :class:`~polyvfs.errors.VfsError`. Nothing is retried.

Example::

    from polyvfs import filesystem as vfs
    from polyvfs.adapters import memory

    fs = memory.configure()
    vfs.write(fs, "notes/today.txt", b"hello")
    assert vfs.read(fs, "notes/today.txt") == b"hello"
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import cast

from ..logging import StructuredLogger, get_logger
from ._convert import GuardedByteReader, GuardedByteWriter, converted_errors
from ._path import ROOT, SEPARATOR, normalize
from ._protocol import (
    AccessChecking,
    Appending,
    ReadStreaming,
    Statting,
    Truncating,
    Utiming,
    VisibilityControl,
    WriteStreaming,
)
from ._registry import DEFAULT_REGISTRY
from ._streams import ByteReader, ByteWriter
from ._types import (
    DEFAULT_CHUNK_SIZE,
    AccessMode,
    DirectoryOptions,
    FilesystemHandle,
    Operation,
    Revision,
    Stat,
    StreamOptions,
    VersionOptions,
    Visibility,
    WriteMode,
    WriteOptions,
)
from ._validation import (
    checked_arguments,
    directory_path,
    entry_path,
    file_path,
    to_bytes,
)
from ._versioning import (
    filter_revisions,
    normalize_revision,
    normalize_timestamp,
    require_versioning,
)

__all__ = [
    "access",
    "append",
    "clear",
    "commit",
    "copy",
    "create_directory",
    "delete",
    "delete_directory",
    "file_exists",
    "list_contents",
    "move",
    "read",
    "read_revision",
    "read_stream",
    "revisions",
    "rollback",
    "set_visibility",
    "stat",
    "truncate",
    "utime",
    "visibility",
    "write",
    "write_stream",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "dispatch"})

type Content = bytes | bytearray | memoryview | str


def _invoke[T](
    handle: FilesystemHandle,
    operation: Operation,
    call: Callable[[], T],
    **context: object,
) -> T:
    DEFAULT_REGISTRY.require(handle, operation)
    logger.debug(
        "Dispatching operation.",
        event="dispatch.call",
        context={
            "backend_type": handle.backend_type,
            "operation": operation.value,
            **context,
        },
    )
    with converted_errors(handle.backend_type, operation.value):
        return call()


def write(
    fs: FilesystemHandle,
    path: str,
    content: Content,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
) -> None:
    """Write ``content`` to ``path``, replacing any existing file."""

    target = file_path(path)
    with checked_arguments(target):
        data = to_bytes(content)
        opts = WriteOptions(
            visibility=visibility, directory_visibility=directory_visibility
        )
    _invoke(
        fs,
        Operation.WRITE,
        lambda: fs.adapter.write(fs.config, target, data, opts),
        path=target,
    )


def read(fs: FilesystemHandle, path: str) -> bytes:
    """Return the full content of ``path``."""

    target = file_path(path)
    return _invoke(
        fs, Operation.READ, lambda: fs.adapter.read(fs.config, target), path=target
    )


def read_stream(
    fs: FilesystemHandle, path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> ByteReader:
    """Open ``path`` for streamed reading.

    Iterating the returned reader yields chunks of ``chunk_size`` bytes.
    """

    target = file_path(path)
    with checked_arguments(target):
        opts = StreamOptions(chunk_size=chunk_size)
    reader = _invoke(
        fs,
        Operation.READ_STREAM,
        lambda: cast(ReadStreaming, fs.adapter).read_stream(fs.config, target, opts),
        path=target,
    )
    return GuardedByteReader(reader, fs.backend_type)


def write_stream(
    fs: FilesystemHandle,
    path: str,
    *,
    mode: WriteMode = "overwrite",
    visibility: Visibility | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ByteWriter:
    """Open ``path`` for streamed writing.

    The bytes become visible when the writer is closed. An exception inside
    the writer's ``with`` block aborts the write.
    """

    target = file_path(path)
    with checked_arguments(target):
        opts = StreamOptions(chunk_size=chunk_size, mode=mode, visibility=visibility)
    writer = _invoke(
        fs,
        Operation.WRITE_STREAM,
        lambda: cast(WriteStreaming, fs.adapter).write_stream(fs.config, target, opts),
        path=target,
    )
    return GuardedByteWriter(writer, fs.backend_type)


def delete(fs: FilesystemHandle, path: str) -> None:
    """Delete the file at ``path``."""

    target = file_path(path)
    _invoke(
        fs, Operation.DELETE, lambda: fs.adapter.delete(fs.config, target), path=target
    )


def move(
    fs: FilesystemHandle,
    source: str,
    destination: str,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
) -> None:
    """Move a file within one filesystem."""

    src = file_path(source)
    dst = file_path(destination)
    opts = WriteOptions(visibility=visibility, directory_visibility=directory_visibility)
    _invoke(
        fs,
        Operation.MOVE,
        lambda: fs.adapter.move(fs.config, src, dst, opts),
        source=src,
        destination=dst,
    )


def copy(
    fs: FilesystemHandle,
    source: str,
    destination: str,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
) -> None:
    """Copy a file within one filesystem."""

    src = file_path(source)
    dst = file_path(destination)
    opts = WriteOptions(visibility=visibility, directory_visibility=directory_visibility)
    _invoke(
        fs,
        Operation.COPY,
        lambda: fs.adapter.copy(fs.config, src, dst, opts),
        source=src,
        destination=dst,
    )


def file_exists(fs: FilesystemHandle, path: str) -> bool:
    """Return whether a file exists at ``path``.

    Directory paths (the root or a path with a trailing ``/``) never name a
    file, so they are answered without asking the backend.
    """

    target = normalize(path)
    if target == ROOT or target.endswith(SEPARATOR):
        DEFAULT_REGISTRY.require(fs, Operation.FILE_EXISTS)
        return False
    return _invoke(
        fs,
        Operation.FILE_EXISTS,
        lambda: fs.adapter.file_exists(fs.config, target),
        path=target,
    )


def list_contents(fs: FilesystemHandle, path: str = "") -> list[Stat]:
    """List the direct children of the directory at ``path``."""

    target = directory_path(path)
    return _invoke(
        fs,
        Operation.LIST_CONTENTS,
        lambda: list(fs.adapter.list_contents(fs.config, target)),
        path=target,
    )


def create_directory(
    fs: FilesystemHandle,
    path: str,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
) -> None:
    """Create the directory at ``path`` along with missing parents."""

    target = directory_path(path)
    opts = DirectoryOptions(
        visibility=visibility, directory_visibility=directory_visibility
    )
    _invoke(
        fs,
        Operation.CREATE_DIRECTORY,
        lambda: fs.adapter.create_directory(fs.config, target, opts),
        path=target,
    )


def delete_directory(
    fs: FilesystemHandle, path: str, *, recursive: bool = False
) -> None:
    """Delete the directory at ``path``.

    A non-empty directory is only removed when ``recursive`` is set.
    """

    target = directory_path(path)
    opts = DirectoryOptions(recursive=recursive)
    _invoke(
        fs,
        Operation.DELETE_DIRECTORY,
        lambda: fs.adapter.delete_directory(fs.config, target, opts),
        path=target,
        recursive=recursive,
    )


def clear(fs: FilesystemHandle) -> None:
    """Remove every file and directory from the filesystem."""

    _invoke(fs, Operation.CLEAR, lambda: fs.adapter.clear(fs.config))


def set_visibility(fs: FilesystemHandle, path: str, visibility: Visibility) -> None:
    target = entry_path(path)
    with checked_arguments(target):
        value = Visibility(visibility)
    _invoke(
        fs,
        Operation.SET_VISIBILITY,
        lambda: cast(VisibilityControl, fs.adapter).set_visibility(
            fs.config, target, value
        ),
        path=target,
        visibility=value.value,
    )


def visibility(fs: FilesystemHandle, path: str) -> Visibility:
    target = entry_path(path)
    return _invoke(
        fs,
        Operation.VISIBILITY,
        lambda: cast(VisibilityControl, fs.adapter).visibility(fs.config, target),
        path=target,
    )


def stat(fs: FilesystemHandle, path: str) -> Stat:
    """Return metadata for the file or directory at ``path``."""

    target = entry_path(path)
    return _invoke(
        fs,
        Operation.STAT,
        lambda: cast(Statting, fs.adapter).stat(fs.config, target),
        path=target,
    )


def access(
    fs: FilesystemHandle, path: str, modes: Iterable[AccessMode | str]
) -> None:
    """Raise ``PermissionDenied`` unless ``path`` allows every mode in ``modes``.

    An empty ``modes`` only checks that ``path`` exists.
    """

    target = entry_path(path)
    with checked_arguments(target):
        requested = frozenset(AccessMode(mode) for mode in modes)
    _invoke(
        fs,
        Operation.ACCESS,
        lambda: cast(AccessChecking, fs.adapter).access(fs.config, target, requested),
        path=target,
        modes=sorted(requested),
    )


def append(
    fs: FilesystemHandle,
    path: str,
    content: Content,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
) -> None:
    """Append ``content`` to ``path``, creating the file when missing."""

    target = file_path(path)
    with checked_arguments(target):
        data = to_bytes(content)
        opts = WriteOptions(
            visibility=visibility, directory_visibility=directory_visibility
        )
    _invoke(
        fs,
        Operation.APPEND,
        lambda: cast(Appending, fs.adapter).append(fs.config, target, data, opts),
        path=target,
    )


def truncate(fs: FilesystemHandle, path: str, size: int) -> None:
    """Shrink or zero-extend the file at ``path`` to ``size`` bytes."""

    target = file_path(path)
    with checked_arguments(target):
        size = operator.index(size)
        if size < 0:
            raise ValueError("size must be non-negative.")
    _invoke(
        fs,
        Operation.TRUNCATE,
        lambda: cast(Truncating, fs.adapter).truncate(fs.config, target, size),
        path=target,
        size=size,
    )


def utime(fs: FilesystemHandle, path: str, mtime: datetime | float) -> None:
    """Set the modification time of ``path``.

    ``mtime`` is a datetime (naive values are taken as UTC) or epoch seconds.
    """

    target = file_path(path)
    with checked_arguments(target):
        when = normalize_timestamp(mtime)
    _invoke(
        fs,
        Operation.UTIME,
        lambda: cast(Utiming, fs.adapter).utime(fs.config, target, when),
        path=target,
    )


def commit(fs: FilesystemHandle, message: str | None = None) -> None:
    """Record the current state of the filesystem as a new revision."""

    versioning = require_versioning(fs, Operation.COMMIT, registry=DEFAULT_REGISTRY)
    _invoke(
        fs,
        Operation.COMMIT,
        lambda: versioning.commit(fs.config, message, VersionOptions()),
    )


def revisions(
    fs: FilesystemHandle,
    path: str = "",
    *,
    limit: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[Revision]:
    """Return revisions touching ``path`` (all revisions for the root).

    Records are normalized to :class:`Revision`, ordered most recent first
    and filtered by the inclusive ``since``/``until`` bounds before ``limit``
    is applied.
    """

    target = entry_path(path)
    with checked_arguments(target):
        opts = VersionOptions(limit=limit, since=since, until=until)
    versioning = require_versioning(fs, Operation.REVISIONS, registry=DEFAULT_REGISTRY)
    raw = _invoke(
        fs,
        Operation.REVISIONS,
        lambda: list(versioning.revisions(fs.config, target, opts)),
        path=target,
    )
    normalized = [normalize_revision(item, fs.backend_type) for item in raw]
    return filter_revisions(normalized, opts)


def read_revision(fs: FilesystemHandle, path: str, revision: str) -> bytes:
    """Return the content ``path`` had at ``revision``."""

    target = file_path(path)
    versioning = require_versioning(
        fs, Operation.READ_REVISION, registry=DEFAULT_REGISTRY
    )
    return _invoke(
        fs,
        Operation.READ_REVISION,
        lambda: versioning.read_revision(
            fs.config, target, str(revision), VersionOptions()
        ),
        path=target,
        revision=str(revision),
    )


def rollback(
    fs: FilesystemHandle, revision: str, *, path: str | None = None
) -> None:
    """Restore the filesystem, or only ``path``, to ``revision``.

    When the backend cannot restore a single path itself, the content at
    ``revision`` is read and written back over the current file.
    """

    target = file_path(path) if path is not None else None
    versioning = require_versioning(fs, Operation.ROLLBACK, registry=DEFAULT_REGISTRY)
    opts = VersionOptions(path=target)

    if target is None or versioning.supports_path_rollback:
        _invoke(
            fs,
            Operation.ROLLBACK,
            lambda: versioning.rollback(fs.config, str(revision), opts),
            path=target,
            revision=str(revision),
        )
        return

    DEFAULT_REGISTRY.require(fs, Operation.WRITE)
    content = read_revision(fs, target, revision)
    _invoke(
        fs,
        Operation.ROLLBACK,
        lambda: fs.adapter.write(fs.config, target, content, WriteOptions()),
        path=target,
        revision=str(revision),
        strategy="read_then_write",
    )
