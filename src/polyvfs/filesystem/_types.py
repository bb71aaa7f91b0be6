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

"""Value types shared by the dispatcher and the adapters.

Types are organized into:

- **Handles**: ``FilesystemHandle`` - an adapter paired with its configuration
- **Metadata types**: ``FileStat``, ``DirStat``, ``Visibility`` - listing and
  stat results produced by adapters
- **Versioning types**: ``Revision`` - canonical revision record
- **Identifiers**: ``Operation``, ``AccessMode``
- **Option bags**: ``WriteOptions``, ``DirectoryOptions``, ``StreamOptions``,
  ``VersionOptions`` - immutable per-call options handed to adapters

Constants:

- ``DEFAULT_CHUNK_SIZE``: Streaming and copy granularity (64 KiB)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from ._protocol import Adapter

DEFAULT_CHUNK_SIZE: Final[int] = 65_536

WriteMode = Literal["overwrite", "append"]


class Visibility(StrEnum):
    """Portable two-state permission model."""

    PUBLIC = "public"
    PRIVATE = "private"


class AccessMode(StrEnum):
    """Access checks understood by ``access``."""

    READ = "read"
    WRITE = "write"


class Operation(StrEnum):
    """Identifier of every operation on the dispatch surface."""

    WRITE = "write"
    READ = "read"
    READ_STREAM = "read_stream"
    WRITE_STREAM = "write_stream"
    DELETE = "delete"
    MOVE = "move"
    COPY = "copy"
    COPY_BETWEEN = "copy_between"
    FILE_EXISTS = "file_exists"
    LIST_CONTENTS = "list_contents"
    CREATE_DIRECTORY = "create_directory"
    DELETE_DIRECTORY = "delete_directory"
    CLEAR = "clear"
    SET_VISIBILITY = "set_visibility"
    VISIBILITY = "visibility"
    STAT = "stat"
    ACCESS = "access"
    APPEND = "append"
    TRUNCATE = "truncate"
    UTIME = "utime"
    COMMIT = "commit"
    REVISIONS = "revisions"
    READ_REVISION = "read_revision"
    ROLLBACK = "rollback"


VERSIONING_OPERATIONS: Final[frozenset[Operation]] = frozenset(
    {
        Operation.COMMIT,
        Operation.REVISIONS,
        Operation.READ_REVISION,
        Operation.ROLLBACK,
    }
)


@dataclass(slots=True, frozen=True)
class FileStat:
    """Metadata for a file.

    Attributes:
        name: Last path segment; empty for the root.
        size: Size in bytes.
        mtime: Last modification time, timezone-aware UTC.
        visibility: Portable visibility of the file.
    """

    name: str
    size: int
    mtime: datetime
    visibility: Visibility


@dataclass(slots=True, frozen=True)
class DirStat:
    """Metadata for a directory. ``size`` is backend-defined, usually 0."""

    name: str
    size: int
    mtime: datetime
    visibility: Visibility


type Stat = FileStat | DirStat


@dataclass(slots=True, frozen=True)
class Revision:
    """Canonical revision record returned by ``revisions``.

    ``sha`` holds the backend's natural revision identifier as a string: a
    commit hash for git, a version or checkpoint number for others. Pass it
    back unchanged to ``read_revision`` and ``rollback``.
    """

    sha: str
    author_name: str
    author_email: str
    message: str
    timestamp: datetime


@dataclass(slots=True, frozen=True)
class WriteOptions:
    """Options for ``write``, ``append``, ``move`` and ``copy``."""

    visibility: Visibility | None = None
    directory_visibility: Visibility | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")


@dataclass(slots=True, frozen=True)
class DirectoryOptions:
    """Options for ``create_directory`` and ``delete_directory``."""

    visibility: Visibility | None = None
    directory_visibility: Visibility | None = None
    recursive: bool = False


@dataclass(slots=True, frozen=True)
class StreamOptions:
    """Options for ``read_stream`` and ``write_stream``."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    mode: WriteMode = "overwrite"
    visibility: Visibility | None = None

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")


@dataclass(slots=True, frozen=True)
class VersionOptions:
    """Options for the versioning operations.

    ``since`` and ``until`` are inclusive bounds on ``Revision.timestamp``.
    ``path`` scopes a rollback to a single file.
    """

    limit: int | None = None
    since: datetime | None = None
    until: datetime | None = None
    path: str | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative.")


@dataclass(slots=True, frozen=True)
class FilesystemHandle:
    """An adapter paired with the configuration of one filesystem instance.

    Handles are immutable and compare structurally: two handles are the same
    filesystem when both the adapter and the configuration are equal.

    Example::

        from polyvfs.adapters import memory

        fs = memory.configure()
        fs.backend_type  # "memory"
    """

    adapter: Adapter
    config: object

    @property
    def backend_type(self) -> str:
        """Name of the backend type, used in errors and logs."""

        return self.adapter.name


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "VERSIONING_OPERATIONS",
    "AccessMode",
    "DirStat",
    "DirectoryOptions",
    "FileStat",
    "FilesystemHandle",
    "Operation",
    "Revision",
    "Stat",
    "StreamOptions",
    "Visibility",
    "VersionOptions",
    "WriteMode",
    "WriteOptions",
]
