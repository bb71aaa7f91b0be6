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

"""Adapter protocol consumed by the dispatcher.

Backends implement :class:`Adapter`. Every method takes the backend
configuration first and receives paths that were already normalized. The
optional capabilities are described by the smaller protocols below. Whether
an adapter provides one is decided by the capability registry, which checks
both the adapter's ``unsupported_operations()`` and the method signature.

Adapters raise typed :class:`~polyvfs.errors.VfsError` kinds when they know
the failure (a missing key is ``FileNotFound``); anything else they raise is
converted by the dispatcher.

Example::

    @dataclass(frozen=True, slots=True)
    class TapeAdapter:
        name: ClassVar[str] = "tape"
        versioning: ClassVar[Versioning | None] = None

        def unsupported_operations(self) -> frozenset[Operation]:
            return frozenset({Operation.APPEND})

        def write(self, config, path, content, opts): ...
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from ._streams import ByteReader, ByteWriter
from ._types import (
    AccessMode,
    DirectoryOptions,
    Operation,
    Stat,
    StreamOptions,
    VersionOptions,
    Visibility,
    WriteOptions,
)

__all__ = [
    "AccessChecking",
    "Adapter",
    "Appending",
    "CrossConfigCopying",
    "ReadStreaming",
    "Statting",
    "Truncating",
    "Utiming",
    "Versioning",
    "VisibilityControl",
    "WriteStreaming",
]


@runtime_checkable
class Versioning(Protocol):
    """Versioning implementation bound to a backend type.

    ``revisions`` may return any revision-like values (``Revision``
    instances, mappings or objects) ordered most recent first; the
    dispatcher normalizes and filters them. ``supports_path_rollback`` tells
    the dispatcher whether ``rollback`` honors ``opts.path`` itself.
    """

    @property
    def supports_path_rollback(self) -> bool: ...

    def commit(
        self, config: object, message: str | None, opts: VersionOptions
    ) -> None: ...

    def revisions(
        self, config: object, path: str, opts: VersionOptions
    ) -> Sequence[object]: ...

    def read_revision(
        self, config: object, path: str, revision: str, opts: VersionOptions
    ) -> bytes: ...

    def rollback(self, config: object, revision: str, opts: VersionOptions) -> None: ...


@runtime_checkable
class Adapter(Protocol):
    """Core operations every backend implements."""

    @property
    def name(self) -> str:
        """Backend type identifier used in errors and logs."""
        ...

    @property
    def versioning(self) -> Versioning | None:
        """Bound versioning implementation, or ``None``."""
        ...

    def unsupported_operations(self) -> frozenset[Operation]:
        """Operations this backend refuses even if it has the method."""
        ...

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None: ...

    def read(self, config: object, path: str) -> bytes: ...

    def delete(self, config: object, path: str) -> None: ...

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None: ...

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None: ...

    def file_exists(self, config: object, path: str) -> bool: ...

    def list_contents(self, config: object, path: str) -> list[Stat]: ...

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None: ...

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None: ...

    def clear(self, config: object) -> None: ...


class ReadStreaming(Protocol):
    def read_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> ByteReader: ...


class WriteStreaming(Protocol):
    def write_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> ByteWriter: ...


class Statting(Protocol):
    def stat(self, config: object, path: str) -> Stat: ...


class AccessChecking(Protocol):
    def access(
        self, config: object, path: str, modes: frozenset[AccessMode]
    ) -> None: ...


class Appending(Protocol):
    def append(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None: ...


class Truncating(Protocol):
    def truncate(self, config: object, path: str, size: int) -> None: ...


class Utiming(Protocol):
    def utime(self, config: object, path: str, mtime: datetime) -> None: ...


class CrossConfigCopying(Protocol):
    """Native copy between two configurations of the same backend type."""

    def copy_between(
        self,
        source_config: object,
        source: str,
        destination_config: object,
        destination: str,
        opts: WriteOptions,
    ) -> None: ...


class VisibilityControl(Protocol):
    def set_visibility(
        self, config: object, path: str, visibility: Visibility
    ) -> None: ...

    def visibility(self, config: object, path: str) -> Visibility: ...
