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

"""Named filesystems with lazily built, memoized handles.

Subclass :class:`Filesystem` and override :meth:`Filesystem.configure`, or
pass a factory. The factory runs once, on first use, even when several
threads race for the handle::

    class Uploads(Filesystem):
        def configure(self) -> FilesystemHandle:
            return local.configure(os.environ["UPLOADS_ROOT"])

    uploads = Uploads()
    uploads.write("avatar.png", data)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from . import _dispatch
from ._copy import copy_between
from ._registry import supports
from ._streams import ByteReader, ByteWriter
from ._types import (
    DEFAULT_CHUNK_SIZE,
    AccessMode,
    FilesystemHandle,
    Operation,
    Revision,
    Stat,
    Visibility,
    WriteMode,
)

__all__ = ["Filesystem"]


class Filesystem:
    """A filesystem bound to one handle, exposing the dispatch functions as methods."""

    def __init__(
        self, factory: Callable[[], FilesystemHandle] | None = None
    ) -> None:
        self._factory = factory
        self._handle: FilesystemHandle | None = None
        self._lock = threading.Lock()

    def configure(self) -> FilesystemHandle:
        """Build the handle. Called at most once per instance."""

        if self._factory is None:
            raise NotImplementedError(
                f"{type(self).__name__} needs a factory or a configure() override."
            )
        return self._factory()

    @property
    def handle(self) -> FilesystemHandle:
        handle = self._handle
        if handle is not None:
            return handle
        with self._lock:
            if self._handle is None:
                self._handle = self.configure()
            return self._handle

    def supports(self, operation: Operation | str) -> bool:
        return supports(self.handle, operation)

    def write(
        self,
        path: str,
        content: _dispatch.Content,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
    ) -> None:
        _dispatch.write(
            self.handle,
            path,
            content,
            visibility=visibility,
            directory_visibility=directory_visibility,
        )

    def read(self, path: str) -> bytes:
        return _dispatch.read(self.handle, path)

    def read_stream(
        self, path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> ByteReader:
        return _dispatch.read_stream(self.handle, path, chunk_size=chunk_size)

    def write_stream(
        self,
        path: str,
        *,
        mode: WriteMode = "overwrite",
        visibility: Visibility | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ByteWriter:
        return _dispatch.write_stream(
            self.handle, path, mode=mode, visibility=visibility, chunk_size=chunk_size
        )

    def delete(self, path: str) -> None:
        _dispatch.delete(self.handle, path)

    def move(
        self,
        source: str,
        destination: str,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
    ) -> None:
        _dispatch.move(
            self.handle,
            source,
            destination,
            visibility=visibility,
            directory_visibility=directory_visibility,
        )

    def copy(
        self,
        source: str,
        destination: str,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
    ) -> None:
        _dispatch.copy(
            self.handle,
            source,
            destination,
            visibility=visibility,
            directory_visibility=directory_visibility,
        )

    def copy_to(
        self,
        source: str,
        destination: Filesystem | FilesystemHandle,
        destination_path: str,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Copy ``source`` into another filesystem."""

        target = destination.handle if isinstance(destination, Filesystem) else destination
        copy_between(
            self.handle,
            source,
            target,
            destination_path,
            visibility=visibility,
            directory_visibility=directory_visibility,
            chunk_size=chunk_size,
        )

    def file_exists(self, path: str) -> bool:
        return _dispatch.file_exists(self.handle, path)

    def list_contents(self, path: str = "") -> list[Stat]:
        return _dispatch.list_contents(self.handle, path)

    def create_directory(
        self,
        path: str,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
    ) -> None:
        _dispatch.create_directory(
            self.handle,
            path,
            visibility=visibility,
            directory_visibility=directory_visibility,
        )

    def delete_directory(self, path: str, *, recursive: bool = False) -> None:
        _dispatch.delete_directory(self.handle, path, recursive=recursive)

    def clear(self) -> None:
        _dispatch.clear(self.handle)

    def set_visibility(self, path: str, visibility: Visibility) -> None:
        _dispatch.set_visibility(self.handle, path, visibility)

    def visibility(self, path: str) -> Visibility:
        return _dispatch.visibility(self.handle, path)

    def stat(self, path: str) -> Stat:
        return _dispatch.stat(self.handle, path)

    def access(self, path: str, modes: Iterable[AccessMode | str]) -> None:
        _dispatch.access(self.handle, path, modes)

    def append(
        self,
        path: str,
        content: _dispatch.Content,
        *,
        visibility: Visibility | None = None,
        directory_visibility: Visibility | None = None,
    ) -> None:
        _dispatch.append(
            self.handle,
            path,
            content,
            visibility=visibility,
            directory_visibility=directory_visibility,
        )

    def truncate(self, path: str, size: int) -> None:
        _dispatch.truncate(self.handle, path, size)

    def utime(self, path: str, mtime: datetime | float) -> None:
        _dispatch.utime(self.handle, path, mtime)

    def commit(self, message: str | None = None) -> None:
        _dispatch.commit(self.handle, message)

    def revisions(
        self,
        path: str = "",
        *,
        limit: int | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Revision]:
        return _dispatch.revisions(
            self.handle, path, limit=limit, since=since, until=until
        )

    def read_revision(self, path: str, revision: str) -> bytes:
        return _dispatch.read_revision(self.handle, path, revision)

    def rollback(self, revision: str, *, path: str | None = None) -> None:
        _dispatch.rollback(self.handle, revision, path=path)
