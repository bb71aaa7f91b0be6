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

"""In-memory backend with checkpoint versioning.

State lives in an :class:`InMemoryStore` owned by the caller. Passing the same
store to several ``configure()`` calls yields handles onto the same data::

    from polyvfs import filesystem as vfs
    from polyvfs.adapters import memory

    fs = memory.configure()
    vfs.write(fs, "a.txt", b"v1")
    vfs.commit(fs, "first")
    vfs.write(fs, "a.txt", b"v2")
    vfs.commit(fs, "second")
    [latest, first] = vfs.revisions(fs, "a.txt")
    assert vfs.read_revision(fs, "a.txt", first.sha) == b"v1"

Files default to private visibility; the root directory is public.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import ClassVar, Final

from ..clock import SYSTEM_CLOCK, WallClock
from ..errors import (
    AdapterError,
    DirectoryNotEmpty,
    DirectoryNotFound,
    FileNotFound,
    InvalidPath,
    NotDirectory,
    PermissionDenied,
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
    VersionOptions,
    Visibility,
    WriteOptions,
)
from ..filesystem._path import ancestors, basename, strip_directory
from ..filesystem._streams import MemoryByteReader, MemoryByteWriter
from ..logging import StructuredLogger, get_logger

__all__ = [
    "InMemoryAdapter",
    "InMemoryStore",
    "InMemoryVersioning",
    "MemoryConfig",
    "configure",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "memory"})


@dataclass(slots=True)
class _MemoryFile:
    content: bytes
    mtime: datetime
    visibility: Visibility


@dataclass(slots=True)
class _MemoryDirectory:
    mtime: datetime
    visibility: Visibility


@dataclass(slots=True, frozen=True)
class _Checkpoint:
    """Frozen copy of the store taken by ``commit``."""

    version_id: int
    message: str
    timestamp: datetime
    files: Mapping[str, _MemoryFile]
    directories: Mapping[str, _MemoryDirectory]


@dataclass(eq=False)
class InMemoryStore:
    """Mutable state behind in-memory filesystems.

    Stores compare by identity, so a handle's equality follows the store it
    points at. All access goes through ``lock``.
    """

    clock: WallClock = SYSTEM_CLOCK
    read_only: bool = False
    default_visibility: Visibility = Visibility.PRIVATE
    files: dict[str, _MemoryFile] = field(default_factory=dict)
    directories: dict[str, _MemoryDirectory] = field(default_factory=dict)
    checkpoints: list[_Checkpoint] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock)
    _next_version: int = 1

    def allocate_version(self) -> int:
        version = self._next_version
        self._next_version += 1
        return version


@dataclass(slots=True, frozen=True)
class MemoryConfig:
    store: InMemoryStore


def _store(config: object) -> InMemoryStore:
    if not isinstance(config, MemoryConfig):
        raise TypeError(f"Expected MemoryConfig, got {type(config).__name__}.")
    return config.store


def _guard_writable(store: InMemoryStore, path: str, operation: str) -> None:
    if store.read_only:
        raise PermissionDenied(path, operation)


def _is_directory(store: InMemoryStore, path: str) -> bool:
    if path == "" or path in store.directories:
        return True
    prefix = path + "/"
    return any(name.startswith(prefix) for name in store.files)


def _ensure_parents(
    store: InMemoryStore, path: str, visibility: Visibility | None
) -> None:
    now = store.clock.utcnow()
    for ancestor in reversed(ancestors(path)):
        if ancestor == "":
            continue
        if ancestor in store.files:
            raise NotDirectory(ancestor)
        if ancestor not in store.directories:
            store.directories[ancestor] = _MemoryDirectory(
                mtime=now, visibility=visibility or store.default_visibility
            )


def _put(
    store: InMemoryStore, path: str, content: bytes, opts: WriteOptions
) -> None:
    if _is_directory(store, path):
        raise InvalidPath(path, "is a directory")
    _ensure_parents(store, path, opts.directory_visibility)
    existing = store.files.get(path)
    visibility = opts.visibility or (
        existing.visibility if existing is not None else store.default_visibility
    )
    store.files[path] = _MemoryFile(
        content=content, mtime=store.clock.utcnow(), visibility=visibility
    )


def _get(store: InMemoryStore, path: str) -> _MemoryFile:
    entry = store.files.get(path)
    if entry is None:
        raise FileNotFound(path)
    return entry


@dataclass(frozen=True, slots=True)
class InMemoryVersioning:
    """Checkpoint versioning over an :class:`InMemoryStore`.

    ``commit`` freezes a copy of the whole store. Revisions are reported
    with integer version ids and epoch timestamps; restoring a single path
    is left to the dispatcher.
    """

    supports_path_rollback: ClassVar[bool] = False

    def commit(self, config: object, message: str | None, opts: VersionOptions) -> None:
        store = _store(config)
        with store.lock:
            checkpoint = _Checkpoint(
                version_id=store.allocate_version(),
                message=message or "",
                timestamp=store.clock.utcnow(),
                files={path: replace(entry) for path, entry in store.files.items()},
                directories={
                    path: replace(entry) for path, entry in store.directories.items()
                },
            )
            store.checkpoints.append(checkpoint)
        logger.debug(
            "Recorded checkpoint.",
            event="memory.commit",
            context={"version_id": checkpoint.version_id, "files": len(checkpoint.files)},
        )

    def revisions(
        self, config: object, path: str, opts: VersionOptions
    ) -> Sequence[object]:
        store = _store(config)
        with store.lock:
            checkpoints = list(store.checkpoints)
        if path:
            touched: list[_Checkpoint] = []
            previous: bytes | None = None
            for checkpoint in checkpoints:
                entry = checkpoint.files.get(path)
                current = entry.content if entry is not None else None
                if current != previous:
                    touched.append(checkpoint)
                previous = current
            checkpoints = touched
        return [
            {
                "version_id": checkpoint.version_id,
                "message": checkpoint.message,
                "timestamp": checkpoint.timestamp.timestamp(),
            }
            for checkpoint in reversed(checkpoints)
        ]

    def read_revision(
        self, config: object, path: str, revision: str, opts: VersionOptions
    ) -> bytes:
        checkpoint = self._find(_store(config), revision)
        entry = checkpoint.files.get(path)
        if entry is None:
            raise FileNotFound(path)
        return entry.content

    def rollback(self, config: object, revision: str, opts: VersionOptions) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, "", "rollback")
            checkpoint = self._find(store, revision)
            store.files = {
                path: replace(entry) for path, entry in checkpoint.files.items()
            }
            store.directories = {
                path: replace(entry) for path, entry in checkpoint.directories.items()
            }

    @staticmethod
    def _find(store: InMemoryStore, revision: str) -> _Checkpoint:
        with store.lock:
            for checkpoint in store.checkpoints:
                if str(checkpoint.version_id) == revision:
                    return checkpoint
        raise AdapterError(InMemoryAdapter.name, f"unknown revision {revision!r}")


@dataclass(frozen=True, slots=True)
class InMemoryAdapter:
    """Adapter storing files in an :class:`InMemoryStore`."""

    name: ClassVar[str] = "memory"
    versioning: ClassVar[InMemoryVersioning] = InMemoryVersioning()

    def unsupported_operations(self) -> frozenset[Operation]:
        return frozenset({Operation.COPY_BETWEEN})

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "write")
            _put(store, path, content, opts)

    def read(self, config: object, path: str) -> bytes:
        store = _store(config)
        with store.lock:
            return _get(store, path).content

    def read_stream(self, config: object, path: str, opts: StreamOptions) -> MemoryByteReader:
        content = self.read(config, path)
        return MemoryByteReader.from_bytes(path, content, chunk_size=opts.chunk_size)

    def write_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> MemoryByteWriter:
        store = _store(config)
        _guard_writable(store, path, "write")
        write_opts = WriteOptions(visibility=opts.visibility)
        if opts.mode == "append":
            return MemoryByteWriter(
                path, lambda data: self.append(config, path, data, write_opts)
            )
        return MemoryByteWriter(
            path, lambda data: self.write(config, path, data, write_opts)
        )

    def delete(self, config: object, path: str) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "delete")
            _ = store.files.pop(path, None)

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, source, "move")
            entry = _get(store, source)
            _put(store, destination, entry.content, opts)
            if source != destination:
                del store.files[source]

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, destination, "copy")
            entry = _get(store, source)
            _put(store, destination, entry.content, opts)

    def file_exists(self, config: object, path: str) -> bool:
        store = _store(config)
        with store.lock:
            return path in store.files

    def list_contents(self, config: object, path: str) -> list[Stat]:
        store = _store(config)
        directory = strip_directory(path)
        with store.lock:
            if not _is_directory(store, directory):
                raise DirectoryNotFound(path)
            prefix = f"{directory}/" if directory else ""
            children: dict[str, Stat] = {}
            for name, entry in store.files.items():
                if not name.startswith(prefix):
                    continue
                head, sep, _ = name[len(prefix) :].partition("/")
                if sep:
                    children.setdefault(head, self._dir_stat(store, prefix + head))
                else:
                    children[head] = FileStat(
                        name=head,
                        size=len(entry.content),
                        mtime=entry.mtime,
                        visibility=entry.visibility,
                    )
            for name in store.directories:
                if name.startswith(prefix) and "/" not in name[len(prefix) :]:
                    head = name[len(prefix) :]
                    children.setdefault(head, self._dir_stat(store, name))
        return [children[name] for name in sorted(children)]

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        store = _store(config)
        directory = strip_directory(path)
        if not directory:
            return
        with store.lock:
            _guard_writable(store, path, "create_directory")
            if directory in store.files:
                raise NotDirectory(directory)
            _ensure_parents(store, directory, opts.directory_visibility)
            if directory not in store.directories:
                store.directories[directory] = _MemoryDirectory(
                    mtime=store.clock.utcnow(),
                    visibility=opts.directory_visibility
                    or opts.visibility
                    or store.default_visibility,
                )

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        store = _store(config)
        directory = strip_directory(path)
        with store.lock:
            _guard_writable(store, path, "delete_directory")
            if not directory:
                if not opts.recursive and (store.files or store.directories):
                    raise DirectoryNotEmpty(path)
                self.clear(config)
                return
            if not _is_directory(store, directory):
                raise DirectoryNotFound(path)
            prefix = directory + "/"
            nested_files = [name for name in store.files if name.startswith(prefix)]
            nested_dirs = [name for name in store.directories if name.startswith(prefix)]
            if (nested_files or nested_dirs) and not opts.recursive:
                raise DirectoryNotEmpty(path)
            for name in nested_files:
                del store.files[name]
            for name in nested_dirs:
                del store.directories[name]
            _ = store.directories.pop(directory, None)

    def clear(self, config: object) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, "", "clear")
            store.files.clear()
            store.directories.clear()

    def stat(self, config: object, path: str) -> Stat:
        store = _store(config)
        with store.lock:
            entry = store.files.get(path)
            if entry is not None:
                return FileStat(
                    name=basename(path),
                    size=len(entry.content),
                    mtime=entry.mtime,
                    visibility=entry.visibility,
                )
            if _is_directory(store, path):
                return self._dir_stat(store, path)
        raise FileNotFound(path)

    def access(
        self, config: object, path: str, modes: frozenset[AccessMode]
    ) -> None:
        store = _store(config)
        with store.lock:
            if path not in store.files and not _is_directory(store, path):
                raise FileNotFound(path)
        if AccessMode.WRITE in modes and store.read_only:
            raise PermissionDenied(path, AccessMode.WRITE.value)

    def append(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "append")
            existing = store.files.get(path)
            if existing is None:
                _put(store, path, content, opts)
                return
            existing.content += content
            existing.mtime = store.clock.utcnow()

    def truncate(self, config: object, path: str, size: int) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "truncate")
            entry = _get(store, path)
            if size <= len(entry.content):
                entry.content = entry.content[:size]
            else:
                entry.content += b"\x00" * (size - len(entry.content))
            entry.mtime = store.clock.utcnow()

    def utime(self, config: object, path: str, mtime: datetime) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "utime")
            _get(store, path).mtime = mtime

    def set_visibility(
        self, config: object, path: str, visibility: Visibility
    ) -> None:
        store = _store(config)
        with store.lock:
            _guard_writable(store, path, "set_visibility")
            entry = store.files.get(path)
            if entry is not None:
                entry.visibility = visibility
                return
            if not path or not _is_directory(store, path):
                raise FileNotFound(path)
            directory = store.directories.get(path)
            if directory is None:
                store.directories[path] = _MemoryDirectory(
                    mtime=store.clock.utcnow(), visibility=visibility
                )
            else:
                directory.visibility = visibility

    def visibility(self, config: object, path: str) -> Visibility:
        store = _store(config)
        with store.lock:
            entry = store.files.get(path)
            if entry is not None:
                return entry.visibility
            if _is_directory(store, path):
                return self._dir_stat(store, path).visibility
        raise FileNotFound(path)

    @staticmethod
    def _dir_stat(store: InMemoryStore, path: str) -> DirStat:
        if not path:
            return DirStat(
                name="", size=0, mtime=store.clock.utcnow(), visibility=Visibility.PUBLIC
            )
        directory = store.directories.get(path)
        if directory is None:
            return DirStat(
                name=basename(path),
                size=0,
                mtime=store.clock.utcnow(),
                visibility=store.default_visibility,
            )
        return DirStat(
            name=basename(path),
            size=0,
            mtime=directory.mtime,
            visibility=directory.visibility,
        )


ADAPTER: Final[InMemoryAdapter] = InMemoryAdapter()


def configure(
    store: InMemoryStore | None = None,
    *,
    clock: WallClock | None = None,
    read_only: bool = False,
) -> FilesystemHandle:
    """Return a handle onto ``store`` (a fresh store when omitted)."""

    if store is None:
        store = InMemoryStore(clock=clock or SYSTEM_CLOCK, read_only=read_only)
    return FilesystemHandle(adapter=ADAPTER, config=MemoryConfig(store=store))
