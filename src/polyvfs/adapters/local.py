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

"""Host directory backend.

Every path is resolved against the configured root and must stay inside it
after symlinks are followed. Visibility maps onto unix permission bits
through a :class:`UnixVisibilityConverter`.

Example usage::

    from polyvfs import filesystem as vfs
    from polyvfs.adapters import local

    fs = local.configure("/srv/uploads")
    vfs.write(fs, "avatars/me.png", data, visibility=Visibility.PRIVATE)
"""

from __future__ import annotations

import errno
import os
import shutil
import stat as stat_module
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import ClassVar, Final

from ..errors import (
    AdapterError,
    DirectoryNotEmpty,
    DirectoryNotFound,
    FileNotFound,
    InvalidPath,
    NotDirectory,
    PathTraversal,
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
    Visibility,
    WriteOptions,
)
from ..filesystem._path import basename, strip_directory
from ..logging import StructuredLogger, get_logger
from ._host_streams import HostByteReader, HostByteWriter

__all__ = [
    "LocalAdapter",
    "LocalConfig",
    "UnixVisibilityConverter",
    "configure",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "local"})


@dataclass(slots=True, frozen=True)
class UnixVisibilityConverter:
    """Translate between :class:`Visibility` and unix permission bits.

    A file or directory is public when it is readable by others.
    """

    file_public: int = 0o644
    file_private: int = 0o600
    directory_public: int = 0o755
    directory_private: int = 0o700

    def for_file(self, visibility: Visibility) -> int:
        if visibility is Visibility.PUBLIC:
            return self.file_public
        return self.file_private

    def for_directory(self, visibility: Visibility) -> int:
        if visibility is Visibility.PUBLIC:
            return self.directory_public
        return self.directory_private

    @staticmethod
    def from_mode(mode: int) -> Visibility:
        if mode & stat_module.S_IROTH:
            return Visibility.PUBLIC
        return Visibility.PRIVATE


@dataclass(slots=True, frozen=True)
class LocalConfig:
    """Configuration of a host directory filesystem.

    Attributes:
        root: Absolute, resolved root directory.
        converter: Permission mapping for visibility.
        default_visibility: Visibility of newly created files and directories.
    """

    root: Path
    converter: UnixVisibilityConverter = field(default_factory=UnixVisibilityConverter)
    default_visibility: Visibility = Visibility.PUBLIC


def _config(config: object) -> LocalConfig:
    if not isinstance(config, LocalConfig):
        raise TypeError(f"Expected LocalConfig, got {type(config).__name__}.")
    return config


def resolve(config: LocalConfig, path: str) -> Path:
    """Resolve ``path`` below ``config.root``.

    Raises:
        PathTraversal: The resolved path (after following symlinks) leaves
            the root.
    """

    if not path:
        return config.root
    candidate = (config.root / path).resolve()
    try:
        _ = candidate.relative_to(config.root)
    except ValueError:
        raise PathTraversal(path) from None
    return candidate


@contextmanager
def os_errors(path: str, operation: str) -> Iterator[None]:
    """Translate ``OSError`` raised in the block into typed errors."""

    try:
        yield
    except FileNotFoundError:
        raise FileNotFound(path) from None
    except NotADirectoryError:
        raise NotDirectory(path) from None
    except IsADirectoryError:
        raise InvalidPath(path, "is a directory") from None
    except PermissionError:
        raise PermissionDenied(path, operation) from None
    except OSError as error:
        if error.errno == errno.ENOTEMPTY:
            raise DirectoryNotEmpty(path) from None
        raise AdapterError(LocalAdapter.name, f"{operation} {path!r}: {error}") from error


def _mtime(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def _make_directories(
    config: LocalConfig, directory: Path, visibility: Visibility | None
) -> None:
    missing: list[Path] = []
    current = directory
    while current != config.root and not current.exists():
        missing.append(current)
        current = current.parent
    mode = config.converter.for_directory(visibility or config.default_visibility)
    for created in reversed(missing):
        created.mkdir()
        created.chmod(mode)


def _apply_file_visibility(
    config: LocalConfig, target: Path, visibility: Visibility | None, *, existed: bool
) -> None:
    if visibility is None and existed:
        return
    target.chmod(config.converter.for_file(visibility or config.default_visibility))


def _stat_entry(config: LocalConfig, name: str, target: Path) -> Stat:
    info = target.stat()
    visibility = config.converter.from_mode(info.st_mode)
    if stat_module.S_ISDIR(info.st_mode):
        return DirStat(
            name=name, size=0, mtime=_mtime(info.st_mtime), visibility=visibility
        )
    return FileStat(
        name=name,
        size=info.st_size,
        mtime=_mtime(info.st_mtime),
        visibility=visibility,
    )


@dataclass(frozen=True, slots=True)
class LocalAdapter:
    """Adapter for a directory on the host filesystem."""

    name: ClassVar[str] = "local"
    versioning: ClassVar[None] = None

    def unsupported_operations(self) -> frozenset[Operation]:
        return frozenset()

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        target = resolve(cfg, path)
        with os_errors(path, "write"):
            _make_directories(cfg, target.parent, opts.directory_visibility)
            existed = target.exists()
            _ = target.write_bytes(content)
            _apply_file_visibility(cfg, target, opts.visibility, existed=existed)

    def read(self, config: object, path: str) -> bytes:
        target = resolve(_config(config), path)
        with os_errors(path, "read"):
            return target.read_bytes()

    def read_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> HostByteReader:
        target = resolve(_config(config), path)
        with os_errors(path, "read_stream"):
            if target.is_dir():
                raise IsADirectoryError(path)
            return HostByteReader.open(target, path, chunk_size=opts.chunk_size)

    def write_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> HostByteWriter:
        return self._open_writer(_config(config), path, opts)

    @staticmethod
    def _open_writer(
        cfg: LocalConfig,
        path: str,
        opts: StreamOptions,
        after: Callable[[], None] | None = None,
    ) -> HostByteWriter:
        target = resolve(cfg, path)
        with os_errors(path, "write_stream"):
            _make_directories(cfg, target.parent, None)
            previous_mode = target.stat().st_mode & 0o777 if target.exists() else None

        # mkstemp creates 0o600 files, so the mode is always reapplied.
        def finish() -> None:
            if opts.visibility is not None:
                target.chmod(cfg.converter.for_file(opts.visibility))
            elif previous_mode is not None:
                target.chmod(previous_mode)
            else:
                target.chmod(cfg.converter.for_file(cfg.default_visibility))
            if after is not None:
                after()

        with os_errors(path, "write_stream"):
            return HostByteWriter.open(target, path, mode=opts.mode, on_commit=finish)

    def delete(self, config: object, path: str) -> None:
        target = resolve(_config(config), path)
        with os_errors(path, "delete"):
            target.unlink(missing_ok=True)

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        src = resolve(cfg, source)
        dst = resolve(cfg, destination)
        if not src.is_file():
            raise FileNotFound(source)
        with os_errors(destination, "move"):
            _make_directories(cfg, dst.parent, opts.directory_visibility)
            _ = src.replace(dst)
            if opts.visibility is not None:
                _apply_file_visibility(cfg, dst, opts.visibility, existed=True)

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        self._copy_file(cfg, source, cfg, destination, opts)

    def copy_between(
        self,
        source_config: object,
        source: str,
        destination_config: object,
        destination: str,
        opts: WriteOptions,
    ) -> None:
        self._copy_file(
            _config(source_config), source, _config(destination_config), destination, opts
        )

    @staticmethod
    def _copy_file(
        source_config: LocalConfig,
        source: str,
        destination_config: LocalConfig,
        destination: str,
        opts: WriteOptions,
    ) -> None:
        src = resolve(source_config, source)
        dst = resolve(destination_config, destination)
        if not src.is_file():
            raise FileNotFound(source)
        with os_errors(destination, "copy"):
            _make_directories(destination_config, dst.parent, opts.directory_visibility)
            _ = shutil.copyfile(src, dst)
            if opts.visibility is not None:
                _apply_file_visibility(
                    destination_config, dst, opts.visibility, existed=True
                )
            else:
                shutil.copymode(src, dst)

    def file_exists(self, config: object, path: str) -> bool:
        return resolve(_config(config), path).is_file()

    def list_contents(self, config: object, path: str) -> list[Stat]:
        cfg = _config(config)
        directory = strip_directory(path)
        target = resolve(cfg, directory)
        if not target.exists():
            raise DirectoryNotFound(path)
        if not target.is_dir():
            raise NotDirectory(path)
        with os_errors(path, "list_contents"):
            return [
                _stat_entry(cfg, child.name, child)
                for child in sorted(target.iterdir(), key=lambda item: item.name)
            ]

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        target = resolve(cfg, strip_directory(path))
        if target.is_file():
            raise NotDirectory(path)
        with os_errors(path, "create_directory"):
            _make_directories(
                cfg, target, opts.directory_visibility or opts.visibility
            )

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        target = resolve(cfg, strip_directory(path))
        if not target.exists():
            raise DirectoryNotFound(path)
        if not target.is_dir():
            raise NotDirectory(path)
        if target == cfg.root:
            if any(target.iterdir()) and not opts.recursive:
                raise DirectoryNotEmpty(path)
            self.clear(cfg)
            return
        with os_errors(path, "delete_directory"):
            if opts.recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()

    def clear(self, config: object) -> None:
        cfg = _config(config)
        with os_errors("", "clear"):
            for child in cfg.root.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        logger.debug("Cleared root.", event="local.clear", context={"root": str(cfg.root)})

    def stat(self, config: object, path: str) -> Stat:
        cfg = _config(config)
        target = resolve(cfg, path)
        with os_errors(path, "stat"):
            return _stat_entry(cfg, basename(path), target)

    def access(
        self, config: object, path: str, modes: frozenset[AccessMode]
    ) -> None:
        target = resolve(_config(config), path)
        if not target.exists():
            raise FileNotFound(path)
        for mode in sorted(modes):
            flag = os.R_OK if mode is AccessMode.READ else os.W_OK
            if not os.access(target, flag):
                raise PermissionDenied(path, mode.value)

    def append(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        target = resolve(cfg, path)
        with os_errors(path, "append"):
            _make_directories(cfg, target.parent, opts.directory_visibility)
            existed = target.exists()
            with target.open("ab") as handle:
                _ = handle.write(content)
            _apply_file_visibility(cfg, target, opts.visibility, existed=existed)

    def truncate(self, config: object, path: str, size: int) -> None:
        target = resolve(_config(config), path)
        with os_errors(path, "truncate"):
            if not target.is_file():
                raise FileNotFoundError(path)
            os.truncate(target, size)

    def utime(self, config: object, path: str, mtime: datetime) -> None:
        target = resolve(_config(config), path)
        with os_errors(path, "utime"):
            atime = target.stat().st_atime
            os.utime(target, (atime, mtime.timestamp()))

    def set_visibility(
        self, config: object, path: str, visibility: Visibility
    ) -> None:
        cfg = _config(config)
        target = resolve(cfg, path)
        with os_errors(path, "set_visibility"):
            if target.is_dir():
                target.chmod(cfg.converter.for_directory(visibility))
            else:
                target.chmod(cfg.converter.for_file(visibility))

    def visibility(self, config: object, path: str) -> Visibility:
        cfg = _config(config)
        target = resolve(cfg, path)
        with os_errors(path, "visibility"):
            return cfg.converter.from_mode(target.stat().st_mode)


ADAPTER: Final[LocalAdapter] = LocalAdapter()


def configure(
    root: str | os.PathLike[str],
    *,
    converter: UnixVisibilityConverter | None = None,
    default_visibility: Visibility = Visibility.PUBLIC,
    create: bool = True,
) -> FilesystemHandle:
    """Return a handle rooted at ``root``.

    The root is created when missing unless ``create`` is false, in which
    case a missing root raises :class:`DirectoryNotFound`.
    """

    root_path = Path(root)
    if create:
        root_path.mkdir(parents=True, exist_ok=True)
    elif not root_path.is_dir():
        raise DirectoryNotFound(str(root_path))
    return FilesystemHandle(
        adapter=ADAPTER,
        config=LocalConfig(
            root=root_path.resolve(),
            converter=converter or UnixVisibilityConverter(),
            default_visibility=default_visibility,
        ),
    )
