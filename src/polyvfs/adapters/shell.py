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

"""Filesystem reached through POSIX shell commands.

Every operation is a short ``sh -c`` script handed to a
:class:`CommandTransport`. :class:`SubprocessTransport` runs scripts on the
local host, or on a remote one when given a prefix such as
``("ssh", "build-host")`` or ``("podman", "exec", "sandbox")``.

File content travels over stdin and stdout, so binary data needs no
encoding. The target needs GNU coreutils and findutils (``stat --printf``,
``find -printf``, ``truncate``, ``touch -d @epoch``).

With ``checkpoints=True`` the backend is versioned by snapshots: each
commit copies the whole root into a checkpoint directory kept beside it.

Example usage::

    transport = SubprocessTransport(prefix=("ssh", "build-host"), remote=True)
    fs = shell.configure("/var/lib/artifacts", transport=transport)
"""

from __future__ import annotations

import posixpath
import re
import shlex
import subprocess  # nosec: B404
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar, Final, Protocol, runtime_checkable

from ..clock import SYSTEM_CLOCK, WallClock
from ..errors import (
    AdapterError,
    DirectoryNotEmpty,
    DirectoryNotFound,
    FileNotFound,
    InvalidPath,
    NotDirectory,
    PermissionDenied,
    VfsError,
)
from ..filesystem import (
    AccessMode,
    DirectoryOptions,
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Stat,
    Visibility,
    VersionOptions,
    WriteOptions,
)
from ..filesystem._path import basename, parent, strip_directory
from ..logging import StructuredLogger, get_logger
from .local import UnixVisibilityConverter

__all__ = [
    "REQUIRED_COMMANDS",
    "CheckpointedShellAdapter",
    "CommandResult",
    "CommandTransport",
    "ShellAdapter",
    "ShellCheckpoints",
    "ShellConfig",
    "SubprocessTransport",
    "configure",
    "default_checkpoint_dir",
    "check_required_commands",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "shell"})

REQUIRED_COMMANDS: Final[tuple[str, ...]] = (
    "cat",
    "chmod",
    "cp",
    "find",
    "mkdir",
    "mv",
    "rm",
    "rmdir",
    "stat",
    "touch",
    "truncate",
    "wc",
)

# Exit codes chosen by the scripts below for conditions they test themselves.
_MISSING: Final[int] = 44
_NOT_EMPTY: Final[int] = 45
_DENIED: Final[int] = 46
_COMMANDS_MISSING: Final[int] = 47
_UNKNOWN_CHECKPOINT: Final[int] = 48
_MISSING_MARKER: Final[str] = "__POLYVFS_MISSING__"
_CHECKPOINT_ID: Final[re.Pattern[str]] = re.compile(r"cp-(\d+)")


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of a transported script."""

    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def error_text(self) -> str:
        return self.stderr.decode("utf-8", "replace").strip()


@runtime_checkable
class CommandTransport(Protocol):
    """Runs a POSIX shell script on the target host."""

    def run(self, script: str, *, stdin: bytes | None = None) -> CommandResult: ...


@dataclass(slots=True, frozen=True)
class SubprocessTransport:
    """Transport running ``sh -c`` through :mod:`subprocess`.

    Attributes:
        prefix: Command placed before ``sh -c``, e.g. ``("ssh", "host")``.
        remote: Quote the script once more because the prefix joins its
            arguments into a single remote command line (true for ssh).
        timeout_seconds: Per-script timeout, or None for no limit.
    """

    prefix: tuple[str, ...] = ()
    remote: bool = False
    timeout_seconds: float | None = 60.0

    def run(self, script: str, *, stdin: bytes | None = None) -> CommandResult:
        payload = shlex.quote(script) if self.remote else script
        cmd = [*self.prefix, "sh", "-c", payload]
        try:
            completed = subprocess.run(  # nosec B603 B607
                cmd,
                input=stdin if stdin is not None else b"",
                capture_output=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as error:
            raise AdapterError(
                ShellAdapter.name, f"command timed out after {error.timeout}s"
            ) from error
        except OSError as error:
            raise AdapterError(ShellAdapter.name, f"cannot run {cmd[0]}: {error}") from error
        return CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


@dataclass(slots=True, frozen=True)
class ShellConfig:
    """Configuration of a shell-driven filesystem.

    Attributes:
        root: Absolute POSIX path of the root directory on the target.
        transport: Runs the scripts.
        converter: Permission mapping for visibility.
        checkpoint_dir: Absolute directory on the target, outside ``root``,
            holding checkpoints; None when checkpoints are off.
        clock: Source of checkpoint timestamps.
    """

    root: str
    transport: CommandTransport = field(default_factory=SubprocessTransport)
    converter: UnixVisibilityConverter = field(default_factory=UnixVisibilityConverter)
    checkpoint_dir: str | None = None
    clock: WallClock = SYSTEM_CLOCK

    def target(self, path: str) -> str:
        directory = strip_directory(path)
        return posixpath.join(self.root, directory) if directory else self.root

    def quoted(self, path: str) -> str:
        return shlex.quote(self.target(path))


def _config(config: object) -> ShellConfig:
    if not isinstance(config, ShellConfig):
        raise TypeError(f"Expected ShellConfig, got {type(config).__name__}.")
    return config


def _classify(
    result: CommandResult, path: str, operation: str, *, directory: bool = False
) -> VfsError:
    """Turn a failed script into a typed error."""

    if result.returncode == _MISSING:
        return DirectoryNotFound(path) if directory else FileNotFound(path)
    if result.returncode == _NOT_EMPTY:
        return DirectoryNotEmpty(path)
    if result.returncode == _DENIED:
        return PermissionDenied(path, operation)
    text = result.error_text
    lowered = text.lower()
    if "permission denied" in lowered or "operation not permitted" in lowered:
        return PermissionDenied(path, operation)
    if "not empty" in lowered:
        return DirectoryNotEmpty(path)
    if "not a directory" in lowered or "file exists" in lowered:
        return NotDirectory(path)
    if "is a directory" in lowered:
        return InvalidPath(path, "is a directory")
    if "no such file" in lowered:
        return DirectoryNotFound(path) if directory else FileNotFound(path)
    return AdapterError(
        ShellAdapter.name, f"{operation} exited with {result.returncode}: {text}"
    )


def _run(
    cfg: ShellConfig,
    script: str,
    path: str,
    operation: str,
    *,
    stdin: bytes | None = None,
    directory: bool = False,
    revision: str | None = None,
) -> CommandResult:
    logger.debug(
        "Running shell script.",
        event="shell.command",
        context={"operation": operation, "path": path},
    )
    result = cfg.transport.run(script, stdin=stdin)
    if result.returncode == _UNKNOWN_CHECKPOINT and revision is not None:
        raise AdapterError(ShellAdapter.name, f"unknown checkpoint {revision!r}")
    if result.returncode != 0:
        raise _classify(result, path, operation, directory=directory)
    return result


def _require_file(cfg: ShellConfig, path: str) -> str:
    return f"[ -f {cfg.quoted(path)} ] || exit {_MISSING}"


def _mkdir_parent(cfg: ShellConfig, path: str, visibility: Visibility | None) -> str:
    target = cfg.quoted(parent(path))
    script = f"mkdir -p -- {target}"
    if visibility is not None:
        mode = cfg.converter.for_directory(visibility)
        script += f" && chmod {mode:o} -- {target}"
    return script


def _chmod_file(cfg: ShellConfig, path: str, visibility: Visibility | None) -> str:
    if visibility is None:
        return ""
    return f" && chmod {cfg.converter.for_file(visibility):o} -- {cfg.quoted(path)}"


def _parse_stat(name: str, kind: str, size: str, mtime: str, mode: str) -> Stat:
    visibility = UnixVisibilityConverter.from_mode(int(mode, 8))
    timestamp = datetime.fromtimestamp(float(mtime), tz=UTC)
    if kind in {"d", "directory"}:
        return DirStat(name=name, size=0, mtime=timestamp, visibility=visibility)
    return FileStat(name=name, size=int(size), mtime=timestamp, visibility=visibility)


def _checkpoint_store(cfg: ShellConfig) -> str:
    if cfg.checkpoint_dir is None:
        raise AdapterError(ShellAdapter.name, "no checkpoint directory configured")
    return cfg.checkpoint_dir


def _checkpoint_tree(cfg: ShellConfig, revision: str, path: str = "") -> str:
    """Return the quoted location of ``path`` inside checkpoint ``revision``."""

    if _CHECKPOINT_ID.fullmatch(revision) is None:
        raise AdapterError(ShellAdapter.name, f"unknown checkpoint {revision!r}")
    tree = posixpath.join(_checkpoint_store(cfg), revision, "tree")
    return shlex.quote(posixpath.join(tree, path) if path else tree)


def _sequence(checkpoint_id: str) -> int:
    match = _CHECKPOINT_ID.fullmatch(checkpoint_id)
    return int(match.group(1)) if match is not None else 0


@dataclass(frozen=True, slots=True)
class ShellCheckpoints:
    """Versioning by whole-tree snapshots copied next to the root.

    Checkpoint ``cp-N`` lives in ``<checkpoint_dir>/cp-N`` as a ``tree``
    copy of the root plus a ``meta`` file holding the ISO creation time on
    its first line and the message after it. Numbers grow by one per
    checkpoint, so the newest checkpoint has the largest number.
    """

    supports_path_rollback: ClassVar[bool] = True

    def commit(self, config: object, message: str | None, opts: VersionOptions) -> None:
        cfg = _config(config)
        created = cfg.clock.utcnow()
        comment = message or f"checkpoint {created.isoformat()}"
        store = shlex.quote(_checkpoint_store(cfg))
        script = (
            f'store={store}; mkdir -p -- "$store" && '
            "n=$(find \"$store\" -mindepth 1 -maxdepth 1 -type d -name 'cp-*' | wc -l) && "
            'id="cp-$((n + 1))" && mkdir -- "$store/$id" "$store/$id/tree" && '
            f'cp -a -- {shlex.quote(cfg.root)}/. "$store/$id/tree/" && '
            'cat > "$store/$id/meta" && printf %s "$id"'
        )
        meta = f"{created.isoformat()}\n{comment}".encode()
        result = _run(cfg, script, "", "commit", stdin=meta)
        logger.debug(
            "Created checkpoint.",
            event="shell.checkpoint",
            context={
                "checkpoint_id": result.stdout.decode("utf-8", "replace").strip(),
                "message": comment,
            },
        )

    def revisions(
        self, config: object, path: str, opts: VersionOptions
    ) -> list[dict[str, str]]:
        cfg = _config(config)
        store = shlex.quote(_checkpoint_store(cfg))
        member = strip_directory(path)
        scoped = f'[ -e "$d/tree/"{shlex.quote(member)} ] || continue; ' if member else ""
        script = (
            f'store={store}; [ -d "$store" ] || exit 0; '
            'for d in "$store"/cp-*; do [ -d "$d/tree" ] || continue; '
            f"{scoped}"
            "printf '%s\\0' \"${d##*/}\"; cat -- \"$d/meta\"; printf '\\0'; done"
        )
        output = _run(cfg, script, path, "revisions").stdout.decode("utf-8", "replace")
        fields = output.split("\0")
        records: list[dict[str, str]] = []
        for checkpoint_id, meta in zip(fields[0::2], fields[1::2], strict=False):
            created_at, _, comment = meta.partition("\n")
            records.append(
                {
                    "checkpoint_id": checkpoint_id,
                    "created_at": created_at,
                    "message": comment,
                }
            )
        return sorted(
            records, key=lambda record: _sequence(record["checkpoint_id"]), reverse=True
        )

    def read_revision(
        self, config: object, path: str, revision: str, opts: VersionOptions
    ) -> bytes:
        cfg = _config(config)
        tree = _checkpoint_tree(cfg, revision)
        source = _checkpoint_tree(cfg, revision, path)
        script = (
            f"[ -d {tree} ] || exit {_UNKNOWN_CHECKPOINT}; "
            f"[ -f {source} ] || exit {_MISSING}; cat -- {source}"
        )
        return _run(cfg, script, path, "read_revision", revision=revision).stdout

    def rollback(self, config: object, revision: str, opts: VersionOptions) -> None:
        cfg = _config(config)
        tree = _checkpoint_tree(cfg, revision)
        if opts.path:
            source = _checkpoint_tree(cfg, revision, opts.path)
            script = (
                f"[ -d {tree} ] || exit {_UNKNOWN_CHECKPOINT}; "
                f"[ -f {source} ] || exit {_MISSING}; "
                f"{_mkdir_parent(cfg, opts.path, None)}"
                f" && cp -p -- {source} {cfg.quoted(opts.path)}"
            )
            target = opts.path
        else:
            root = shlex.quote(cfg.root)
            script = (
                f"[ -d {tree} ] || exit {_UNKNOWN_CHECKPOINT}; "
                f"find {root} -mindepth 1 -maxdepth 1 -exec rm -rf -- {{}} + && "
                f"cp -a -- {tree}/. {root}/"
            )
            target = ""
        _ = _run(cfg, script, target, "rollback", revision=revision)
        logger.debug(
            "Rolled back to checkpoint.",
            event="shell.rollback",
            context={"checkpoint_id": revision, "path": target},
        )


@dataclass(frozen=True, slots=True)
class ShellAdapter:
    """Adapter issuing POSIX shell commands."""

    name: ClassVar[str] = "shell"
    versioning: ClassVar[None] = None

    def unsupported_operations(self) -> frozenset[Operation]:
        return frozenset(
            {Operation.READ_STREAM, Operation.WRITE_STREAM, Operation.COPY_BETWEEN}
        )

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        script = (
            f"{_mkdir_parent(cfg, path, opts.directory_visibility)}"
            f" && cat > {cfg.quoted(path)}{_chmod_file(cfg, path, opts.visibility)}"
        )
        _ = _run(cfg, script, path, "write", stdin=content)

    def read(self, config: object, path: str) -> bytes:
        cfg = _config(config)
        script = f"{_require_file(cfg, path)}; cat -- {cfg.quoted(path)}"
        return _run(cfg, script, path, "read").stdout

    def delete(self, config: object, path: str) -> None:
        cfg = _config(config)
        _ = _run(cfg, f"rm -f -- {cfg.quoted(path)}", path, "delete")

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        script = (
            f"{_require_file(cfg, source)}; "
            f"{_mkdir_parent(cfg, destination, opts.directory_visibility)}"
            f" && mv -f -- {cfg.quoted(source)} {cfg.quoted(destination)}"
            f"{_chmod_file(cfg, destination, opts.visibility)}"
        )
        _ = _run(cfg, script, source, "move")

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        script = (
            f"{_require_file(cfg, source)}; "
            f"{_mkdir_parent(cfg, destination, opts.directory_visibility)}"
            f" && cp -p -- {cfg.quoted(source)} {cfg.quoted(destination)}"
            f"{_chmod_file(cfg, destination, opts.visibility)}"
        )
        _ = _run(cfg, script, source, "copy")

    def file_exists(self, config: object, path: str) -> bool:
        cfg = _config(config)
        result = cfg.transport.run(f"[ -f {cfg.quoted(path)} ]")
        if result.returncode in {0, 1}:
            return result.returncode == 0
        raise _classify(result, path, "file_exists")

    def list_contents(self, config: object, path: str) -> list[Stat]:
        cfg = _config(config)
        target = cfg.quoted(path)
        script = (
            f"[ -d {target} ] || exit {_MISSING}; "
            f"find {target} -mindepth 1 -maxdepth 1 -printf '%y\\t%s\\t%T@\\t%m\\t%f\\0'"
        )
        output = _run(cfg, script, path, "list_contents", directory=True).stdout
        entries: list[Stat] = []
        for record in output.decode("utf-8", "surrogateescape").split("\0"):
            if not record:
                continue
            kind, size, mtime, mode, name = record.split("\t", 4)
            entries.append(_parse_stat(name, kind, size, mtime, mode))
        return sorted(entries, key=lambda entry: entry.name)

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        target = cfg.quoted(path)
        script = f"mkdir -p -- {target}"
        visibility = opts.directory_visibility or opts.visibility
        if visibility is not None and strip_directory(path):
            script += f" && chmod {cfg.converter.for_directory(visibility):o} -- {target}"
        _ = _run(cfg, script, path, "create_directory", directory=True)

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        cfg = _config(config)
        if not strip_directory(path):
            if not opts.recursive:
                script = (
                    f'[ -z "$(ls -A -- {cfg.quoted(path)})" ] || exit {_NOT_EMPTY}'
                )
                _ = _run(cfg, script, path, "delete_directory", directory=True)
                return
            self.clear(config)
            return
        target = cfg.quoted(path)
        remove = f"rm -rf -- {target}" if opts.recursive else f"rmdir -- {target}"
        script = f"[ -d {target} ] || exit {_MISSING}; {remove}"
        _ = _run(cfg, script, path, "delete_directory", directory=True)

    def clear(self, config: object) -> None:
        cfg = _config(config)
        script = f"find {shlex.quote(cfg.root)} -mindepth 1 -maxdepth 1 -exec rm -rf -- {{}} +"
        _ = _run(cfg, script, "", "clear", directory=True)

    def stat(self, config: object, path: str) -> Stat:
        cfg = _config(config)
        target = cfg.quoted(path)
        script = (
            f"[ -e {target} ] || exit {_MISSING}; "
            f"stat --printf='%F\\t%s\\t%Y\\t%a\\n' -- {target}"
        )
        output = _run(cfg, script, path, "stat").stdout.decode("utf-8").strip()
        kind, size, mtime, mode = output.split("\t", 3)
        return _parse_stat(basename(path), kind, size, mtime, mode)

    def access(
        self, config: object, path: str, modes: frozenset[AccessMode]
    ) -> None:
        cfg = _config(config)
        target = cfg.quoted(path)
        checks = [f"[ -e {target} ] || exit {_MISSING}"]
        if AccessMode.READ in modes:
            checks.append(f"[ -r {target} ] || exit {_DENIED}")
        if AccessMode.WRITE in modes:
            checks.append(f"[ -w {target} ] || exit {_DENIED}")
        _ = _run(cfg, "; ".join(checks), path, "access")

    def append(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        script = (
            f"{_mkdir_parent(cfg, path, opts.directory_visibility)}"
            f" && cat >> {cfg.quoted(path)}{_chmod_file(cfg, path, opts.visibility)}"
        )
        _ = _run(cfg, script, path, "append", stdin=content)

    def truncate(self, config: object, path: str, size: int) -> None:
        cfg = _config(config)
        script = f"{_require_file(cfg, path)}; truncate -s {size} -- {cfg.quoted(path)}"
        _ = _run(cfg, script, path, "truncate")

    def utime(self, config: object, path: str, mtime: datetime) -> None:
        cfg = _config(config)
        epoch = f"{mtime.timestamp():.9f}"
        script = f"{_require_file(cfg, path)}; touch -m -d @{epoch} -- {cfg.quoted(path)}"
        _ = _run(cfg, script, path, "utime")

    def set_visibility(
        self, config: object, path: str, visibility: Visibility
    ) -> None:
        cfg = _config(config)
        target = cfg.quoted(path)
        script = (
            f"[ -e {target} ] || exit {_MISSING}; "
            f"if [ -d {target} ]; then chmod {cfg.converter.for_directory(visibility):o} -- {target}; "
            f"else chmod {cfg.converter.for_file(visibility):o} -- {target}; fi"
        )
        _ = _run(cfg, script, path, "set_visibility")

    def visibility(self, config: object, path: str) -> Visibility:
        return self.stat(config, path).visibility


@dataclass(frozen=True, slots=True)
class CheckpointedShellAdapter(ShellAdapter):
    """Shell adapter versioned through :class:`ShellCheckpoints`."""

    versioning: ClassVar[ShellCheckpoints] = ShellCheckpoints()  # type: ignore[assignment]


def check_required_commands(
    config: ShellConfig, commands: Sequence[str] = REQUIRED_COMMANDS
) -> None:
    """Check that every command in ``commands`` exists on the target.

    Raises:
        AdapterError: Some commands are missing; ``reason`` names them.
    """

    names = [name.strip() for name in commands if name.strip()]
    if not names:
        return
    joined = " ".join(shlex.quote(name) for name in dict.fromkeys(names))
    script = (
        'missing=""; '
        f"for cmd in {joined}; do "
        'command -v "$cmd" >/dev/null 2>&1 || missing="$missing $cmd"; '
        "done; "
        f'if [ -n "$missing" ]; then echo "{_MISSING_MARKER}$missing"; exit {_COMMANDS_MISSING}; fi'
    )
    result = config.transport.run(script)
    if result.returncode == 0:
        return
    output = result.stdout.decode("utf-8", "replace")
    _, marker, missing = output.partition(_MISSING_MARKER)
    if marker:
        raise AdapterError(ShellAdapter.name, f"missing commands: {missing.split()}")
    raise AdapterError(
        ShellAdapter.name,
        f"command check exited with {result.returncode}: {result.error_text}",
    )


ADAPTER: Final[ShellAdapter] = ShellAdapter()
CHECKPOINTED_ADAPTER: Final[CheckpointedShellAdapter] = CheckpointedShellAdapter()


def default_checkpoint_dir(root: str) -> str:
    """Return the checkpoint directory used for ``root`` when none is given.

    It is a hidden sibling of the root: ``/srv/data`` keeps its checkpoints in
    ``/srv/.data.checkpoints``.
    """

    normalized = posixpath.normpath(root)
    if normalized == "/":
        raise InvalidPath(root, "no directory lies outside the filesystem root")
    head, name = posixpath.split(normalized)
    return posixpath.join(head, f".{name}.checkpoints")


def configure(
    root: str,
    *,
    transport: CommandTransport | None = None,
    converter: UnixVisibilityConverter | None = None,
    check_commands: bool = False,
    create: bool = True,
    checkpoints: bool = False,
    checkpoint_dir: str | None = None,
    clock: WallClock = SYSTEM_CLOCK,
) -> FilesystemHandle:
    """Return a handle onto ``root`` on the transport's host.

    ``root`` must be absolute. With ``create`` the root is created on the
    target; with ``check_commands`` the required commands are checked first.

    With ``checkpoints`` the handle supports ``commit``, ``revisions``,
    ``read_revision`` and ``rollback``. Snapshots are stored in
    ``checkpoint_dir``, which must be absolute and outside ``root``, and
    defaults to :func:`default_checkpoint_dir`.
    """

    if not posixpath.isabs(root):
        raise InvalidPath(root, "shell root must be absolute")
    normalized = posixpath.normpath(root)
    store: str | None = None
    if checkpoints:
        store = posixpath.normpath(checkpoint_dir or default_checkpoint_dir(normalized))
        if not posixpath.isabs(store):
            raise InvalidPath(store, "checkpoint_dir must be absolute")
        if posixpath.commonpath([normalized, store]) == normalized:
            raise InvalidPath(store, "checkpoint_dir must be outside the root")
    config = ShellConfig(
        root=normalized,
        transport=transport or SubprocessTransport(),
        converter=converter or UnixVisibilityConverter(),
        checkpoint_dir=store,
        clock=clock,
    )
    if check_commands:
        check_required_commands(config)
    if create:
        _ = _run(config, f"mkdir -p -- {shlex.quote(config.root)}", "", "configure")
    adapter = CHECKPOINTED_ADAPTER if checkpoints else ADAPTER
    return FilesystemHandle(adapter=adapter, config=config)
