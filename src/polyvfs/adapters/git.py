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

"""Host directory backend versioned by git.

Files live in a plain directory exactly as with the ``local`` backend. The
git repository is kept in a separate directory (``--git-dir`` plus
``--work-tree``) so its internals never show up in listings.

In ``manual`` mode revisions are created by ``commit``. In ``auto`` mode
every mutating operation is committed right away.

Example usage::

    fs = git.configure("/srv/config", mode="auto")
    vfs.write(fs, "app.toml", b"debug = false")
    [latest] = vfs.revisions(fs, "app.toml")
"""

from __future__ import annotations

import hashlib
import os
import subprocess  # nosec: B404
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Final, Literal

from ..errors import AdapterError, FileNotFound
from ..filesystem import (
    DirectoryOptions,
    FilesystemHandle,
    StreamOptions,
    VersionOptions,
    Visibility,
    WriteOptions,
)
from ..logging import StructuredLogger, get_logger
from ._host_streams import HostByteWriter
from .local import LocalAdapter, LocalConfig, UnixVisibilityConverter

__all__ = [
    "GitAdapter",
    "GitConfig",
    "GitVersioning",
    "configure",
    "default_git_dir",
    "init_git_repo",
    "run_git",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "git"})

type CommitMode = Literal["manual", "auto"]

_FIELD_SEPARATOR: Final[str] = "\x1f"
_LOG_FORMAT: Final[str] = "--format=%H%x1f%an%x1f%ae%x1f%s%x1f%ct"


def git_env() -> dict[str, str]:
    """Return the environment without ``GIT_*`` variables.

    Inherited variables (for example inside a git hook) would otherwise
    redirect commands to the wrong repository.
    """

    return {k: v for k, v in os.environ.items() if not k.startswith("GIT_")}


def run_git(
    args: Sequence[str],
    *,
    git_dir: Path,
    root: Path,
    identity: tuple[str, str] | None = None,
    check: bool = True,
    text: bool = False,
) -> subprocess.CompletedProcess[str] | subprocess.CompletedProcess[bytes]:
    """Run a git command against the external ``git_dir`` and ``root`` work tree.

    Raises:
        AdapterError: ``check`` is set and git exits with a non-zero status.
    """

    cmd: list[str] = ["git", f"--git-dir={git_dir}", f"--work-tree={root}"]
    if identity is not None:
        cmd.extend(["-c", f"user.name={identity[0]}", "-c", f"user.email={identity[1]}"])
    cmd.extend(args)
    result = subprocess.run(  # nosec B603 B607
        cmd,
        cwd=root,
        check=False,
        capture_output=True,
        text=text,
        env=git_env(),
    )
    if check and result.returncode != 0:
        stderr = result.stderr if isinstance(result.stderr, str) else result.stderr.decode(
            "utf-8", "replace"
        )
        raise AdapterError(GitAdapter.name, f"git {args[0]} failed: {stderr.strip()}")
    return result


def default_git_dir(root: Path) -> Path:
    """Return the repository directory used for ``root`` when none is given.

    The directory sits in the system temporary directory and is named after
    a digest of the resolved work tree, so every handle on one work tree
    shares one repository.
    """

    digest = hashlib.sha256(str(root.resolve()).encode("utf-8")).hexdigest()
    return Path(tempfile.gettempdir()) / f"polyvfs-git-{digest[:16]}"


def init_git_repo(git_dir: Path) -> Path:
    """Create a bare repository for the work tree and return its directory.

    An existing non-empty ``git_dir`` is reused as is.
    """

    if git_dir.exists() and any(git_dir.iterdir()):
        return git_dir
    git_dir.mkdir(parents=True, exist_ok=True)
    _ = subprocess.run(  # nosec B603 B607
        ["git", "init", "--bare", "--initial-branch=main"],
        cwd=git_dir,
        check=True,
        capture_output=True,
        env=git_env(),
    )
    logger.debug("Initialized repository.", event="git.init", context={"git_dir": str(git_dir)})
    return git_dir


@dataclass(slots=True, frozen=True, kw_only=True)
class GitConfig(LocalConfig):
    """Configuration of a git-versioned host directory.

    Attributes:
        git_dir: Directory of the bare repository tracking ``root``.
        mode: ``manual`` commits only on ``commit``; ``auto`` after every change.
        author_name: Name recorded on commits.
        author_email: Email recorded on commits.
    """

    git_dir: Path
    mode: CommitMode = "manual"
    author_name: str = "polyvfs"
    author_email: str = "polyvfs@localhost"


def _config(config: object) -> GitConfig:
    if not isinstance(config, GitConfig):
        raise TypeError(f"Expected GitConfig, got {type(config).__name__}.")
    return config


def _git(
    cfg: GitConfig, args: Sequence[str], *, check: bool = True, text: bool = False
) -> subprocess.CompletedProcess[str] | subprocess.CompletedProcess[bytes]:
    return run_git(
        args,
        git_dir=cfg.git_dir,
        root=cfg.root,
        identity=(cfg.author_name, cfg.author_email),
        check=check,
        text=text,
    )


def _has_head(cfg: GitConfig) -> bool:
    return _git(cfg, ["rev-parse", "--verify", "HEAD"], check=False).returncode == 0


def _commit(cfg: GitConfig, message: str) -> str | None:
    """Stage everything and commit. Returns the new hash, or None when clean."""

    _ = _git(cfg, ["add", "-A"])
    status = _git(cfg, ["status", "--porcelain"], text=True)
    if not str(status.stdout).strip() and _has_head(cfg):
        logger.debug(
            "Nothing to commit.", event="git.commit.skipped", context={"root": str(cfg.root)}
        )
        return None
    _ = _git(cfg, ["commit", "--allow-empty", "--no-gpg-sign", "-m", message])
    sha = str(_git(cfg, ["rev-parse", "HEAD"], text=True).stdout).strip()
    logger.debug(
        "Committed work tree.",
        event="git.commit",
        context={"sha": sha, "message": message},
    )
    return sha


def _revision_exists(cfg: GitConfig, revision: str) -> bool:
    result = _git(cfg, ["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], check=False)
    return result.returncode == 0


def _require_revision(cfg: GitConfig, revision: str) -> None:
    if not _revision_exists(cfg, revision):
        raise AdapterError(GitAdapter.name, f"unknown revision {revision!r}")


@dataclass(frozen=True, slots=True)
class GitVersioning:
    """Versioning through the git history of the work tree."""

    supports_path_rollback: ClassVar[bool] = True

    def commit(self, config: object, message: str | None, opts: VersionOptions) -> None:
        _ = _commit(_config(config), message or "polyvfs commit")

    def revisions(
        self, config: object, path: str, opts: VersionOptions
    ) -> Sequence[object]:
        cfg = _config(config)
        if not _has_head(cfg):
            return []
        args = ["log", _LOG_FORMAT]
        if path:
            args.extend(["--", path])
        output = str(_git(cfg, args, text=True).stdout)
        records: list[dict[str, object]] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            sha, author_name, author_email, message, committed = line.split(
                _FIELD_SEPARATOR, 4
            )
            records.append(
                {
                    "sha": sha,
                    "author_name": author_name,
                    "author_email": author_email,
                    "message": message,
                    "timestamp": int(committed),
                }
            )
        return records

    def read_revision(
        self, config: object, path: str, revision: str, opts: VersionOptions
    ) -> bytes:
        cfg = _config(config)
        _require_revision(cfg, revision)
        result = _git(cfg, ["show", f"{revision}:{path}"], check=False)
        if result.returncode != 0:
            raise FileNotFound(path)
        return bytes(result.stdout)

    def rollback(self, config: object, revision: str, opts: VersionOptions) -> None:
        cfg = _config(config)
        _require_revision(cfg, revision)
        if opts.path is not None:
            result = _git(cfg, ["checkout", revision, "--", opts.path], check=False)
            if result.returncode != 0:
                raise FileNotFound(opts.path)
            if cfg.mode == "auto":
                _ = _commit(cfg, f"rollback {opts.path} to {revision}")
            return
        _ = _git(cfg, ["reset", "--hard", revision])
        _ = _git(cfg, ["clean", "-xfd"], check=False)
        logger.debug(
            "Rolled back work tree.",
            event="git.rollback",
            context={"revision": revision},
        )


@dataclass(frozen=True)
class GitAdapter(LocalAdapter):
    """Local adapter whose changes are tracked in git."""

    name: ClassVar[str] = "git"
    versioning: ClassVar[GitVersioning] = GitVersioning()  # type: ignore[assignment]

    @staticmethod
    def _auto_commit(config: object, message: str) -> None:
        cfg = _config(config)
        if cfg.mode == "auto":
            _ = _commit(cfg, message)

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        super().write(config, path, content, opts)
        self._auto_commit(config, f"write {path}")

    def write_stream(
        self, config: object, path: str, opts: StreamOptions
    ) -> HostByteWriter:
        cfg = _config(config)
        return self._open_writer(
            cfg, path, opts, after=lambda: self._auto_commit(cfg, f"write {path}")
        )

    def delete(self, config: object, path: str) -> None:
        super().delete(config, path)
        self._auto_commit(config, f"delete {path}")

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        super().move(config, source, destination, opts)
        self._auto_commit(config, f"move {source} to {destination}")

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        super().copy(config, source, destination, opts)
        self._auto_commit(config, f"copy {source} to {destination}")

    def copy_between(
        self,
        source_config: object,
        source: str,
        destination_config: object,
        destination: str,
        opts: WriteOptions,
    ) -> None:
        super().copy_between(source_config, source, destination_config, destination, opts)
        self._auto_commit(destination_config, f"copy {source} to {destination}")

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        super().delete_directory(config, path, opts)
        self._auto_commit(config, f"delete directory {path}")

    def clear(self, config: object) -> None:
        super().clear(config)
        self._auto_commit(config, "clear")

    def append(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        super().append(config, path, content, opts)
        self._auto_commit(config, f"append {path}")

    def truncate(self, config: object, path: str, size: int) -> None:
        super().truncate(config, path, size)
        self._auto_commit(config, f"truncate {path}")


ADAPTER: Final[GitAdapter] = GitAdapter()


def configure(
    root: str | os.PathLike[str],
    *,
    git_dir: str | os.PathLike[str] | None = None,
    mode: CommitMode = "manual",
    author_name: str = "polyvfs",
    author_email: str = "polyvfs@localhost",
    converter: UnixVisibilityConverter | None = None,
    default_visibility: Visibility = Visibility.PUBLIC,
) -> FilesystemHandle:
    """Return a handle onto ``root`` tracked by the repository in ``git_dir``.

    The repository is created when missing. Without ``git_dir`` it lives at
    :func:`default_git_dir`, which depends only on ``root``: configuring the
    same work tree twice yields equal handles sharing one history.
    """

    root_path = Path(root)
    root_path.mkdir(parents=True, exist_ok=True)
    repository = init_git_repo(
        Path(git_dir) if git_dir is not None else default_git_dir(root_path)
    )
    return FilesystemHandle(
        adapter=ADAPTER,
        config=GitConfig(
            root=root_path.resolve(),
            converter=converter or UnixVisibilityConverter(),
            default_visibility=default_visibility,
            git_dir=repository.resolve(),
            mode=mode,
            author_name=author_name,
            author_email=author_email,
        ),
    )
