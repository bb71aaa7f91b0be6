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

"""GitHub repository backend over the REST contents API.

Every file write or delete is a commit on ``ref``. Directories are implicit
in git, so creating or deleting them is refused, as are streams, clearing
and visibility. Requests go through an injected :class:`httpx.Client`
whose base URL points at the API root and which carries the credentials;
:func:`github_client` builds one.

Example usage::

    client = github.github_client(token=os.environ["GITHUB_TOKEN"])
    fs = github.configure(client, "octo-org", "handbook", ref="main")
    vfs.write(fs, "docs/intro.md", b"# Intro")
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, ClassVar, Final
from urllib.parse import quote

import httpx

from ..clock import SYSTEM_CLOCK, WallClock
from ..errors import (
    AdapterError,
    DirectoryNotFound,
    FileNotFound,
    InvalidPath,
    NotDirectory,
    PermissionDenied,
    UnsupportedOperation,
)
from ..filesystem import (
    DirectoryOptions,
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Stat,
    Visibility,
    WriteOptions,
)
from ..filesystem._path import basename, strip_directory
from ..logging import StructuredLogger, get_logger

__all__ = [
    "API_URL",
    "GitHubAdapter",
    "GitHubConfig",
    "configure",
    "github_client",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "github"})

API_URL: Final[str] = "https://api.github.com"
API_VERSION: Final[str] = "2022-11-28"
_DENIED_STATUSES: Final[frozenset[int]] = frozenset({401, 403})


def github_client(
    token: str | None = None,
    *,
    base_url: str = API_URL,
    timeout: float = 30.0,
) -> httpx.Client:
    """Return an API client, authenticated when ``token`` is given."""

    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.Client(base_url=base_url, headers=headers, timeout=timeout)


@dataclass(slots=True, frozen=True)
class GitHubConfig:
    """Configuration of a GitHub repository filesystem.

    Attributes:
        client: HTTP client rooted at the API URL.
        owner: User or organization owning the repository.
        repo: Repository name.
        ref: Branch read from and committed to.
        commit_message: Message of commits made by writes and moves.
        committer_name: Name recorded as committer and author.
        committer_email: Email recorded as committer and author.
        clock: Source of listing timestamps; the contents API has no mtime.
    """

    client: httpx.Client
    owner: str
    repo: str
    ref: str = "main"
    commit_message: str = "Update via polyvfs"
    committer_name: str = "polyvfs"
    committer_email: str = "polyvfs@localhost"
    clock: WallClock = SYSTEM_CLOCK

    def url(self, path: str) -> str:
        base = f"/repos/{quote(self.owner)}/{quote(self.repo)}/contents"
        directory = strip_directory(path)
        return f"{base}/{quote(directory, safe='/')}" if directory else base

    @property
    def committer(self) -> dict[str, str]:
        return {"name": self.committer_name, "email": self.committer_email}


def _config(config: object) -> GitHubConfig:
    if not isinstance(config, GitHubConfig):
        raise TypeError(f"Expected GitHubConfig, got {type(config).__name__}.")
    return config


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, Mapping) and "message" in body:
        return str(body["message"])
    return str(body)


def _raise_for_status(response: httpx.Response, path: str, operation: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == 404:
        raise FileNotFound(path)
    if status in _DENIED_STATUSES:
        raise PermissionDenied(path, operation)
    raise AdapterError(
        GitHubAdapter.name, f"{operation}: HTTP {status}: {_error_message(response)}"
    )


@contextmanager
def transport_errors(operation: str) -> Iterator[None]:
    """Map httpx transport failures onto :class:`AdapterError`."""

    try:
        yield
    except httpx.HTTPError as error:
        raise AdapterError(
            GitHubAdapter.name, f"{operation}: {type(error).__name__}: {error}"
        ) from error


def _request(
    cfg: GitHubConfig,
    method: str,
    path: str,
    operation: str,
    **kwargs: Any,
) -> httpx.Response:
    logger.debug(
        "Calling contents API.",
        event="github.request",
        context={"method": method, "path": path, "operation": operation},
    )
    with transport_errors(operation):
        return cfg.client.request(method, cfg.url(path), **kwargs)


def _lookup(cfg: GitHubConfig, path: str, operation: str) -> object | None:
    """Return the decoded contents entry at ``path``, or None when missing."""

    response = _request(cfg, "GET", path, operation, params={"ref": cfg.ref})
    if response.status_code == 404:
        return None
    _raise_for_status(response, path, operation)
    return response.json()


def _is_file(entry: object) -> bool:
    return isinstance(entry, Mapping) and entry.get("type") == "file"


def _file_entry(cfg: GitHubConfig, path: str, operation: str) -> Mapping[str, Any]:
    entry = _lookup(cfg, path, operation)
    if entry is None:
        raise FileNotFound(path)
    if not _is_file(entry):
        raise InvalidPath(path, "is a directory")
    assert isinstance(entry, Mapping)
    return entry


def _existing_sha(cfg: GitHubConfig, path: str, operation: str) -> str | None:
    entry = _lookup(cfg, path, operation)
    if entry is None:
        return None
    if not _is_file(entry):
        raise InvalidPath(path, "is a directory")
    assert isinstance(entry, Mapping)
    return str(entry["sha"])


def _decode(entry: Mapping[str, Any], path: str) -> bytes:
    encoding = entry.get("encoding")
    if encoding != "base64":
        raise AdapterError(
            GitHubAdapter.name, f"read: unsupported encoding {encoding!r} for {path!r}"
        )
    try:
        return base64.b64decode(str(entry.get("content", "")))
    except binascii.Error as error:
        raise AdapterError(GitHubAdapter.name, f"read: invalid base64 for {path!r}") from error


def _to_stat(cfg: GitHubConfig, entry: Mapping[str, Any]) -> Stat:
    name = str(entry.get("name", ""))
    now = cfg.clock.utcnow()
    if entry.get("type") == "dir":
        return DirStat(name=name, size=0, mtime=now, visibility=Visibility.PUBLIC)
    return FileStat(
        name=name,
        size=int(entry.get("size", 0)),
        mtime=now,
        visibility=Visibility.PUBLIC,
    )


def _put(cfg: GitHubConfig, path: str, content: bytes, message: str) -> None:
    sha = _existing_sha(cfg, path, "write")
    payload: dict[str, Any] = {
        "message": message,
        "content": base64.b64encode(content).decode("ascii"),
        "branch": cfg.ref,
        "committer": cfg.committer,
        "author": cfg.committer,
    }
    if sha is not None:
        payload["sha"] = sha
    response = _request(cfg, "PUT", path, "write", json=payload)
    _raise_for_status(response, path, "write")
    logger.debug(
        "Committed file.",
        event="github.commit",
        context={"path": path, "ref": cfg.ref, "created": sha is None},
    )


def _remove(cfg: GitHubConfig, path: str, sha: str, message: str) -> None:
    payload = {
        "message": message,
        "sha": sha,
        "branch": cfg.ref,
        "committer": cfg.committer,
        "author": cfg.committer,
    }
    response = _request(cfg, "DELETE", path, "delete", json=payload)
    _raise_for_status(response, path, "delete")


@dataclass(frozen=True, slots=True)
class GitHubAdapter:
    """Adapter over the GitHub contents API."""

    name: ClassVar[str] = "github"
    versioning: ClassVar[None] = None

    def unsupported_operations(self) -> frozenset[Operation]:
        return frozenset(
            {
                Operation.READ_STREAM,
                Operation.WRITE_STREAM,
                Operation.CLEAR,
                Operation.SET_VISIBILITY,
                Operation.VISIBILITY,
                Operation.CREATE_DIRECTORY,
                Operation.DELETE_DIRECTORY,
                Operation.COPY_BETWEEN,
            }
        )

    def write(
        self, config: object, path: str, content: bytes, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        _put(cfg, path, content, cfg.commit_message)

    def read(self, config: object, path: str) -> bytes:
        cfg = _config(config)
        return _decode(_file_entry(cfg, path, "read"), path)

    def delete(self, config: object, path: str) -> None:
        cfg = _config(config)
        sha = _existing_sha(cfg, path, "delete")
        if sha is None:
            return
        _remove(cfg, path, sha, f"Delete {path} via polyvfs")

    def move(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        entry = _file_entry(cfg, source, "move")
        if source == destination:
            return
        _put(cfg, destination, _decode(entry, source), cfg.commit_message)
        _remove(cfg, source, str(entry["sha"]), f"Move {source} to {destination} via polyvfs")

    def copy(
        self, config: object, source: str, destination: str, opts: WriteOptions
    ) -> None:
        cfg = _config(config)
        content = _decode(_file_entry(cfg, source, "copy"), source)
        _put(cfg, destination, content, cfg.commit_message)

    def file_exists(self, config: object, path: str) -> bool:
        cfg = _config(config)
        return _is_file(_lookup(cfg, path, "file_exists"))

    def list_contents(self, config: object, path: str) -> list[Stat]:
        cfg = _config(config)
        directory = strip_directory(path)
        entry = _lookup(cfg, directory, "list_contents")
        if entry is None:
            # An empty repository has no root tree yet.
            if not directory:
                return []
            raise DirectoryNotFound(directory)
        if not isinstance(entry, list):
            raise NotDirectory(directory)
        stats = [_to_stat(cfg, item) for item in entry if isinstance(item, Mapping)]
        return sorted(stats, key=lambda stat: stat.name)

    def stat(self, config: object, path: str) -> Stat:
        cfg = _config(config)
        entry = _lookup(cfg, path, "stat")
        now = cfg.clock.utcnow()
        if entry is None:
            if not path:
                return DirStat(name="", size=0, mtime=now, visibility=Visibility.PUBLIC)
            raise FileNotFound(path)
        if isinstance(entry, list):
            return DirStat(
                name=basename(path), size=0, mtime=now, visibility=Visibility.PUBLIC
            )
        assert isinstance(entry, Mapping)
        return _to_stat(cfg, entry)

    def create_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        raise UnsupportedOperation(Operation.CREATE_DIRECTORY.value, self.name)

    def delete_directory(
        self, config: object, path: str, opts: DirectoryOptions
    ) -> None:
        raise UnsupportedOperation(Operation.DELETE_DIRECTORY.value, self.name)

    def clear(self, config: object) -> None:
        raise UnsupportedOperation(Operation.CLEAR.value, self.name)


ADAPTER: Final[GitHubAdapter] = GitHubAdapter()


def configure(
    client: httpx.Client,
    owner: str,
    repo: str,
    *,
    ref: str = "main",
    commit_message: str = "Update via polyvfs",
    committer_name: str = "polyvfs",
    committer_email: str = "polyvfs@localhost",
    clock: WallClock = SYSTEM_CLOCK,
) -> FilesystemHandle:
    """Return a handle onto ``owner/repo`` at branch ``ref``."""

    if not owner or not repo:
        raise ValueError("owner and repo are required.")
    return FilesystemHandle(
        adapter=ADAPTER,
        config=GitHubConfig(
            client=client,
            owner=owner,
            repo=repo,
            ref=ref,
            commit_message=commit_message,
            committer_name=committer_name,
            committer_email=committer_email,
            clock=clock,
        ),
    )
