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

"""Path normalization shared by the dispatcher and the adapters.

Paths handed to adapters are always relative, use ``/`` as separator, contain
no ``.`` or ``..`` segments and no repeated separators. The root is the empty
string. A trailing ``/`` present in the caller's input is kept as a marker of
directory intent.

Functions:
    normalize: Validate and normalize a caller supplied path.
    assert_directory: Give a normalized path directory intent.
    join: Join a backend prefix and a normalized path.
    parent: Return the parent directory of a normalized path.
    basename: Return the last segment of a normalized path.
    ancestors: Return every ancestor of a normalized path, nearest first.
"""

from __future__ import annotations

from typing import Final

from ..errors import AbsolutePath, InvalidPath, PathTraversal

SEPARATOR: Final[str] = "/"
ROOT: Final[str] = ""


def normalize(raw: str) -> str:
    """Normalize ``raw`` into a safe relative path.

    Raises:
        AbsolutePath: ``raw`` starts with ``/``.
        PathTraversal: a ``..`` segment would climb above the root.
        InvalidPath: ``raw`` is not a string or contains a NUL byte.

    Examples:
        >>> normalize("docs//guide/./intro.md")
        'docs/guide/intro.md'
        >>> normalize("docs/drafts/../")
        'docs/'
        >>> normalize(".")
        ''
    """
    if not isinstance(raw, str):
        raise InvalidPath(raw, "path must be a string")
    if "\x00" in raw:
        raise InvalidPath(raw, "contains NUL byte")
    if raw.startswith(SEPARATOR):
        raise AbsolutePath(raw)

    segments: list[str] = []
    for segment in raw.split(SEPARATOR):
        if segment in {"", "."}:
            continue
        if segment == "..":
            if not segments:
                raise PathTraversal(raw)
            _ = segments.pop()
            continue
        segments.append(segment)

    if not segments:
        return ROOT
    normalized = SEPARATOR.join(segments)
    if raw.endswith(SEPARATOR):
        return normalized + SEPARATOR
    return normalized


def assert_directory(path: str) -> str:
    """Return ``path`` with a trailing separator; the root stays empty."""

    if path == ROOT or path.endswith(SEPARATOR):
        return path
    return path + SEPARATOR


def strip_directory(path: str) -> str:
    """Remove the directory-intent marker from a normalized path."""

    return path.rstrip(SEPARATOR)


def join(prefix: str, path: str) -> str:
    """Join a backend prefix (possibly empty) with a normalized path."""

    prefix = prefix.strip(SEPARATOR)
    if not prefix:
        return path
    if not path:
        return prefix
    return f"{prefix}{SEPARATOR}{path}"


def parent(path: str) -> str:
    """Return the parent of ``path`` (the root for top-level entries)."""

    head, _, _ = strip_directory(path).rpartition(SEPARATOR)
    return head


def basename(path: str) -> str:
    """Return the final segment of ``path``."""

    return strip_directory(path).rpartition(SEPARATOR)[2]


def ancestors(path: str) -> list[str]:
    """Return the ancestors of ``path`` from nearest to the root.

    >>> ancestors("a/b/c.txt")
    ['a/b', 'a', '']
    """
    result: list[str] = []
    current = strip_directory(path)
    while current:
        current = parent(current)
        result.append(current)
    return result


__all__ = [
    "ROOT",
    "SEPARATOR",
    "ancestors",
    "assert_directory",
    "basename",
    "join",
    "normalize",
    "parent",
    "strip_directory",
]
