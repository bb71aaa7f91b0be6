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

"""Argument validation applied by the dispatcher before any backend call."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from ..errors import InvalidPath
from ._path import ROOT, SEPARATOR, assert_directory, normalize, strip_directory

__all__ = [
    "checked_arguments",
    "directory_path",
    "entry_path",
    "file_path",
    "to_bytes",
]


def file_path(raw: str) -> str:
    """Normalize a path that must name a file.

    The root and paths carrying a trailing separator are rejected.
    """

    path = normalize(raw)
    if path == ROOT or path.endswith(SEPARATOR):
        raise InvalidPath(raw, "expected a file path")
    return path


def directory_path(raw: str) -> str:
    """Normalize a path and give it directory intent."""

    return assert_directory(normalize(raw))


def entry_path(raw: str) -> str:
    """Normalize a path naming either a file or a directory."""

    return strip_directory(normalize(raw))


def to_bytes(content: bytes | bytearray | memoryview | str) -> bytes:
    """Return ``content`` as ``bytes``; strings are encoded as UTF-8."""

    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, bytes | bytearray | memoryview):
        return bytes(content)
    raise TypeError(f"Expected bytes or str content, got {type(content).__name__}.")


@contextmanager
def checked_arguments(path: object) -> Iterator[None]:
    """Report a rejected argument as :class:`InvalidPath` on ``path``.

    Wraps the coercion of caller-supplied values (content, modes, sizes,
    timestamps, option bags) so a bad argument surfaces through the error
    taxonomy instead of as a bare ``TypeError`` or ``ValueError``.
    """

    try:
        yield
    except (TypeError, ValueError) as error:
        raise InvalidPath(path, str(error)) from error
