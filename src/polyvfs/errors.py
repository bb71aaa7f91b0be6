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

"""Typed error taxonomy for :mod:`polyvfs`.

Every failure that leaves the public dispatch surface is an instance of one
of the eleven concrete :class:`VfsError` kinds defined here. Kinds are grouped
into five classes (see :class:`ErrorClass`). The grouping is exposed as the
``error_class`` attribute on each kind rather than through inheritance, so a
caller can branch on the class without knowing every kind::

    try:
        fs.read("missing.txt")
    except VfsError as error:
        if error.error_class is ErrorClass.NOT_FOUND:
            ...

Errors compare equal when their kind and fields are equal, which keeps test
assertions and error logs readable.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar, Literal, override

__all__ = [
    "AbsolutePath",
    "AdapterError",
    "DirectoryNotEmpty",
    "DirectoryNotFound",
    "ErrorClass",
    "FailedSide",
    "FileNotFound",
    "InvalidPath",
    "NotDirectory",
    "PathTraversal",
    "PermissionDenied",
    "UnknownError",
    "UnsupportedOperation",
    "VfsError",
    "to_error",
]

type FailedSide = Literal["source", "destination"]


class ErrorClass(StrEnum):
    """Coarse grouping of error kinds."""

    INVALID = "invalid"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ADAPTER = "adapter"
    UNKNOWN = "unknown"


class VfsError(Exception):
    """Base class for all polyvfs errors.

    Subclasses declare the names of their payload attributes in ``fields`` and
    their grouping in ``error_class``. The base class derives equality,
    hashing and ``repr`` from those declarations.
    """

    kind: ClassVar[str] = "vfs_error"
    error_class: ClassVar[ErrorClass] = ErrorClass.UNKNOWN
    fields: ClassVar[tuple[str, ...]] = ()

    def field_values(self) -> dict[str, object]:
        """Return the payload of this error keyed by field name."""

        return {name: getattr(self, name) for name in self.fields}

    @override
    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        assert isinstance(other, VfsError)
        return self.field_values() == other.field_values()

    @override
    def __hash__(self) -> int:
        return hash(
            (type(self), tuple(repr(value) for value in self.field_values().values()))
        )

    @override
    def __repr__(self) -> str:
        rendered = ", ".join(
            f"{name}={value!r}" for name, value in self.field_values().items()
        )
        return f"{type(self).__name__}({rendered})"

    @override
    def __reduce__(self) -> tuple[object, ...]:
        return (_rebuild, (type(self), self.field_values()))


def _rebuild(cls: type[VfsError], values: dict[str, object]) -> VfsError:
    return cls(**values)


class FileNotFound(VfsError):
    """Raised when a file does not exist at the requested path."""

    kind = "file_not_found"
    error_class = ErrorClass.NOT_FOUND
    fields = ("file_path",)

    def __init__(self, file_path: str) -> None:
        super().__init__(f"File not found: {file_path!r}")
        self.file_path = file_path


class DirectoryNotFound(VfsError):
    """Raised when a directory does not exist at the requested path."""

    kind = "directory_not_found"
    error_class = ErrorClass.NOT_FOUND
    fields = ("dir_path",)

    def __init__(self, dir_path: str) -> None:
        super().__init__(f"Directory not found: {dir_path!r}")
        self.dir_path = dir_path


class DirectoryNotEmpty(VfsError):
    """Raised when deleting a non-empty directory without ``recursive``."""

    kind = "directory_not_empty"
    error_class = ErrorClass.INVALID
    fields = ("dir_path",)

    def __init__(self, dir_path: str) -> None:
        super().__init__(f"Directory not empty: {dir_path!r}")
        self.dir_path = dir_path


class InvalidPath(VfsError):
    """Raised when a path cannot be interpreted at all.

    ``reason`` is a short human readable explanation such as
    ``"contains NUL byte"``.
    """

    kind = "invalid_path"
    error_class = ErrorClass.INVALID
    fields = ("invalid_path", "reason")

    def __init__(self, invalid_path: object, reason: str) -> None:
        super().__init__(f"Invalid path {invalid_path!r}: {reason}")
        self.invalid_path = invalid_path
        self.reason = reason


class PermissionDenied(VfsError):
    """Raised when the backend refuses an operation on a path."""

    kind = "permission_denied"
    error_class = ErrorClass.FORBIDDEN
    fields = ("target_path", "operation")

    def __init__(self, target_path: str, operation: str) -> None:
        super().__init__(f"Permission denied for {operation} on {target_path!r}")
        self.target_path = target_path
        self.operation = operation


class UnsupportedOperation(VfsError):
    """Raised when a backend does not support an operation.

    This is the only way polyvfs reports a missing capability. It is raised by
    the capability check before the backend is called, so callers may rely on
    ``supports()`` instead of catching it.
    """

    kind = "unsupported_operation"
    error_class = ErrorClass.ADAPTER
    fields = ("operation", "backend_type")

    def __init__(self, operation: str, backend_type: str) -> None:
        super().__init__(f"Operation {operation!r} is not supported by {backend_type}")
        self.operation = operation
        self.backend_type = backend_type


class AdapterError(VfsError):
    """Raised for backend failures that have no more specific kind.

    ``side`` is set by the cross-filesystem copy to tell whether the source
    or the destination failed. ``reason`` is diagnostic only.
    """

    kind = "adapter_error"
    error_class = ErrorClass.ADAPTER
    fields = ("backend_type", "reason", "side")

    def __init__(
        self,
        backend_type: str,
        reason: object,
        side: FailedSide | None = None,
    ) -> None:
        prefix = f"{side} " if side is not None else ""
        super().__init__(f"{prefix}{backend_type} adapter failed: {reason}")
        self.backend_type = backend_type
        self.reason = reason
        self.side = side


class PathTraversal(VfsError):
    """Raised when a path resolves outside the backend root."""

    kind = "path_traversal"
    error_class = ErrorClass.INVALID
    fields = ("attempted_path",)

    def __init__(self, attempted_path: str) -> None:
        super().__init__(f"Path escapes the filesystem root: {attempted_path!r}")
        self.attempted_path = attempted_path


class AbsolutePath(VfsError):
    """Raised when an absolute path is supplied."""

    kind = "absolute_path"
    error_class = ErrorClass.INVALID
    fields = ("absolute_path",)

    def __init__(self, absolute_path: str) -> None:
        super().__init__(f"Absolute paths are not allowed: {absolute_path!r}")
        self.absolute_path = absolute_path


class NotDirectory(VfsError):
    """Raised when a directory operation targets something that is not one."""

    kind = "not_directory"
    error_class = ErrorClass.INVALID
    fields = ("not_dir_path",)

    def __init__(self, not_dir_path: str) -> None:
        super().__init__(f"Not a directory: {not_dir_path!r}")
        self.not_dir_path = not_dir_path


class UnknownError(VfsError):
    """Wraps a failure value that carries no type information.

    The raw value is kept in ``original_value`` for diagnostics.
    """

    kind = "unknown"
    error_class = ErrorClass.UNKNOWN
    fields = ("original_value",)

    def __init__(self, original_value: object) -> None:
        super().__init__(f"Unknown error: {original_value!r}")
        self.original_value = original_value


def to_error(raw: object) -> VfsError:
    """Convert ``raw`` into a typed error.

    Already typed errors are returned unchanged. Everything else, including
    arbitrary exceptions and plain values such as strings, is wrapped in
    :class:`UnknownError`.
    """

    if isinstance(raw, VfsError):
        return raw
    return UnknownError(raw)
