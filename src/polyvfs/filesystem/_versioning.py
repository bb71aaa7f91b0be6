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

"""Versioning dispatch and revision normalization.

Versioning implementations are free to describe revisions in their own
shape: git reports commit hashes, the in-memory store integer version ids,
checkpoint based backends checkpoint ids. :func:`normalize_revision` turns
any of these into the canonical :class:`Revision`, and
:func:`filter_revisions` applies ``since``, ``until`` and ``limit`` the same
way for every backend.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Final, cast

from ..errors import AdapterError, UnsupportedOperation
from ._protocol import Versioning
from ._registry import DEFAULT_REGISTRY, CapabilityRegistry
from ._types import FilesystemHandle, Operation, Revision, VersionOptions

__all__ = [
    "filter_revisions",
    "normalize_revision",
    "normalize_timestamp",
    "require_versioning",
    "resolve_versioning",
]

_ID_KEYS: Final[tuple[str, ...]] = ("sha", "version_id", "checkpoint_id", "id")
_TIMESTAMP_KEYS: Final[tuple[str, ...]] = (
    "timestamp",
    "created_at",
    "committed_at",
)
_AUTHOR_NAME_KEYS: Final[tuple[str, ...]] = ("author_name", "author")
_AUTHOR_EMAIL_KEYS: Final[tuple[str, ...]] = ("author_email", "email")
_MESSAGE_KEYS: Final[tuple[str, ...]] = ("message", "comment")


def resolve_versioning(
    handle: FilesystemHandle, *, registry: CapabilityRegistry = DEFAULT_REGISTRY
) -> Versioning | None:
    """Return the versioning implementation bound to ``handle``'s backend."""

    return registry.capabilities(handle.adapter).versioning


def require_versioning(
    handle: FilesystemHandle,
    operation: Operation,
    *,
    registry: CapabilityRegistry = DEFAULT_REGISTRY,
) -> Versioning:
    """Return the versioning implementation or raise ``UnsupportedOperation``."""

    registry.require(handle, operation)
    versioning = resolve_versioning(handle, registry=registry)
    if versioning is None:  # pragma: no cover - the registry already refused
        raise UnsupportedOperation(operation.value, handle.backend_type)
    return versioning


def _lookup(raw: object, keys: Iterable[str]) -> object | None:
    for key in keys:
        if isinstance(raw, Mapping):
            value = cast(Mapping[str, object], raw).get(key)
        else:
            value = getattr(raw, key, None)
        if value is not None:
            return value
    return None


def normalize_timestamp(value: object) -> datetime:
    """Coerce a datetime, epoch seconds or ISO 8601 string to aware UTC.

    Naive datetimes are taken to be UTC.

    Raises:
        TypeError: ``value`` has none of the accepted shapes.
        ValueError: ``value`` is a string that is not ISO 8601.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise TypeError("Boolean is not a timestamp.")
    elif isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise TypeError(f"Unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_revision(raw: object, backend_type: str) -> Revision:
    """Convert a backend revision record into :class:`Revision`.

    ``raw`` may be a :class:`Revision`, a mapping or any object exposing the
    fields as attributes. The identifier is read from the first present of
    ``sha``, ``version_id``, ``checkpoint_id`` and ``id`` and always stored
    as a string. Missing author fields default to the backend type.

    Raises:
        AdapterError: The record has no identifier or no usable timestamp.
    """

    if isinstance(raw, Revision):
        return raw

    identifier = _lookup(raw, _ID_KEYS)
    if identifier is None:
        raise AdapterError(backend_type, f"revision without identifier: {raw!r}")

    timestamp_value = _lookup(raw, _TIMESTAMP_KEYS)
    if timestamp_value is None:
        raise AdapterError(backend_type, f"revision without timestamp: {raw!r}")
    try:
        timestamp = normalize_timestamp(timestamp_value)
    except (TypeError, ValueError, OverflowError, OSError) as error:
        raise AdapterError(backend_type, f"invalid revision timestamp: {error}") from error

    author_name = _lookup(raw, _AUTHOR_NAME_KEYS)
    author_email = _lookup(raw, _AUTHOR_EMAIL_KEYS)
    message = _lookup(raw, _MESSAGE_KEYS)
    return Revision(
        sha=str(identifier),
        author_name=str(author_name) if author_name is not None else backend_type,
        author_email=(
            str(author_email)
            if author_email is not None
            else f"{backend_type}@polyvfs.local"
        ),
        message=str(message) if message is not None else "",
        timestamp=timestamp,
    )


def filter_revisions(
    revisions: Iterable[Revision], opts: VersionOptions
) -> list[Revision]:
    """Apply ``since``/``until`` (inclusive) and then ``limit``.

    Input order is preserved.
    """

    since = normalize_timestamp(opts.since) if opts.since is not None else None
    until = normalize_timestamp(opts.until) if opts.until is not None else None
    selected = [
        revision
        for revision in revisions
        if (since is None or revision.timestamp >= since)
        and (until is None or revision.timestamp <= until)
    ]
    if opts.limit is not None:
        return selected[: opts.limit]
    return selected
