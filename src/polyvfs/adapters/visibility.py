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

"""Side tables recording explicit visibility for object stores.

Object stores have no directories, so visibility set on a directory prefix
is kept here and inherited by everything below it. Entries are grouped by
namespace, usually ``<bucket>/<prefix>``, so several filesystems can share
one store.
"""

# Pyright suppressions for redis library type stub limitations.
# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false
# pyright: reportInvalidTypeArguments=false, reportUnusedCallResult=false

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, cast, override, runtime_checkable

from ..filesystem import Visibility
from ..logging import StructuredLogger, get_logger

if TYPE_CHECKING:
    from redis import Redis
    from redis.cluster import RedisCluster

__all__ = [
    "InMemoryVisibilityStore",
    "RedisVisibilityStore",
    "VisibilityStore",
]

logger: StructuredLogger = get_logger(
    __name__, context={"component": "visibility_store"}
)


@runtime_checkable
class VisibilityStore(Protocol):
    """Namespace-scoped mapping of entry paths to explicit visibility."""

    def get(self, namespace: str, path: str) -> Visibility | None: ...

    def set(self, namespace: str, path: str, visibility: Visibility) -> None: ...

    def delete(self, namespace: str, paths: Iterable[str]) -> None: ...

    def delete_below(self, namespace: str, prefix: str) -> None:
        """Remove ``prefix`` itself and every entry nested below it.

        An empty prefix clears the whole namespace.
        """
        ...


def _below(path: str, prefix: str) -> bool:
    return not prefix or path == prefix or path.startswith(f"{prefix}/")


@dataclass(slots=True, eq=False)
class InMemoryVisibilityStore(VisibilityStore):
    """Process-local store guarded by a lock."""

    _entries: dict[str, dict[str, Visibility]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @override
    def get(self, namespace: str, path: str) -> Visibility | None:
        with self._lock:
            return self._entries.get(namespace, {}).get(path)

    @override
    def set(self, namespace: str, path: str, visibility: Visibility) -> None:
        with self._lock:
            self._entries.setdefault(namespace, {})[path] = visibility

    @override
    def delete(self, namespace: str, paths: Iterable[str]) -> None:
        with self._lock:
            entries = self._entries.get(namespace)
            if entries is None:
                return
            for path in paths:
                _ = entries.pop(path, None)

    @override
    def delete_below(self, namespace: str, prefix: str) -> None:
        with self._lock:
            entries = self._entries.get(namespace)
            if entries is None:
                return
            for path in [p for p in entries if _below(p, prefix)]:
                del entries[path]


@dataclass(slots=True, frozen=True)
class RedisVisibilityStore(VisibilityStore):
    """Store keeping one Redis hash per namespace.

    Hash fields are entry paths and values are ``public`` or ``private``.
    Keys use a hash tag so a namespace stays on one cluster slot::

        {<key_prefix>:<namespace>}

    Example::

        from redis import Redis

        store = RedisVisibilityStore(client=Redis(host="localhost"))
        fs = s3.configure(client, "uploads", visibility_store=store)
    """

    client: Redis[bytes] | RedisCluster[bytes]
    """Redis client instance. Can be standalone Redis or RedisCluster."""

    key_prefix: str = "polyvfs:visibility"
    """Prefix for all Redis keys."""

    def _key(self, namespace: str) -> str:
        return f"{{{self.key_prefix}:{namespace}}}"

    @override
    def get(self, namespace: str, path: str) -> Visibility | None:
        raw = cast(bytes | None, self.client.hget(self._key(namespace), path))
        if raw is None:
            return None
        return Visibility(raw.decode("utf-8"))

    @override
    def set(self, namespace: str, path: str, visibility: Visibility) -> None:
        self.client.hset(self._key(namespace), path, visibility.value)
        logger.debug(
            "Stored visibility.",
            event="visibility_store.set",
            context={"namespace": namespace, "path": path, "visibility": visibility.value},
        )

    @override
    def delete(self, namespace: str, paths: Iterable[str]) -> None:
        fields = list(paths)
        if fields:
            self.client.hdel(self._key(namespace), *fields)

    @override
    def delete_below(self, namespace: str, prefix: str) -> None:
        key = self._key(namespace)
        if not prefix:
            self.client.delete(key)
            return
        names = cast(list[bytes], self.client.hkeys(key))
        doomed = [
            name.decode("utf-8")
            for name in names
            if _below(name.decode("utf-8"), prefix)
        ]
        if doomed:
            self.client.hdel(key, *doomed)
