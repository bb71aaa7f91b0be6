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

"""Capability registry answering ``supports(handle, operation)``.

An operation is supported when it is not in the adapter's declared
``unsupported_operations()`` and the adapter (or its bound versioning
implementation) has a method for it that accepts the arguments the
dispatcher passes. Both checks are evaluated once per adapter, when it is
registered, and cached as :class:`AdapterCapabilities`.

Adapters are registered lazily on first use. Adapters are value objects, so
equal adapter instances share one registry entry.
"""

from __future__ import annotations

import inspect
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from ..errors import UnsupportedOperation
from ..logging import StructuredLogger, get_logger
from ._protocol import Adapter, Versioning
from ._types import VERSIONING_OPERATIONS, FilesystemHandle, Operation

__all__ = [
    "DEFAULT_REGISTRY",
    "AdapterCapabilities",
    "CapabilityRegistry",
    "supports",
]

logger: StructuredLogger = get_logger(__name__, context={"component": "registry"})

#: Positional arguments (after ``self``) the dispatcher passes per operation.
OPERATION_ARITY: Final[Mapping[Operation, int]] = {
    Operation.WRITE: 4,
    Operation.READ: 2,
    Operation.READ_STREAM: 3,
    Operation.WRITE_STREAM: 3,
    Operation.DELETE: 2,
    Operation.MOVE: 4,
    Operation.COPY: 4,
    Operation.COPY_BETWEEN: 5,
    Operation.FILE_EXISTS: 2,
    Operation.LIST_CONTENTS: 2,
    Operation.CREATE_DIRECTORY: 3,
    Operation.DELETE_DIRECTORY: 3,
    Operation.CLEAR: 1,
    Operation.SET_VISIBILITY: 3,
    Operation.VISIBILITY: 2,
    Operation.STAT: 2,
    Operation.ACCESS: 3,
    Operation.APPEND: 4,
    Operation.TRUNCATE: 3,
    Operation.UTIME: 3,
    Operation.COMMIT: 3,
    Operation.REVISIONS: 3,
    Operation.READ_REVISION: 4,
    Operation.ROLLBACK: 3,
}


@dataclass(slots=True, frozen=True)
class AdapterCapabilities:
    """Resolved capabilities of one adapter.

    Attributes:
        backend_type: The adapter's ``name``.
        implemented: Operations with a method of a compatible signature.
        declared_unsupported: Operations the adapter refuses by policy.
        versioning: Bound versioning implementation, if any.
    """

    backend_type: str
    implemented: frozenset[Operation]
    declared_unsupported: frozenset[Operation]
    versioning: Versioning | None

    def supports(self, operation: Operation) -> bool:
        if operation in self.declared_unsupported:
            return False
        return operation in self.implemented

    @property
    def supported(self) -> frozenset[Operation]:
        return self.implemented - self.declared_unsupported


def _operation(handle: FilesystemHandle, operation: Operation | str) -> Operation:
    try:
        return Operation(operation)
    except ValueError:
        raise UnsupportedOperation(
            operation=str(operation), backend_type=handle.backend_type
        ) from None


def _accepts(target: object, operation: Operation) -> bool:
    method = getattr(target, operation.value, None)
    if not callable(method):
        return False
    try:
        signature = inspect.signature(method)
    except (TypeError, ValueError):
        return False
    try:
        _ = signature.bind(*([None] * OPERATION_ARITY[operation]))
    except TypeError:
        return False
    return True


def inspect_adapter(adapter: Adapter) -> AdapterCapabilities:
    """Compute the capabilities of ``adapter`` from its declarations and methods."""

    versioning = getattr(adapter, "versioning", None)
    implemented: set[Operation] = set()
    for operation in Operation:
        target = versioning if operation in VERSIONING_OPERATIONS else adapter
        if target is not None and _accepts(target, operation):
            implemented.add(operation)
    return AdapterCapabilities(
        backend_type=adapter.name,
        implemented=frozenset(implemented),
        declared_unsupported=frozenset(
            Operation(op) for op in adapter.unsupported_operations()
        ),
        versioning=versioning,
    )


class CapabilityRegistry:
    """Thread-safe map from adapter to its :class:`AdapterCapabilities`."""

    def __init__(self) -> None:
        self._entries: dict[object, AdapterCapabilities] = {}
        self._lock = threading.Lock()

    def register(self, adapter: Adapter) -> AdapterCapabilities:
        """Inspect ``adapter`` and store (or replace) its entry."""

        capabilities = inspect_adapter(adapter)
        with self._lock:
            self._entries[adapter] = capabilities
        logger.debug(
            "Registered adapter capabilities.",
            event="registry.register",
            context={
                "backend_type": capabilities.backend_type,
                "supported": sorted(capabilities.supported),
            },
        )
        return capabilities

    def capabilities(self, adapter: Adapter) -> AdapterCapabilities:
        """Return the entry for ``adapter``, registering it on first use."""

        with self._lock:
            entry = self._entries.get(adapter)
        if entry is not None:
            return entry
        return self.register(adapter)

    def supports(self, handle: FilesystemHandle, operation: Operation | str) -> bool:
        """Return whether the backend supports ``operation``.

        Raises:
            UnsupportedOperation: ``operation`` names no known operation.
        """

        return self.capabilities(handle.adapter).supports(
            _operation(handle, operation)
        )

    def require(self, handle: FilesystemHandle, operation: Operation | str) -> None:
        """Raise :class:`UnsupportedOperation` unless ``operation`` is supported."""

        if not self.supports(handle, operation):
            raise UnsupportedOperation(
                operation=_operation(handle, operation).value,
                backend_type=handle.backend_type,
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


DEFAULT_REGISTRY: Final[CapabilityRegistry] = CapabilityRegistry()


def supports(
    handle: FilesystemHandle,
    operation: Operation | str,
    *,
    registry: CapabilityRegistry = DEFAULT_REGISTRY,
) -> bool:
    """Return whether ``handle``'s backend supports ``operation``."""

    return registry.supports(handle, operation)
