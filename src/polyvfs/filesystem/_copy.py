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

"""Copy between two filesystem handles with bounded memory.

Strategies are tried in order:

``same_filesystem``
    Both handles are equal. The backend's own ``copy`` is used.

``native``
    Both handles use the same adapter and it supports ``copy_between``.
    The adapter copies between its two configurations itself, for example a
    server-side copy between buckets. If it raises ``UnsupportedOperation``
    for this particular pair the spooled strategy is used instead.

``spooled``
    Bytes go through a private temporary file. The source is streamed into
    it when it supports ``read_stream`` (``fill=stream``) and read in one
    call otherwise (``fill=read``). The destination receives the spool via
    ``write_stream`` (``drain=stream``), or an empty ``write`` followed by
    one ``append`` per chunk (``drain=append``), or one ``write``
    (``drain=write``).

The strategy taken is logged as the ``copy_between.strategy`` event.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Literal, cast

from ..errors import AdapterError, FailedSide, UnsupportedOperation, VfsError
from ..logging import StructuredLogger, get_logger
from ._convert import converted_errors
from ._protocol import Appending, CrossConfigCopying, ReadStreaming, WriteStreaming
from ._registry import DEFAULT_REGISTRY, CapabilityRegistry
from ._types import (
    DEFAULT_CHUNK_SIZE,
    FilesystemHandle,
    Operation,
    StreamOptions,
    Visibility,
    WriteOptions,
)
from ._validation import checked_arguments, file_path

__all__ = ["copy_between"]

logger: StructuredLogger = get_logger(__name__, context={"component": "copy_engine"})

type FillMode = Literal["stream", "read"]
type DrainMode = Literal["stream", "append", "write"]


@contextmanager
def _side_errors(handle: FilesystemHandle, side: FailedSide) -> Iterator[None]:
    try:
        yield
    except VfsError:
        raise
    except Exception as exc:
        raise AdapterError(handle.backend_type, repr(exc), side=side) from exc


def copy_between(
    source: FilesystemHandle,
    source_path: str,
    destination: FilesystemHandle,
    destination_path: str,
    *,
    visibility: Visibility | None = None,
    directory_visibility: Visibility | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    registry: CapabilityRegistry = DEFAULT_REGISTRY,
) -> None:
    """Copy ``source_path`` on ``source`` to ``destination_path`` on ``destination``.

    Both paths are validated before either backend is touched. Untyped
    failures are raised as :class:`AdapterError` with ``side`` set to
    ``"source"`` or ``"destination"``; typed errors propagate unchanged.
    """

    src = file_path(source_path)
    dst = file_path(destination_path)
    with checked_arguments(dst):
        opts = WriteOptions(
            visibility=visibility,
            directory_visibility=directory_visibility,
            chunk_size=chunk_size,
        )
    context = {
        "source_backend": source.backend_type,
        "destination_backend": destination.backend_type,
        "source_path": src,
        "destination_path": dst,
    }

    if source == destination:
        registry.require(source, Operation.COPY)
        with converted_errors(source.backend_type, Operation.COPY.value):
            source.adapter.copy(source.config, src, dst, opts)
        logger.debug(
            "Copied within one filesystem.",
            event="copy_between.strategy",
            context={**context, "strategy": "same_filesystem"},
        )
        return

    if source.adapter == destination.adapter and registry.supports(
        source, Operation.COPY_BETWEEN
    ):
        try:
            with converted_errors(source.backend_type, Operation.COPY_BETWEEN.value):
                cast(CrossConfigCopying, source.adapter).copy_between(
                    source.config, src, destination.config, dst, opts
                )
        except UnsupportedOperation:
            logger.debug(
                "Native copy refused; spooling instead.",
                event="copy_between.native_unsupported",
                context=context,
            )
        else:
            logger.debug(
                "Copied with the adapter's native cross-config copy.",
                event="copy_between.strategy",
                context={**context, "strategy": "native"},
            )
            return

    with tempfile.TemporaryFile(prefix="polyvfs-spool-") as spool:
        fill = _fill(source, src, spool, chunk_size, registry)
        _ = spool.seek(0)
        drain = _drain(destination, dst, spool, opts, registry)
    logger.debug(
        "Copied through a temporary spool.",
        event="copy_between.strategy",
        context={**context, "strategy": "spooled", "fill": fill, "drain": drain},
    )


def _fill(
    source: FilesystemHandle,
    path: str,
    spool: IO[bytes],
    chunk_size: int,
    registry: CapabilityRegistry,
) -> FillMode:
    if registry.supports(source, Operation.READ_STREAM):
        with _side_errors(source, "source"):
            reader = cast(ReadStreaming, source.adapter).read_stream(
                source.config, path, StreamOptions(chunk_size=chunk_size)
            )
            with reader:
                for chunk in reader.chunks(chunk_size):
                    _ = spool.write(chunk)
        return "stream"

    registry.require(source, Operation.READ)
    with _side_errors(source, "source"):
        _ = spool.write(source.adapter.read(source.config, path))
    return "read"


def _drain(
    destination: FilesystemHandle,
    path: str,
    spool: IO[bytes],
    opts: WriteOptions,
    registry: CapabilityRegistry,
) -> DrainMode:
    adapter = destination.adapter
    config = destination.config

    if registry.supports(destination, Operation.WRITE_STREAM):
        with _side_errors(destination, "destination"):
            writer = cast(WriteStreaming, adapter).write_stream(
                config,
                path,
                StreamOptions(chunk_size=opts.chunk_size, visibility=opts.visibility),
            )
            with writer:
                while chunk := spool.read(opts.chunk_size):
                    _ = writer.write(chunk)
        return "stream"

    registry.require(destination, Operation.WRITE)
    if registry.supports(destination, Operation.APPEND):
        with _side_errors(destination, "destination"):
            adapter.write(config, path, b"", opts)
            while chunk := spool.read(opts.chunk_size):
                cast(Appending, adapter).append(config, path, chunk, opts)
        return "append"

    with _side_errors(destination, "destination"):
        adapter.write(config, path, spool.read(), opts)
    return "write"
