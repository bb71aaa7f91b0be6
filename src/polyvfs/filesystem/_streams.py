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

"""Streaming reader and writer protocols plus the generic implementations.

``read_stream`` returns a :class:`ByteReader` and ``write_stream`` returns a
:class:`ByteWriter`. Both are context managers and keep a fixed memory
footprint for backends that stream natively::

    with fs.read_stream("large.bin", chunk_size=1 << 20) as reader:
        for chunk in reader:
            digest.update(chunk)

    with fs.write_stream("copy.bin") as writer:
        writer.write_all(source_chunks)

A writer commits on a clean ``close()``. Leaving the ``with`` block with an
exception aborts the write instead.
"""

from __future__ import annotations

import io
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Protocol, Self, runtime_checkable

from ._types import DEFAULT_CHUNK_SIZE

__all__ = [
    "ByteReader",
    "ByteWriter",
    "IteratorByteReader",
    "MemoryByteReader",
    "MemoryByteWriter",
]


@runtime_checkable
class ByteReader(Protocol):
    """Sequential byte reader."""

    @property
    def path(self) -> str:
        """Path being read (relative to filesystem root)."""
        ...

    @property
    def closed(self) -> bool:
        """True if the reader has been closed."""
        ...

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; ``-1`` reads to EOF. Empty at EOF."""
        ...

    def chunks(self, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Iterate over chunks of at most ``size`` bytes."""
        ...

    def __iter__(self) -> Iterator[bytes]:
        """Iterate over chunks of the reader's default size."""
        ...

    def __enter__(self) -> Self: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None: ...

    def close(self) -> None:
        """Close the reader and release resources."""
        ...


@runtime_checkable
class ByteWriter(Protocol):
    """Sequential byte writer that commits on close."""

    @property
    def path(self) -> str:
        """Path being written (relative to filesystem root)."""
        ...

    @property
    def bytes_written(self) -> int:
        """Total bytes written so far."""
        ...

    @property
    def closed(self) -> bool:
        """True if the writer has been closed or aborted."""
        ...

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes accepted."""
        ...

    def write_all(self, chunks: Iterable[bytes]) -> int:
        """Write every chunk of ``chunks`` and return the total."""
        ...

    def __enter__(self) -> Self: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None: ...

    def close(self) -> None:
        """Commit the written bytes."""
        ...

    def abort(self) -> None:
        """Discard the written bytes without committing."""
        ...


def _closed_error() -> ValueError:
    return ValueError("I/O operation on closed stream")


@dataclass(slots=True)
class MemoryByteReader:
    """ByteReader over an in-memory ``bytes`` value."""

    _path: str
    _buffer: io.BytesIO
    _chunk_size: int = DEFAULT_CHUNK_SIZE
    _closed: bool = field(default=False, init=False)

    @classmethod
    def from_bytes(
        cls, path: str, content: bytes, *, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> MemoryByteReader:
        return cls(_path=path, _buffer=io.BytesIO(content), _chunk_size=chunk_size)

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise _closed_error()
        return self._buffer.read(size)

    def chunks(self, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        while chunk := self.read(size):
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.chunks(self._chunk_size)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def close(self) -> None:
        if not self._closed:
            self._buffer.close()
            self._closed = True


@dataclass(slots=True)
class IteratorByteReader:
    """ByteReader over an iterator of arbitrarily sized chunks.

    Incoming chunks are re-cut to the requested size. At most one incoming
    chunk plus one outgoing chunk is held in memory. ``on_close`` runs once
    when the reader is closed, for example to release a network body.
    """

    _path: str
    _source: Iterator[bytes]
    _chunk_size: int = DEFAULT_CHUNK_SIZE
    _on_close: Callable[[], None] | None = None
    _pending: bytearray = field(default_factory=bytearray, init=False)
    _exhausted: bool = field(default=False, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def _fill(self, size: int) -> None:
        while not self._exhausted and (size < 0 or len(self._pending) < size):
            chunk = next(self._source, None)
            if chunk is None:
                self._exhausted = True
            else:
                self._pending.extend(chunk)

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise _closed_error()
        self._fill(size)
        if size < 0 or size >= len(self._pending):
            data = bytes(self._pending)
            self._pending.clear()
            return data
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    def chunks(self, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        while chunk := self.read(size):
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.chunks(self._chunk_size)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        if self._on_close is not None:
            self._on_close()


@dataclass(slots=True)
class MemoryByteWriter:
    """ByteWriter that buffers in memory and hands the result to ``commit``.

    Used by backends whose storage primitive is a whole-object write. The
    buffered bytes are passed to ``commit`` on a clean close and dropped on
    abort.
    """

    _path: str
    _commit: Callable[[bytes], None]
    _buffer: io.BytesIO = field(default_factory=io.BytesIO)
    _bytes_written: int = field(default=0, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def path(self) -> str:
        return self._path

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise _closed_error()
        written = self._buffer.write(data)
        self._bytes_written += written
        return written

    def write_all(self, chunks: Iterable[bytes]) -> int:
        total = 0
        for chunk in chunks:
            total += self.write(chunk)
        return total

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._commit(self._buffer.getvalue())
        finally:
            self._buffer.close()

    def abort(self) -> None:
        if not self._closed:
            self._closed = True
            self._buffer.close()
