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

"""Conversion of backend failures at the dispatch boundary."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Self

from ..errors import VfsError, to_error
from ..logging import StructuredLogger, get_logger
from ._streams import ByteReader, ByteWriter
from ._types import DEFAULT_CHUNK_SIZE

__all__ = ["GuardedByteReader", "GuardedByteWriter", "converted_errors"]

logger: StructuredLogger = get_logger(__name__, context={"component": "dispatch"})


@contextmanager
def converted_errors(backend_type: str, operation: str) -> Iterator[None]:
    """Re-raise any exception from the block as a typed :class:`VfsError`.

    The original exception is chained as ``__cause__``.
    """

    try:
        yield
    except VfsError as error:
        logger.debug(
            "Backend call failed.",
            event="dispatch.error",
            context={
                "backend_type": backend_type,
                "operation": operation,
                "kind": error.kind,
            },
        )
        raise
    except Exception as exc:
        error = to_error(exc)
        logger.debug(
            "Backend call failed with an untyped error.",
            event="dispatch.error",
            context={
                "backend_type": backend_type,
                "operation": operation,
                "kind": error.kind,
                "original": repr(exc),
            },
        )
        raise error from exc


@dataclass(slots=True)
class GuardedByteReader:
    """Reader wrapper converting failures raised while reading or closing."""

    inner: ByteReader
    backend_type: str

    @property
    def path(self) -> str:
        return self.inner.path

    @property
    def closed(self) -> bool:
        return self.inner.closed

    def read(self, size: int = -1) -> bytes:
        with converted_errors(self.backend_type, "read_stream"):
            return self.inner.read(size)

    def chunks(self, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        with converted_errors(self.backend_type, "read_stream"):
            yield from self.inner.chunks(size)

    def __iter__(self) -> Iterator[bytes]:
        with converted_errors(self.backend_type, "read_stream"):
            yield from self.inner

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
        with converted_errors(self.backend_type, "read_stream"):
            self.inner.close()


@dataclass(slots=True)
class GuardedByteWriter:
    """Writer wrapper converting failures raised while writing or committing."""

    inner: ByteWriter
    backend_type: str

    @property
    def path(self) -> str:
        return self.inner.path

    @property
    def bytes_written(self) -> int:
        return self.inner.bytes_written

    @property
    def closed(self) -> bool:
        return self.inner.closed

    def write(self, data: bytes) -> int:
        with converted_errors(self.backend_type, "write_stream"):
            return self.inner.write(data)

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
        with converted_errors(self.backend_type, "write_stream"):
            self.inner.close()

    def abort(self) -> None:
        with converted_errors(self.backend_type, "write_stream"):
            self.inner.abort()
