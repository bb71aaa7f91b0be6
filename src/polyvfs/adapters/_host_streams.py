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

"""Streams over native file handles for host-backed adapters."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Self

from ..filesystem import DEFAULT_CHUNK_SIZE, WriteMode

__all__ = ["HostByteReader", "HostByteWriter"]


@dataclass(slots=True)
class HostByteReader:
    """ByteReader backed by an open binary file."""

    _path: str
    _handle: BinaryIO
    _chunk_size: int = DEFAULT_CHUNK_SIZE
    _closed: bool = field(default=False, init=False)

    @classmethod
    def open(
        cls, resolved_path: Path, relative_path: str, *, chunk_size: int
    ) -> HostByteReader:
        return cls(
            _path=relative_path,
            _handle=resolved_path.open("rb"),
            _chunk_size=chunk_size,
        )

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        return self._handle.read(size)

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
            self._handle.close()
            self._closed = True


@dataclass(slots=True)
class HostByteWriter:
    """ByteWriter backed by a native file handle.

    ``overwrite``
        Writes to a temporary file in the target directory that is renamed
        over the target on ``close()``. Aborting removes the temporary file
        and leaves the original untouched.

    ``append``
        Writes directly to the target. Bytes already written are not rolled
        back on abort.

    ``on_commit`` runs after a successful close, for example to apply
    permissions or record a commit.
    """

    _path: str
    _handle: BinaryIO
    _final_path: Path
    _temp_path: Path | None
    _on_commit: Callable[[], None] | None = None
    _bytes_written: int = field(default=0, init=False)
    _closed: bool = field(default=False, init=False)

    @classmethod
    def open(
        cls,
        resolved_path: Path,
        relative_path: str,
        *,
        mode: WriteMode,
        on_commit: Callable[[], None] | None = None,
    ) -> HostByteWriter:
        resolved_path.parent.mkdir(parents=True, exist_ok=True)
        if mode == "append":
            return cls(
                _path=relative_path,
                _handle=resolved_path.open("ab"),
                _final_path=resolved_path,
                _temp_path=None,
                _on_commit=on_commit,
            )
        fd, temp_name = tempfile.mkstemp(
            dir=str(resolved_path.parent), prefix=".polyvfs_tmp_"
        )
        return cls(
            _path=relative_path,
            _handle=os.fdopen(fd, "wb"),
            _final_path=resolved_path,
            _temp_path=Path(temp_name),
            _on_commit=on_commit,
        )

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
            raise ValueError("I/O operation on closed stream")
        written = self._handle.write(data)
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

    def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._handle.close()
        finally:
            if self._temp_path is not None:
                self._temp_path.unlink(missing_ok=True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
        except BaseException:
            self._handle.close()
            if self._temp_path is not None:
                self._temp_path.unlink(missing_ok=True)
            raise
        self._handle.close()
        if self._temp_path is not None:
            _ = self._temp_path.replace(self._final_path)
        if self._on_commit is not None:
            self._on_commit()
