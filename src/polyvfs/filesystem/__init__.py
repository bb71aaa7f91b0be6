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

"""Dispatch layer over interchangeable storage backends.

Configure a backend to obtain a :class:`FilesystemHandle` and pass it to the
dispatch functions in this module::

    from polyvfs import filesystem as vfs
    from polyvfs.adapters import local, memory

    scratch = memory.configure()
    disk = local.configure("/srv/data")

    vfs.write(scratch, "report.csv", rows)
    vfs.copy_between(scratch, "report.csv", disk, "reports/2024.csv")

Backends are provided in ``polyvfs.adapters``:

- ``memory``: In-process storage with checkpoint versioning
- ``local``: Sandboxed host directory
- ``git``: Host directory versioned by git
- ``s3``: S3 bucket through an injected boto3 client
- ``shell``: POSIX shell commands, locally or through ssh/podman
"""

from __future__ import annotations

from ._bound import Filesystem
from ._copy import copy_between
from ._dispatch import (
    access,
    append,
    clear,
    commit,
    copy,
    create_directory,
    delete,
    delete_directory,
    file_exists,
    list_contents,
    move,
    read,
    read_revision,
    read_stream,
    revisions,
    rollback,
    set_visibility,
    stat,
    truncate,
    utime,
    visibility,
    write,
    write_stream,
)
from ._path import assert_directory, normalize
from ._protocol import Adapter, Versioning
from ._registry import (
    DEFAULT_REGISTRY,
    AdapterCapabilities,
    CapabilityRegistry,
    supports,
)
from ._streams import ByteReader, ByteWriter
from ._types import (
    DEFAULT_CHUNK_SIZE,
    AccessMode,
    DirectoryOptions,
    DirStat,
    FileStat,
    FilesystemHandle,
    Operation,
    Revision,
    Stat,
    StreamOptions,
    VersionOptions,
    Visibility,
    WriteMode,
    WriteOptions,
)
from ._versioning import normalize_revision, resolve_versioning

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_REGISTRY",
    "AccessMode",
    "Adapter",
    "AdapterCapabilities",
    "ByteReader",
    "ByteWriter",
    "CapabilityRegistry",
    "DirStat",
    "DirectoryOptions",
    "FileStat",
    "Filesystem",
    "FilesystemHandle",
    "Operation",
    "Revision",
    "Stat",
    "StreamOptions",
    "VersionOptions",
    "Versioning",
    "Visibility",
    "WriteMode",
    "WriteOptions",
    "access",
    "append",
    "assert_directory",
    "clear",
    "commit",
    "copy",
    "copy_between",
    "create_directory",
    "delete",
    "delete_directory",
    "file_exists",
    "list_contents",
    "move",
    "normalize",
    "normalize_revision",
    "read",
    "read_revision",
    "read_stream",
    "resolve_versioning",
    "revisions",
    "rollback",
    "set_visibility",
    "stat",
    "supports",
    "truncate",
    "utime",
    "visibility",
    "write",
    "write_stream",
]
