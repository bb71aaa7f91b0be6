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

"""Storage backends for :mod:`polyvfs.filesystem`.

Each backend module exposes a ``configure(...)`` factory returning a
:class:`~polyvfs.filesystem.FilesystemHandle`:

- ``memory``: In-process store with checkpoint versioning
- ``local``: Sandboxed host directory
- ``git``: Host directory versioned through git
- ``s3``: S3 bucket (requires the ``s3`` extra)
- ``github``: GitHub repository over the contents API (requires the ``github`` extra)
- ``shell``: POSIX shell commands, locally or through ssh/podman

``s3`` and ``github`` are imported on first access so ``botocore`` and
``httpx`` stay optional.
"""

from __future__ import annotations

from importlib import import_module

from . import git, local, memory, shell, visibility

__all__ = ["git", "github", "local", "memory", "s3", "shell", "visibility"]

_LAZY_MODULES = {"github", "s3"}


def __getattr__(name: str) -> object:
    if name in _LAZY_MODULES:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


def __dir__() -> list[str]:
    return sorted({*globals().keys(), *__all__})
