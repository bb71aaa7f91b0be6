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

"""polyvfs: one filesystem contract over interchangeable storage backends."""

from __future__ import annotations

from .errors import ErrorClass, VfsError
from .filesystem import (
    AccessMode,
    Filesystem,
    FilesystemHandle,
    Operation,
    Revision,
    Visibility,
)
from .logging import StructuredLogger, configure_logging, get_logger

__all__ = [
    "AccessMode",
    "ErrorClass",
    "Filesystem",
    "FilesystemHandle",
    "Operation",
    "Revision",
    "StructuredLogger",
    "VfsError",
    "Visibility",
    "configure_logging",
    "get_logger",
]
