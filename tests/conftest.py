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

from __future__ import annotations

import shutil
from collections.abc import Iterator
from pathlib import Path

import pytest

from polyvfs.adapters import memory
from polyvfs.adapters.memory import InMemoryStore
from polyvfs.clock import FakeClock
from polyvfs.filesystem import FilesystemHandle
from tests.helpers import LogCapture, capture_logs


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Skip tests marked ``git`` when no git binary is installed."""

    if shutil.which("git") is not None:
        return
    skip = pytest.mark.skip(reason="git binary not available")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock starting at 2024-01-01T00:00:00Z."""

    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def memory_fs(store: InMemoryStore) -> FilesystemHandle:
    """Return an in-memory filesystem driven by the fake clock."""

    return memory.configure(store)


@pytest.fixture
def logs() -> Iterator[LogCapture]:
    """Capture polyvfs log records for the duration of the test."""

    with capture_logs() as capture:
        yield capture


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root
