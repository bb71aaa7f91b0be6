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

"""Wall-clock abstraction used for modification times and revision stamps.

Backends that invent their own timestamps (the in-memory store, checkpoint
versioning) read the time through a :class:`WallClock` so tests can pin it::

    clock = FakeClock()
    store = InMemoryStore(clock=clock)
    clock.advance(60)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final, Protocol, runtime_checkable

__all__ = ["SYSTEM_CLOCK", "FakeClock", "SystemClock", "WallClock"]


@runtime_checkable
class WallClock(Protocol):
    """Source of the current UTC time."""

    def utcnow(self) -> datetime:
        """Return current UTC datetime (timezone-aware)."""
        ...


@dataclass(frozen=True, slots=True)
class SystemClock:
    """Clock backed by the host's real time."""

    def utcnow(self) -> datetime:
        return datetime.now(UTC)


SYSTEM_CLOCK: Final[SystemClock] = SystemClock()


@dataclass
class FakeClock:
    """Manually advanced clock for deterministic tests.

    Starts at a fixed instant unless ``start`` is supplied. Each call to
    :meth:`advance` moves time forward by the given number of seconds.
    """

    start: datetime = field(default_factory=lambda: datetime(2024, 1, 1, tzinfo=UTC))
    _now: datetime = field(init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        if self.start.tzinfo is None:
            raise ValueError("FakeClock requires a timezone-aware start time.")
        self._now = self.start.astimezone(UTC)

    def utcnow(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward by ``seconds``."""

        if seconds < 0:
            raise ValueError("Cannot advance a clock backwards.")
        with self._lock:
            self._now += timedelta(seconds=seconds)

    def set_wall(self, value: datetime) -> None:
        """Jump the clock to ``value``."""

        if value.tzinfo is None:
            raise ValueError("FakeClock requires timezone-aware datetimes.")
        with self._lock:
            self._now = value.astimezone(UTC)
