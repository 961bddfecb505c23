# Copyright 2026 Pennyworth Technologies, Inc.
#
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

"""Lifetime record and stack snapshot models."""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class StackSnapshot:
    """A captured call stack.

    Frames are "module!function" strings, innermost frame first, which is
    the order stack walkers produce them in.
    """

    frames: tuple[str, ...] = ()
    is_idle: bool = False


class StackResolver(Protocol):
    """Resolves the stack a thread had at a given timestamp."""

    def get_stack(self, thread_id: int, timestamp: int) -> StackSnapshot | None:
        ...


@dataclass
class LifetimeRecord:
    """One resource's existence interval.

    A record is open while destroy_time is None. Once the correlator moves
    it to the completed list it is never mutated again.
    """

    owner_id: int
    container_id: int
    address: int
    size: int
    create_thread: int
    create_time: int
    destroy_thread: int | None = None
    destroy_time: int | None = None

    # Stack lookup is deferred until a table actually needs the frames
    resolver: StackResolver | None = field(default=None, repr=False, compare=False)

    @property
    def is_open(self) -> bool:
        """Check if the record was never destroyed."""
        return self.destroy_time is None

    @property
    def create_stack(self) -> StackSnapshot | None:
        """Resolve the stack captured when the resource was created."""
        if self.resolver is None:
            return None
        return self.resolver.get_stack(self.create_thread, self.create_time)

    def close(self, thread_id: int, timestamp: int) -> None:
        """Stamp the destroying thread and time."""
        self.destroy_thread = thread_id
        self.destroy_time = timestamp
